#!/usr/bin/env python3
"""Initialize database tables"""
from barbershop import create_app
from barbershop.extensions import db

def init_database():
    app = create_app({"REFRESH_POLLING_ENABLED": False})
    with app.app_context():
        db.create_all()
        print("✅ Database tables initialized successfully")

if __name__ == "__main__":
    init_database()
