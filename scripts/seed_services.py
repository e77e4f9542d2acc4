#!/usr/bin/env python3
"""Seed the service catalog with the shop's standard cuts."""
from barbershop import create_app
from barbershop.extensions import db
from barbershop.errors import ConflictError
from barbershop.repository import BarbershopRepository

DEFAULT_SERVICES = [
    {"name": "Corte Simples", "price": "25.00", "duration_minutes": 30,
     "description": "Corte de cabelo tradicional"},
    {"name": "Corte + Barba", "price": "35.00", "duration_minutes": 45,
     "description": "Corte de cabelo e barba completa"},
    {"name": "Barba", "price": "15.00", "duration_minutes": 20,
     "description": "Aparar e modelar barba"},
    {"name": "Corte Especial", "price": "40.00", "duration_minutes": 60,
     "description": "Corte com acabamento diferenciado"},
]


def seed_services():
    """Add the default services, skipping any already in the catalog."""
    app = create_app({"REFRESH_POLLING_ENABLED": False})

    with app.app_context():
        db.create_all()
        repo = BarbershopRepository(db.session)
        created = 0
        for service in DEFAULT_SERVICES:
            try:
                repo.create_service(**service)
            except ConflictError:
                print(f"⏭️  {service['name']} already exists")
                continue
            created += 1
            print(f"✅ Added {service['name']} ({service['price']})")

        print(f"\n🎉 Seeded {created} services")


if __name__ == "__main__":
    seed_services()
