"""Configuration defaults, overridable per environment."""
from __future__ import annotations

import os


class Config:
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///barbershop.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Dates on the dashboard and in the daily revenue series use this zone.
    DISPLAY_TIMEZONE = os.environ.get("DISPLAY_TIMEZONE", "America/Sao_Paulo")

    # Timer target when the booked service is no longer in the catalog.
    DEFAULT_SERVICE_DURATION_MINUTES = int(os.environ.get("DEFAULT_SERVICE_DURATION_MINUTES", 30))

    REFRESH_POLLING_ENABLED = os.environ.get("REFRESH_POLLING_ENABLED", "1") in {"1", "true", "True"}
    REFRESH_POLL_SECONDS = float(os.environ.get("REFRESH_POLL_SECONDS", 5))

    SEARCH_RESULT_LIMIT = 10
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    REFRESH_POLLING_ENABLED = False
