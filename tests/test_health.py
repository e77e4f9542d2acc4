"""Smoke tests for the health endpoints."""
from __future__ import annotations

from barbershop import create_app


def test_health_endpoint() -> None:
    app = create_app({"TESTING": True})
    client = app.test_client()

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json == {"status": "ok"}


def test_database_health_endpoint_ok() -> None:
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
    })
    client = app.test_client()

    response = client.get("/db-health")

    assert response.status_code == 200
    assert response.json == {"database": "ok"}


def test_mapping_config_overrides_defaults() -> None:
    app = create_app({"TESTING": True, "DISPLAY_TIMEZONE": "UTC"})

    assert app.config["DISPLAY_TIMEZONE"] == "UTC"
    assert app.config["SEARCH_RESULT_LIMIT"] == 10
    assert not app.extensions["barbershop"]["poller"]._thread
