"""Shared fixtures: an app over in-memory SQLite and a controllable clock."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from barbershop import create_app
from barbershop.config import TestingConfig
from barbershop.extensions import db
from barbershop.repository import BarbershopRepository

# Noon in Sao Paulo (UTC-3).
FIXED_NOW = datetime(2024, 6, 15, 15, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(FIXED_NOW)


@pytest.fixture
def app(clock):
    flask_app = create_app(TestingConfig)
    flask_app.extensions["barbershop"]["clock"] = clock
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def repo(app, clock) -> BarbershopRepository:
    return BarbershopRepository(db.session, clock=clock)
