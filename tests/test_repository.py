"""Tests for the database boundary."""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.exc import OperationalError

from barbershop import lifecycle, loyalty, plans
from barbershop.entities import AppointmentStatus, PaymentMethod
from barbershop.errors import (ConflictError, DuplicateClientError,
                               NotFoundError, PersistenceFailure,
                               ValidationError)
from barbershop.extensions import db
from barbershop.repository import SqlTimerStore
from barbershop.timer import ServiceTimer


def test_client_phone_is_unique(repo) -> None:
    repo.create_client("Ana Paula", "11988887777")

    with pytest.raises(DuplicateClientError):
        repo.create_client("Outra Ana", "11988887777")


def test_update_client_rejects_taken_phone(repo) -> None:
    repo.create_client("Ana Paula", "11988887777")
    jose = repo.create_client("José", "11977776666")

    with pytest.raises(DuplicateClientError):
        repo.update_client(jose.id, phone="11988887777")

    updated = repo.update_client(jose.id, email="jose@example.com")
    assert updated.email == "jose@example.com"


def test_client_requires_name_and_phone(repo) -> None:
    with pytest.raises(ValidationError):
        repo.create_client("", "11988887777")
    with pytest.raises(ValidationError):
        repo.create_client("Ana", "   ")


def test_list_clients_search(repo) -> None:
    repo.create_client("Ana Paula", "11988887777")
    repo.create_client("Carlos", "11955554444")

    assert [c.name for c in repo.list_clients("ana")] == ["Ana Paula"]
    assert [c.name for c in repo.list_clients("5555")] == ["Carlos"]


def test_missing_records_raise_not_found(repo) -> None:
    with pytest.raises(NotFoundError):
        repo.get_client(404)
    with pytest.raises(NotFoundError):
        repo.get_appointment(404)
    with pytest.raises(NotFoundError):
        repo.get_service(404)


def test_service_catalog(repo) -> None:
    cut = repo.create_service("Corte Simples", "25", 30)
    repo.create_service("Barba", "15.00", 20)

    with pytest.raises(ConflictError):
        repo.create_service("Corte Simples", "30", 30)
    with pytest.raises(ValidationError):
        repo.create_service("Sobrancelha", "10", 0)

    repo.deactivate_service(cut.id)

    assert [s.name for s in repo.list_services()] == ["Barba"]
    assert len(repo.list_services(include_inactive=True)) == 2
    assert repo.find_service("Corte Simples").price == Decimal("25.00")


def test_appointment_round_trip_keeps_aware_datetimes(repo, clock) -> None:
    ana = repo.create_client("Ana Paula", "11988887777")
    booked = lifecycle.create(ana.id, "2024-06-15T14:00:00-03:00", "Corte Simples", "25.50", now=clock())

    saved = repo.add_appointment(booked)
    loaded = repo.get_appointment(saved.id)

    assert loaded.scheduled_date == datetime(2024, 6, 15, 17, 0, tzinfo=timezone.utc)
    assert loaded.price == Decimal("25.50")
    assert loaded.status is AppointmentStatus.SCHEDULED


def test_appointment_requires_existing_client(repo, clock) -> None:
    booked = lifecycle.create(999, "2024-06-15T14:00:00Z", "Barba", 15, now=clock())

    with pytest.raises(NotFoundError):
        repo.add_appointment(booked)


def test_list_appointments_by_local_day_and_status(repo, clock) -> None:
    tz = ZoneInfo("America/Sao_Paulo")
    for when in ("2024-06-15T02:00:00Z", "2024-06-15T13:00:00Z", "2024-06-16T02:59:00Z"):
        repo.add_appointment(lifecycle.create(None, when, "Barba", 15, now=clock()))

    day = repo.list_appointments(day=date(2024, 6, 15), tz=tz)

    assert [a.scheduled_date.hour for a in day] == [13, 2]
    assert repo.list_appointments(status=AppointmentStatus.COMPLETED) == []


def test_completion_refreshes_client_aggregates(repo, clock) -> None:
    ana = repo.create_client("Ana Paula", "11988887777")
    for price, method in (("50", "cash"), ("30", "card")):
        appointment = repo.add_appointment(
            lifecycle.create(ana.id, clock() - timedelta(days=1), "Corte", price, now=clock())
        )
        started = lifecycle.start(appointment, now=clock())
        repo.save_completion(lifecycle.complete(started, method, now=clock()))
    cancelled = repo.add_appointment(lifecycle.create(ana.id, clock(), "Corte", "40", now=clock()))
    repo.save_appointment(lifecycle.cancel(cancelled))

    refreshed = repo.get_client(ana.id)

    assert refreshed.total_visits == 2
    assert refreshed.total_spent == Decimal("80.00")
    assert refreshed.last_visit == clock() - timedelta(days=1)


def test_completed_appointment_persists_payment(repo, clock) -> None:
    appointment = repo.add_appointment(lifecycle.create(None, clock(), "Barba", 15, now=clock()))
    done = lifecycle.complete(lifecycle.start(appointment, now=clock()), "pix", "20", now=clock())

    repo.save_appointment(done)
    loaded = repo.get_appointment(appointment.id)

    assert loaded.payment_method is PaymentMethod.INSTANT_TRANSFER
    assert loaded.price == Decimal("20.00")
    assert loaded.completed_at == clock()
    assert loaded.started_at == clock()


def test_load_snapshot(repo, clock) -> None:
    repo.create_client("Ana Paula", "11988887777")
    repo.create_service("Barba", 15, 20)
    repo.add_appointment(lifecycle.create(None, clock(), "Barba", 15, now=clock()))

    snapshot = repo.load_snapshot()

    assert len(snapshot.clients) == 1
    assert len(snapshot.appointments) == 1
    assert len(snapshot.services) == 1
    assert snapshot.fetched_at == clock()


def test_plan_persistence(repo) -> None:
    ana = repo.create_client("Ana Paula", "11988887777")
    slot = {"day_of_week": 2, "time": "10:00", "service_type": "Corte Simples"}
    plan = repo.add_plan(plans.new_plan(ana.id, "basic", [slot], date(2024, 6, 15)))

    assert plan.id is not None
    assert plan.slots[0].label == "Tue 10:00"
    with pytest.raises(ConflictError):
        repo.add_plan(plans.new_plan(ana.id, "basic", [slot], date(2024, 6, 15)))

    paid = repo.save_plan(plans.mark_paid(plan, date(2024, 6, 15)))
    assert repo.get_plan(plan.id).next_payment_date == paid.next_payment_date

    repo.delete_plan(plan.id)
    assert repo.list_plans() == []


def test_sql_timer_store_survives_new_timer_instance(app, clock) -> None:
    ServiceTimer(SqlTimerStore(db.session), clock=clock).start(5, 1200)
    clock.advance(seconds=90)

    state = ServiceTimer(SqlTimerStore(db.session), clock=clock).state(5)

    assert state.is_running
    assert state.time_elapsed == 90
    assert state.target_seconds == 1200


def test_rejected_service_update_changes_nothing(repo) -> None:
    cut = repo.create_service("Corte Simples", "25", 30)

    with pytest.raises(ValidationError):
        repo.update_service(cut.id, name="Renamed", price="-1")
    with pytest.raises(ValidationError):
        repo.update_service(cut.id, price="30", duration_minutes=0)
    # An unrelated commit must not flush a half-applied edit.
    repo.create_client("Ana Paula", "11988887777")

    current = repo.get_service(cut.id)
    assert current.name == "Corte Simples"
    assert current.price == Decimal("25.00")
    assert current.duration_minutes == 30


def test_rejected_client_update_changes_nothing(repo) -> None:
    repo.create_client("Ana Paula", "11988887777")
    jose = repo.create_client("José", "11977776666")

    with pytest.raises(DuplicateClientError):
        repo.update_client(jose.id, name="Changed", phone="11988887777")
    repo.create_service("Barba", "15", 20)

    assert repo.get_client(jose.id).name == "José"


def _in_progress(repo, clock, client_id, price="25"):
    appointment = repo.add_appointment(lifecycle.create(client_id, clock(), "Corte", price, now=clock()))
    return repo.save_appointment(lifecycle.start(appointment, now=clock()))


def test_save_completion_updates_client_and_loyalty(repo, clock) -> None:
    ana = repo.create_client("Ana Paula", "11988887777")
    started = _in_progress(repo, clock, ana.id, "40")

    repo.save_completion(lifecycle.complete(started, "card", now=clock()))

    client = repo.get_client(ana.id)
    assert client.total_visits == 1
    assert client.total_spent == Decimal("40.00")
    assert repo.get_loyalty(ana.id).points == 1
    [entry] = repo.loyalty_history(ana.id)
    assert entry.action is loyalty.LoyaltyAction.EARNED
    assert entry.appointment_id == started.id


def test_failed_completion_commit_leaves_nothing_behind(repo, clock, monkeypatch) -> None:
    ana = repo.create_client("Ana Paula", "11988887777")
    started = _in_progress(repo, clock, ana.id)

    def failing_commit():
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(repo.session, "commit", failing_commit)
    with pytest.raises(PersistenceFailure):
        repo.save_completion(lifecycle.complete(started, "cash", now=clock()))
    monkeypatch.undo()

    assert repo.get_appointment(started.id).status is AppointmentStatus.IN_PROGRESS
    assert repo.get_client(ana.id).total_visits == 0
    assert repo.get_loyalty(ana.id).points == 0
    assert repo.loyalty_history(ana.id) == []


def test_deleting_completed_appointment_updates_client(repo, clock) -> None:
    ana = repo.create_client("Ana Paula", "11988887777")
    started = _in_progress(repo, clock, ana.id, "30")
    repo.save_completion(lifecycle.complete(started, "cash", now=clock()))

    repo.delete_appointment(started.id)

    client = repo.get_client(ana.id)
    assert client.total_visits == 0
    assert client.total_spent == Decimal("0.00")
    assert client.last_visit is None


def test_inactive_program_earns_nothing(repo, clock) -> None:
    ana = repo.create_client("Ana Paula", "11988887777")
    repo.save_loyalty_settings(loyalty.LoyaltySettings(cuts_for_free=5, program_active=False))
    started = _in_progress(repo, clock, ana.id)

    repo.save_completion(lifecycle.complete(started, "cash", now=clock()))

    assert repo.get_client(ana.id).total_visits == 1
    assert repo.get_loyalty(ana.id).points == 0
    assert repo.get_loyalty_settings() == loyalty.LoyaltySettings(cuts_for_free=5, program_active=False)


def test_loyalty_persistence(repo, clock) -> None:
    ana = repo.create_client("Ana Paula", "11988887777")
    carlos = repo.create_client("Carlos", "11955554444")
    assert repo.get_loyalty_settings() == loyalty.LoyaltySettings()

    account, entry = loyalty.adjust(repo.get_loyalty(carlos.id), 3, "Migrated card", clock())
    repo.record_loyalty(account, entry)
    clock.advance(minutes=5)
    account, entry = loyalty.adjust(repo.get_loyalty(carlos.id), -1, "Typo", clock())
    saved = repo.record_loyalty(account, entry)

    assert saved.points == 2
    assert [e.notes for e in repo.loyalty_history(carlos.id)] == ["Typo", "Migrated card"]
    assert [(c.name, a.points) for c, a in repo.list_loyalty()] == [("Carlos", 2), ("Ana Paula", 0)]
    with pytest.raises(NotFoundError):
        repo.get_loyalty(404)
    with pytest.raises(NotFoundError):
        repo.loyalty_history(404)
    assert repo.get_loyalty(ana.id).total_earned_points == 0
