"""Tests for the in-memory quick search."""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from barbershop.entities import Appointment, AppointmentStatus, Client
from barbershop.search import normalize, search

WHEN = datetime(2024, 6, 15, 14, 0, tzinfo=timezone.utc)

ANA = Client(id=1, name="Ana Paula", phone="(11) 98888-7777", total_visits=2, total_spent=Decimal("80.00"))
JOSE = Client(id=2, name="José", phone="11977776666")


def _appointment(id, client_id, service="Corte Simples", status=AppointmentStatus.SCHEDULED):
    return Appointment(
        id=id,
        client_id=client_id,
        scheduled_date=WHEN,
        service_type=service,
        price=Decimal("25.00"),
        status=status,
    )


def test_normalize_strips_accents_and_case() -> None:
    assert normalize("JOSÉ Conceição") == "jose conceicao"


def test_name_search_does_not_match_every_client() -> None:
    results = search("ana", [ANA, JOSE], [])

    assert [r.title for r in results] == ["Ana Paula"]


def test_accent_insensitive_match() -> None:
    results = search("jose", [ANA, JOSE], [])

    assert [r.id for r in results] == [2]
    assert results[0].href == "/clients?id=2"


def test_phone_digits_match_formatted_number() -> None:
    results = search("98888", [ANA, JOSE], [])

    assert [r.id for r in results] == [1]
    assert results[0].subtitle == "(11) 98888-7777 • 2 visits • 80.00"


def test_blank_query_returns_nothing() -> None:
    assert search("   ", [ANA, JOSE], [_appointment(1, 1)]) == []


def test_clients_come_before_appointments() -> None:
    appointments = [_appointment(10, 1), _appointment(11, None, service="Barba")]

    results = search("ana", [ANA, JOSE], appointments)

    assert [(r.type, r.id) for r in results] == [("client", 1), ("appointment", 10)]
    assert results[1].title == "Ana Paula - Corte Simples"


def test_walk_in_and_status_matches() -> None:
    appointments = [
        _appointment(10, None, service="Barba"),
        _appointment(11, 2, status=AppointmentStatus.COMPLETED),
    ]

    walk_ins = search("walk", [JOSE], appointments)
    completed = search("completed", [JOSE], appointments)

    assert [r.title for r in walk_ins] == ["Walk-in - Barba"]
    assert [r.id for r in completed] == [11]


def test_results_are_capped_after_merging() -> None:
    clients = [Client(id=i, name=f"Ana {i}", phone=f"1100000{i:04d}") for i in range(8)]
    appointments = [_appointment(100 + i, i) for i in range(8)]

    results = search("ana", clients, appointments, limit=10)

    assert len(results) == 10
    assert [r.type for r in results[:8]] == ["client"] * 8
