"""Tests for the monthly plan endpoints."""
from __future__ import annotations

import pytest

SLOTS = [
    {"day_of_week": 1, "time": "09:00", "service_type": "Corte Simples"},
    {"day_of_week": 4, "time": "18:30", "service_type": "Barba"},
]


@pytest.fixture
def ana_id(client) -> int:
    return client.post("/clients", json={"name": "Ana Paula", "phone": "11988887777"}).json["client"]["id"]


def _create(client, client_id, plan_type="premium", schedules=SLOTS, **extra):
    return client.post("/monthly-plans", json={
        "client_id": client_id,
        "plan_type": plan_type,
        "schedules": schedules,
        **extra,
    })


def test_create_plan(client, ana_id) -> None:
    response = _create(client, ana_id)

    assert response.status_code == 201
    plan = response.json["plan"]
    assert plan["monthly_price"] == 150.0
    assert plan["start_date"] == "2024-06-15"
    assert plan["payment_status"] == "pending"
    assert plan["payment_alert"] == "due_soon"
    assert [s["label"] for s in plan["schedules"]] == ["Mon 09:00", "Thu 18:30"]


def test_create_plan_validation(client, ana_id) -> None:
    assert _create(client, ana_id, plan_type="basic").status_code == 400
    assert _create(client, ana_id, schedules="monday").status_code == 400
    assert _create(client, None).status_code == 400
    assert _create(client, 999).status_code == 404
    assert _create(client, ana_id, start_date="next week").status_code == 400


def test_one_plan_per_client(client, ana_id) -> None:
    _create(client, ana_id)

    response = _create(client, ana_id, plan_type="basic", schedules=SLOTS[:1])

    assert response.status_code == 409


def test_pay_suspend_reactivate(client, ana_id) -> None:
    plan_id = _create(client, ana_id).json["plan"]["id"]

    paid = client.post(f"/monthly-plans/{plan_id}/pay").json["plan"]
    assert paid["payment_status"] == "paid"
    assert paid["next_payment_date"] == "2024-07-15"
    assert paid["payment_alert"] == "ok"

    assert client.post(f"/monthly-plans/{plan_id}/suspend").json["plan"]["status"] == "suspended"
    again = client.post(f"/monthly-plans/{plan_id}/suspend")
    assert again.status_code == 400
    assert again.json["message"] == "Cannot suspend a plan that is suspended"
    assert client.post(f"/monthly-plans/{plan_id}/reactivate").json["plan"]["status"] == "active"


def test_overdue_plans_are_flagged(client, ana_id) -> None:
    _create(client, ana_id, start_date="2024-06-01")

    plans = client.get("/monthly-plans").json["plans"]

    assert plans[0]["payment_status"] == "overdue"
    assert plans[0]["payment_alert"] == "overdue"
    assert client.get("/monthly-plans/stats").json == {
        "active": 1,
        "recurringRevenue": 150.0,
        "pendingPayments": 0,
        "overduePayments": 1,
    }


def test_list_filters_by_status(client, ana_id) -> None:
    plan_id = _create(client, ana_id).json["plan"]["id"]
    client.post(f"/monthly-plans/{plan_id}/suspend")

    assert client.get("/monthly-plans?status=active").json["plans"] == []
    assert len(client.get("/monthly-plans?status=suspended").json["plans"]) == 1
    assert client.get("/monthly-plans?status=paused").status_code == 400


def test_delete_plan(client, ana_id) -> None:
    plan_id = _create(client, ana_id).json["plan"]["id"]

    assert client.delete(f"/monthly-plans/{plan_id}").status_code == 200
    assert client.delete(f"/monthly-plans/{plan_id}").status_code == 404
    assert client.get("/monthly-plans").json["plans"] == []


def test_payment_due_again_after_a_cycle(client, clock, ana_id) -> None:
    plan_id = _create(client, ana_id).json["plan"]["id"]
    client.post(f"/monthly-plans/{plan_id}/pay")

    clock.advance(days=31)
    plans = client.get("/monthly-plans").json["plans"]

    assert plans[0]["payment_status"] == "overdue"
    assert plans[0]["last_payment_date"] == "2024-06-15"
