"""Tests for the client endpoints."""
from __future__ import annotations

from datetime import timedelta


def _create(client, name="Ana Paula", phone="11988887777", **extra):
    return client.post("/clients", json={"name": name, "phone": phone, **extra})


def test_create_and_get_client(client) -> None:
    response = _create(client, email="ana@example.com")

    assert response.status_code == 201
    created = response.json["client"]
    assert created["name"] == "Ana Paula"
    assert created["total_visits"] == 0
    assert created["total_spent"] == 0.0

    fetched = client.get(f"/clients/{created['id']}")
    assert fetched.status_code == 200
    assert fetched.json["client"]["email"] == "ana@example.com"


def test_duplicate_phone_conflicts(client) -> None:
    _create(client)

    response = _create(client, name="Ana Maria")

    assert response.status_code == 409
    assert response.json["error"] == "conflict"


def test_missing_fields_rejected(client) -> None:
    response = client.post("/clients", json={"name": "Ana"})

    assert response.status_code == 400
    assert response.json["error"] == "invalid_payload"


def test_non_object_body_rejected(client) -> None:
    response = client.post("/clients", json=["Ana", "11988887777"])

    assert response.status_code == 400


def test_unknown_client_is_404(client) -> None:
    response = client.get("/clients/999")

    assert response.status_code == 404
    assert response.json == {"error": "not_found", "message": "Client not found"}


def test_list_and_search_clients(client) -> None:
    _create(client)
    _create(client, name="Carlos", phone="11955554444")

    everyone = client.get("/clients")
    searched = client.get("/clients?search=carl")

    assert everyone.json["total"] == 2
    assert [c["name"] for c in searched.json["clients"]] == ["Carlos"]


def test_update_client(client) -> None:
    ana_id = _create(client).json["client"]["id"]

    response = client.put(f"/clients/{ana_id}", json={"notes": "Prefers scissors"})

    assert response.status_code == 200
    assert response.json["client"]["notes"] == "Prefers scissors"
    assert response.json["client"]["phone"] == "11988887777"


def test_client_stats_for_ana(client, clock) -> None:
    ana_id = _create(client).json["client"]["id"]
    when = (clock.now - timedelta(days=2)).isoformat()

    for price in ("50.00", "30.00"):
        appointment_id = client.post("/appointments", json={
            "client_id": ana_id, "scheduled_date": when, "service_type": "Corte Simples", "price": price,
        }).json["appointment"]["id"]
        client.post(f"/appointments/{appointment_id}/start")
        client.post(f"/appointments/{appointment_id}/complete", json={"payment_method": "cash"})

    cancelled_id = client.post("/appointments", json={
        "client_id": ana_id, "scheduled_date": when, "service_type": "Barba", "price": "40.00",
    }).json["appointment"]["id"]
    client.post(f"/appointments/{cancelled_id}/cancel")

    response = client.get(f"/clients/{ana_id}/stats")

    assert response.status_code == 200
    stats = response.json["stats"]
    assert stats["totalAppointments"] == 3
    assert stats["completedAppointments"] == 2
    assert stats["totalSpent"] == 80.0
    assert stats["favoriteService"] == "Corte Simples"

    cached = client.get(f"/clients/{ana_id}").json["client"]
    assert cached["total_visits"] == 2
    assert cached["total_spent"] == 80.0
