"""Loyalty program routes: settings, balances, redemptions and history."""
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from . import loyalty
from .errors import BarbershopError
from .responses import (changed, error_response, json_payload, now,
                        optional_int, repository)

bp_loyalty = Blueprint("loyalty", __name__)


@bp_loyalty.get("/loyalty/settings")
def get_loyalty_settings() -> tuple[dict[str, object], int]:
    try:
        settings = repository().get_loyalty_settings()
    except BarbershopError as exc:
        return error_response(exc)
    return jsonify({"settings": settings.to_dict()}), 200


@bp_loyalty.put("/loyalty/settings")
def update_loyalty_settings() -> tuple[dict[str, object], int]:
    """Change how many cuts earn a free one, or switch the program off.
    ---
    tags:
      - Loyalty
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            cuts_for_free:
              type: integer
            program_active:
              type: boolean
    responses:
      200:
        description: Settings updated
      400:
        description: Invalid payload
    """
    try:
        payload = json_payload()
        fields = {k: payload[k] for k in ("cuts_for_free", "program_active") if k in payload}
        repo = repository()
        settings = loyalty.update_settings(repo.get_loyalty_settings(), **fields)
        saved = repo.save_loyalty_settings(settings)
    except BarbershopError as exc:
        return error_response(exc)

    changed("loyalty")
    current_app.logger.info("Loyalty settings now %s", saved.to_dict())
    return jsonify({"message": "Loyalty settings updated", "settings": saved.to_dict()}), 200


@bp_loyalty.get("/loyalty/clients")
def list_loyalty_clients() -> tuple[dict[str, object], int]:
    """Every client with their points, highest balance first."""
    try:
        repo = repository()
        settings = repo.get_loyalty_settings()
        members = repo.list_loyalty()
    except BarbershopError as exc:
        return error_response(exc)
    return jsonify({
        "clients": [
            {
                "name": client.name,
                "phone": client.phone,
                "total_visits": client.total_visits,
                "last_visit": client.last_visit.isoformat() if client.last_visit else None,
                **account.to_dict(settings),
            }
            for client, account in members
        ],
    }), 200


@bp_loyalty.get("/loyalty/stats")
def loyalty_stats() -> tuple[dict[str, object], int]:
    """
    ---
    tags:
      - Loyalty
    responses:
      200:
        description: totalPoints, totalFreeHaircuts, clientsNearReward, activeClients, weeklyClients
    """
    try:
        repo = repository()
        stats = loyalty.loyalty_stats(repo.list_loyalty(), repo.get_loyalty_settings(), now())
    except BarbershopError as exc:
        return error_response(exc)
    return jsonify(stats), 200


@bp_loyalty.get("/loyalty/history")
def loyalty_history() -> tuple[dict[str, object], int]:
    try:
        client_id = optional_int(request.args.get("client_id"), "client_id")
        entries = repository().loyalty_history(client_id)
    except BarbershopError as exc:
        return error_response(exc)
    return jsonify({"history": [e.to_dict() for e in entries]}), 200


@bp_loyalty.get("/clients/<int:client_id>/loyalty")
def get_client_loyalty(client_id: int) -> tuple[dict[str, object], int]:
    try:
        repo = repository()
        account = repo.get_loyalty(client_id)
        settings = repo.get_loyalty_settings()
    except BarbershopError as exc:
        return error_response(exc)
    return jsonify({"loyalty": account.to_dict(settings)}), 200


@bp_loyalty.post("/clients/<int:client_id>/loyalty/redeem")
def redeem_free_haircut(client_id: int) -> tuple[dict[str, object], int]:
    """Spend one free haircut, optionally against an appointment.
    ---
    tags:
      - Loyalty
    parameters:
      - name: body
        in: body
        schema:
          type: object
          properties:
            appointment_id:
              type: integer
    responses:
      200:
        description: Free haircut redeemed
      400:
        description: No free haircuts available
      404:
        description: Client or appointment not found
    """
    try:
        payload = json_payload()
        appointment_id = optional_int(payload.get("appointment_id"), "appointment_id")
        repo = repository()
        if appointment_id is not None:
            repo.get_appointment(appointment_id)
        account, entry = loyalty.redeem(repo.get_loyalty(client_id), now(), appointment_id)
        saved = repo.record_loyalty(account, entry)
        settings = repo.get_loyalty_settings()
    except BarbershopError as exc:
        return error_response(exc)

    changed("loyalty")
    current_app.logger.info("Client %s redeemed a free haircut", client_id)
    return jsonify({"message": "Free haircut redeemed", "loyalty": saved.to_dict(settings)}), 200


@bp_loyalty.post("/clients/<int:client_id>/loyalty/adjust")
def adjust_loyalty_points(client_id: int) -> tuple[dict[str, object], int]:
    try:
        payload = json_payload()
        repo = repository()
        account, entry = loyalty.adjust(
            repo.get_loyalty(client_id),
            payload.get("points_change"),
            payload.get("reason"),
            now(),
        )
        saved = repo.record_loyalty(account, entry)
        settings = repo.get_loyalty_settings()
    except BarbershopError as exc:
        return error_response(exc)

    changed("loyalty")
    return jsonify({"message": "Loyalty points adjusted", "loyalty": saved.to_dict(settings)}), 200
