"""Monthly plan routes: recurring weekly slots billed every 30 days."""
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from . import plans
from .errors import BarbershopError
from .responses import (changed, error_response, json_payload, local_today,
                        optional_int, parse_day, repository)

bp_plans = Blueprint("monthly_plans", __name__)


def _current_plans(status=None):
    """Load plans with their payment status brought up to date."""
    repo = repository()
    today = local_today()
    current = []
    for plan in repo.list_plans(status):
        refreshed = plans.refresh_payment_status(plan, today)
        if refreshed != plan:
            refreshed = repo.save_plan(refreshed)
        current.append(refreshed)
    return current, today


@bp_plans.get("/monthly-plans")
def list_monthly_plans() -> tuple[dict[str, object], int]:
    """List monthly plans with their payment alert.
    ---
    tags:
      - Monthly Plans
    parameters:
      - name: status
        in: query
        type: string
        enum: [active, inactive, suspended]
    responses:
      200:
        description: Plans, each with payment_alert overdue, due_soon or ok
    """
    try:
        status = request.args.get("status", "").strip().lower()
        current, today = _current_plans(plans.PlanStatus(status) if status else None)
    except ValueError:
        return jsonify({"error": "invalid_payload", "message": "Unknown plan status"}), 400
    except BarbershopError as exc:
        return error_response(exc)
    return jsonify({"plans": [p.to_dict(today) for p in current]}), 200


@bp_plans.get("/monthly-plans/stats")
def monthly_plan_stats() -> tuple[dict[str, object], int]:
    try:
        current, _ = _current_plans()
    except BarbershopError as exc:
        return error_response(exc)
    return jsonify(plans.plan_stats(current)), 200


@bp_plans.post("/monthly-plans")
def create_monthly_plan() -> tuple[dict[str, object], int]:
    """Sign a client up for a monthly plan.
    ---
    tags:
      - Monthly Plans
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            client_id:
              type: integer
            plan_type:
              type: string
              enum: [basic, premium, vip]
            schedules:
              type: array
              items:
                type: object
                properties:
                  day_of_week:
                    type: integer
                  time:
                    type: string
                  service_type:
                    type: string
            start_date:
              type: string
              format: date
            monthly_price:
              type: number
            notes:
              type: string
          required:
            - client_id
            - plan_type
            - schedules
    responses:
      201:
        description: Plan created
      400:
        description: Invalid payload
      404:
        description: Client not found
      409:
        description: Client already has a plan
    """
    try:
        payload = json_payload()
        client_id = optional_int(payload.get("client_id"), "client_id")
        if client_id is None:
            return jsonify({"error": "invalid_payload", "message": "client_id is required"}), 400
        schedules = payload.get("schedules")
        if not isinstance(schedules, list) or not all(isinstance(s, dict) for s in schedules):
            return jsonify({"error": "invalid_payload", "message": "schedules must be a list of slots"}), 400

        start = payload.get("start_date")
        plan = plans.new_plan(
            client_id=client_id,
            plan_type=payload.get("plan_type"),
            slots=schedules,
            start_date=parse_day(start, "start_date") if start else local_today(),
            custom_price=payload.get("monthly_price"),
            notes=payload.get("notes"),
        )
        saved = repository().add_plan(plan)
    except BarbershopError as exc:
        return error_response(exc)

    changed("monthly_plans")
    current_app.logger.info("Created %s plan %s for client %s", saved.plan_type.value, saved.id, client_id)
    return jsonify({"message": "Monthly plan created", "plan": saved.to_dict(local_today())}), 201


def _update_plan(plan_id: int, transition, message: str):
    try:
        repo = repository()
        plan = transition(repo.get_plan(plan_id))
        saved = repo.save_plan(plan)
    except BarbershopError as exc:
        return error_response(exc)

    changed("monthly_plans")
    return jsonify({"message": message, "plan": saved.to_dict(local_today())}), 200


@bp_plans.post("/monthly-plans/<int:plan_id>/pay")
def pay_monthly_plan(plan_id: int) -> tuple[dict[str, object], int]:
    """Record this cycle's payment; the next one is due in 30 days."""
    return _update_plan(plan_id, lambda plan: plans.mark_paid(plan, local_today()), "Payment recorded")


@bp_plans.post("/monthly-plans/<int:plan_id>/suspend")
def suspend_monthly_plan(plan_id: int) -> tuple[dict[str, object], int]:
    return _update_plan(plan_id, plans.suspend, "Plan suspended")


@bp_plans.post("/monthly-plans/<int:plan_id>/reactivate")
def reactivate_monthly_plan(plan_id: int) -> tuple[dict[str, object], int]:
    return _update_plan(plan_id, plans.reactivate, "Plan reactivated")


@bp_plans.delete("/monthly-plans/<int:plan_id>")
def delete_monthly_plan(plan_id: int) -> tuple[dict[str, object], int]:
    try:
        repository().delete_plan(plan_id)
    except BarbershopError as exc:
        return error_response(exc)

    changed("monthly_plans")
    return jsonify({"message": "Monthly plan deleted"}), 200
