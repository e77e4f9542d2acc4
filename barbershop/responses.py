"""Request-scoped helpers shared by the API blueprints."""
from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo

from flask import current_app, jsonify, request

from .booking import BookingService
from .errors import (BarbershopError, ConflictError, InvalidPriceError,
                     InvalidTransitionError, NotFoundError, PersistenceFailure,
                     ValidationError)
from .extensions import db
from .repository import BarbershopRepository, SqlTimerStore
from .sync import Snapshot
from .timer import ServiceTimer

# Most specific first: ConflictError is also a ValidationError.
_ERROR_CODES = (
    (NotFoundError, "not_found", 404),
    (ConflictError, "conflict", 409),
    (InvalidPriceError, "invalid_price", 400),
    (InvalidTransitionError, "invalid_transition", 400),
    (ValidationError, "invalid_payload", 400),
    (PersistenceFailure, "database_error", 500),
)


def error_response(exc: BarbershopError):
    for error_type, code, status in _ERROR_CODES:
        if isinstance(exc, error_type):
            break
    else:
        code, status = "server_error", 500

    if status >= 500:
        current_app.logger.exception("Request failed", exc_info=exc)
        return jsonify({"error": code}), status
    current_app.logger.warning("Rejected request: %s", exc)
    return jsonify({"error": code, "message": str(exc)}), status


def json_payload() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("request body must be a JSON object")
    return payload


def optional_int(value: object, field: str) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be an integer") from exc


def parse_day(value: str, field: str = "date") -> date:
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise ValidationError(f"{field} must use the YYYY-MM-DD format") from exc


def state() -> dict:
    return current_app.extensions["barbershop"]


def now() -> datetime:
    return state()["clock"]()


def display_tz() -> ZoneInfo:
    return ZoneInfo(current_app.config["DISPLAY_TIMEZONE"])


def local_today() -> date:
    return now().astimezone(display_tz()).date()


def repository() -> BarbershopRepository:
    return BarbershopRepository(db.session, clock=state()["clock"])


def booking() -> BookingService:
    clock = state()["clock"]
    return BookingService(
        repository(),
        ServiceTimer(SqlTimerStore(db.session), clock=clock),
        clock=clock,
        default_duration_minutes=current_app.config["DEFAULT_SERVICE_DURATION_MINUTES"],
    )


def snapshot() -> Snapshot:
    return state()["coordinator"].snapshot(fetch=repository().load_snapshot)


def changed(source: str) -> None:
    """Mark the cached snapshot stale after a successful write."""
    state()["coordinator"].invalidate(source)
