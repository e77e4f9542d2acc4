"""Appointment status machine.

    scheduled -> in_progress -> completed
    scheduled -> cancelled
    in_progress -> cancelled

Completed and cancelled are terminal. Every function returns a new
Appointment and leaves its argument untouched.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from decimal import Decimal

from .entities import (Appointment, AppointmentStatus, Channel, PaymentMethod,
                       parse_datetime, utc_now)
from .errors import InvalidTransitionError, ValidationError
from .pricing import parse_price, resolve_final_price

logger = logging.getLogger(__name__)

TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset(
        {AppointmentStatus.IN_PROGRESS, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.IN_PROGRESS: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return target in TRANSITIONS[current]


def check_invariants(appointment: Appointment) -> Appointment:
    """Raise ValidationError if the appointment is in an impossible state."""
    completed = appointment.status is AppointmentStatus.COMPLETED
    if appointment.price < 0:
        raise ValidationError("price must be >= 0")
    if completed != (appointment.completed_at is not None):
        raise ValidationError("completed_at must be set exactly when the appointment is completed")
    if appointment.payment_method is not None and not completed:
        raise ValidationError("payment_method is only recorded on completed appointments")
    return appointment


def _clean_notes(notes: object) -> str | None:
    if notes is None:
        return None
    return str(notes).strip() or None


def create(
    client_id: int | None,
    scheduled_date: object,
    service_type: str,
    price: object,
    channel: object = Channel.MANUAL,
    notes: str | None = None,
    *,
    now: datetime | None = None,
) -> Appointment:
    """Build a new scheduled appointment, validating its inputs."""
    service = (service_type or "").strip() if isinstance(service_type, str) else ""
    if not service:
        raise ValidationError("service_type is required")

    appointment = Appointment(
        id=None,
        client_id=client_id,
        scheduled_date=parse_datetime(scheduled_date),
        service_type=service,
        price=parse_price(price),
        status=AppointmentStatus.SCHEDULED,
        channel=Channel.parse(channel),
        notes=_clean_notes(notes),
        created_at=now or utc_now(),
    )
    return check_invariants(appointment)


def _require(appointment: Appointment, target: AppointmentStatus, action: str) -> None:
    if not can_transition(appointment.status, target):
        logger.info(
            "Rejected %s of appointment %s in status %s",
            action, appointment.id, appointment.status.value,
        )
        raise InvalidTransitionError(appointment.status.value, action)


def start(appointment: Appointment, *, now: datetime | None = None) -> Appointment:
    _require(appointment, AppointmentStatus.IN_PROGRESS, "start")
    started = replace(
        appointment,
        status=AppointmentStatus.IN_PROGRESS,
        started_at=now or utc_now(),
    )
    return check_invariants(started)


def cancel(appointment: Appointment) -> Appointment:
    _require(appointment, AppointmentStatus.CANCELLED, "cancel")
    return check_invariants(replace(appointment, status=AppointmentStatus.CANCELLED))


def complete(
    appointment: Appointment,
    payment_method: object,
    final_price: object = None,
    notes: str | None = None,
    *,
    now: datetime | None = None,
) -> Appointment:
    """Finish an in-progress appointment.

    Appointments must be started first; a scheduled appointment is rejected
    rather than silently started. ``final_price`` overrides the booked
    price when given (see ``resolve_final_price``).
    """
    _require(appointment, AppointmentStatus.COMPLETED, "complete")
    method = PaymentMethod.parse(payment_method)
    price: Decimal = resolve_final_price(appointment.price, final_price)

    completed = replace(
        appointment,
        status=AppointmentStatus.COMPLETED,
        completed_at=now or utc_now(),
        payment_method=method,
        price=price,
        notes=_clean_notes(notes) if notes is not None else appointment.notes,
    )
    return check_invariants(completed)


def reschedule(
    appointment: Appointment,
    *,
    scheduled_date: object = None,
    service_type: str | None = None,
    price: object = None,
    notes: str | None = None,
) -> Appointment:
    """Edit booking details of an appointment that has not finished yet."""
    if appointment.status.is_terminal:
        raise InvalidTransitionError(appointment.status.value, "edit")

    changes: dict[str, object] = {}
    if scheduled_date is not None:
        changes["scheduled_date"] = parse_datetime(scheduled_date)
    if service_type is not None:
        if not isinstance(service_type, str) or not service_type.strip():
            raise ValidationError("service_type is required")
        changes["service_type"] = service_type.strip()
    if price is not None:
        changes["price"] = parse_price(price)
    if notes is not None:
        changes["notes"] = _clean_notes(notes)
    return check_invariants(replace(appointment, **changes))
