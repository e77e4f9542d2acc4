"""Domain entities shared by the lifecycle, timer, metrics and search modules.

Entities are frozen dataclasses: a transition produces a new value, so a
failed write never leaves a half-updated object behind.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from .errors import ValidationError
from .pricing import to_cents


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_datetime(value: object) -> datetime:
    """Accept a datetime or an ISO-8601 string; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValidationError(f"Invalid date: {value!r}") from exc
    else:
        raise ValidationError(f"Invalid date: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)

    @classmethod
    def parse(cls, value: object) -> "AppointmentStatus":
        try:
            return cls(value)
        except ValueError as exc:
            raise ValidationError(
                f"status must be one of: {', '.join(s.value for s in cls)}"
            ) from exc


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    INSTANT_TRANSFER = "instant-transfer"
    BANK_TRANSFER = "bank-transfer"

    @classmethod
    def parse(cls, value: object) -> "PaymentMethod":
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().lower().replace("_", "-")
        key = _LEGACY_PAYMENT_METHODS.get(key, key)
        try:
            return cls(key)
        except ValueError as exc:
            raise ValidationError(
                f"payment_method must be one of: {', '.join(m.value for m in cls)}"
            ) from exc


# Values written by the first version of the front desk app.
_LEGACY_PAYMENT_METHODS = {
    "dinheiro": "cash",
    "cartao": "card",
    "pix": "instant-transfer",
    "transferencia": "bank-transfer",
}


class Channel(str, Enum):
    """Where an appointment was created."""

    MANUAL = "manual"
    EXTERNAL_INBOUND = "external-inbound"

    @classmethod
    def parse(cls, value: object) -> "Channel":
        if value is None or value == "":
            return cls.MANUAL
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("_", "-")
        if key == "whatsapp":
            return cls.EXTERNAL_INBOUND
        try:
            return cls(key)
        except ValueError as exc:
            raise ValidationError(
                f"channel must be one of: {', '.join(c.value for c in cls)}"
            ) from exc


@dataclass(frozen=True)
class Client:
    id: int | None
    name: str
    phone: str
    email: str | None = None
    created_at: datetime | None = None
    last_visit: datetime | None = None
    total_visits: int = 0
    total_spent: Decimal = Decimal("0.00")
    notes: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "notes": self.notes,
            "total_visits": self.total_visits,
            "total_spent": float(self.total_spent),
            "last_visit": _iso(self.last_visit),
            "created_at": _iso(self.created_at),
        }


@dataclass(frozen=True)
class Appointment:
    id: int | None
    client_id: int | None
    scheduled_date: datetime
    service_type: str
    price: Decimal
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    payment_method: PaymentMethod | None = None
    channel: Channel = Channel.MANUAL
    completed_at: datetime | None = None
    started_at: datetime | None = None
    notes: str | None = None
    created_at: datetime | None = None

    @property
    def is_walk_in(self) -> bool:
        return self.client_id is None

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "scheduled_date": self.scheduled_date.isoformat(),
            "service_type": self.service_type,
            "status": self.status.value,
            "price": float(self.price),
            "price_cents": to_cents(self.price),
            "payment_method": self.payment_method.value if self.payment_method else None,
            "created_via": self.channel.value,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "notes": self.notes,
            "created_at": _iso(self.created_at),
        }


@dataclass(frozen=True)
class Service:
    id: int | None
    name: str
    price: Decimal
    duration_minutes: int
    description: str | None = None
    active: bool = True
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": float(self.price),
            "price_cents": to_cents(self.price),
            "duration_minutes": self.duration_minutes,
            "active": self.active,
            "created_at": _iso(self.created_at),
        }


@dataclass(frozen=True)
class TimerState:
    """Ephemeral per-appointment timer, persisted in the timer store."""

    is_running: bool = False
    time_elapsed: int = 0
    is_completed: bool = False
    start_time: datetime | None = None
    target_seconds: int = 0

    @property
    def progress(self) -> float:
        if self.target_seconds <= 0:
            return 100.0
        return min(self.time_elapsed / self.target_seconds * 100, 100.0)

    @property
    def remaining_seconds(self) -> int:
        return max(self.target_seconds - self.time_elapsed, 0)

    @property
    def can_finish_early(self) -> bool:
        return self.progress >= 80

    def to_store(self) -> dict[str, object]:
        return {
            "isRunning": self.is_running,
            "timeElapsed": self.time_elapsed,
            "isCompleted": self.is_completed,
            "startTime": self.start_time.isoformat() if self.start_time else None,
            "targetSeconds": self.target_seconds,
        }

    @classmethod
    def from_store(cls, payload: dict) -> "TimerState":
        start = payload.get("startTime")
        return cls(
            is_running=bool(payload.get("isRunning")),
            time_elapsed=int(payload.get("timeElapsed") or 0),
            is_completed=bool(payload.get("isCompleted")),
            start_time=parse_datetime(start) if start else None,
            target_seconds=int(payload.get("targetSeconds") or 0),
        )

