"""Monthly client plans: recurring weekly slots billed once a month."""
from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Iterable

from .errors import InvalidTransitionError, ValidationError
from .pricing import parse_price

BILLING_CYCLE_DAYS = 30
DUE_SOON_DAYS = 7
WEEKDAYS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class PlanType(str, Enum):
    BASIC = "basic"
    PREMIUM = "premium"
    VIP = "vip"


class PlanStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class PaymentStatus(str, Enum):
    PAID = "paid"
    PENDING = "pending"
    OVERDUE = "overdue"


@dataclass(frozen=True)
class PlanTier:
    label: str
    price: Decimal
    min_slots: int
    max_slots: int


PLAN_CATALOG: dict[PlanType, PlanTier] = {
    PlanType.BASIC: PlanTier("Basic", Decimal("80.00"), 1, 1),
    PlanType.PREMIUM: PlanTier("Premium", Decimal("150.00"), 2, 2),
    PlanType.VIP: PlanTier("VIP", Decimal("250.00"), 2, 4),
}


@dataclass(frozen=True)
class WeeklySlot:
    day_of_week: int
    time: str
    service_type: str

    @property
    def label(self) -> str:
        return f"{WEEKDAYS[self.day_of_week]} {self.time}"


@dataclass(frozen=True)
class MonthlyPlan:
    id: int | None
    client_id: int
    plan_type: PlanType
    monthly_price: Decimal
    start_date: date
    next_payment_date: date
    status: PlanStatus = PlanStatus.ACTIVE
    payment_status: PaymentStatus = PaymentStatus.PENDING
    last_payment_date: date | None = None
    total_visits: int = 0
    notes: str | None = None
    slots: tuple[WeeklySlot, ...] = field(default_factory=tuple)

    def to_dict(self, today: date | None = None) -> dict[str, object]:
        payload = {
            "id": self.id,
            "client_id": self.client_id,
            "plan_type": self.plan_type.value,
            "plan_label": PLAN_CATALOG[self.plan_type].label,
            "monthly_price": float(self.monthly_price),
            "start_date": self.start_date.isoformat(),
            "status": self.status.value,
            "payment_status": self.payment_status.value,
            "last_payment_date": self.last_payment_date.isoformat() if self.last_payment_date else None,
            "next_payment_date": self.next_payment_date.isoformat(),
            "total_visits": self.total_visits,
            "notes": self.notes,
            "schedules": [
                {
                    "day_of_week": slot.day_of_week,
                    "time": slot.time,
                    "service_type": slot.service_type,
                    "label": slot.label,
                }
                for slot in self.slots
            ],
        }
        if today is not None:
            payload["payment_alert"] = payment_alert(self, today)
        return payload


def parse_plan_type(value: object) -> PlanType:
    try:
        return PlanType(str(value or "").strip().lower())
    except ValueError as exc:
        raise ValidationError(f"plan_type must be one of: {', '.join(p.value for p in PlanType)}") from exc


def parse_slot(raw: dict) -> WeeklySlot:
    try:
        day = int(raw.get("day_of_week"))
    except (TypeError, ValueError) as exc:
        raise ValidationError("day_of_week must be an integer between 0 and 6") from exc
    if not 0 <= day <= 6:
        raise ValidationError("day_of_week must be an integer between 0 and 6")

    slot_time = str(raw.get("time") or "").strip()
    if not _TIME_PATTERN.match(slot_time):
        raise ValidationError("time must use the HH:MM format")

    service = str(raw.get("service_type") or "").strip()
    if not service:
        raise ValidationError("service_type is required for every slot")
    return WeeklySlot(day_of_week=day, time=slot_time, service_type=service)


def new_plan(
    client_id: int,
    plan_type: object,
    slots: Iterable[dict],
    start_date: date,
    custom_price: object = None,
    notes: str | None = None,
) -> MonthlyPlan:
    """Validate and build a plan; the first charge is due on the start date."""
    kind = parse_plan_type(plan_type)
    tier = PLAN_CATALOG[kind]
    parsed = tuple(parse_slot(raw) for raw in slots)

    if not tier.min_slots <= len(parsed) <= tier.max_slots:
        raise ValidationError(
            f"{tier.label} plans take between {tier.min_slots} and {tier.max_slots} weekly slots"
        )
    if len({(s.day_of_week, s.time) for s in parsed}) != len(parsed):
        raise ValidationError("weekly slots must not repeat")

    price = tier.price
    if custom_price not in (None, ""):
        price = parse_price(custom_price)
        if price <= 0:
            raise ValidationError("monthly price must be greater than zero")

    return MonthlyPlan(
        id=None,
        client_id=client_id,
        plan_type=kind,
        monthly_price=price,
        start_date=start_date,
        next_payment_date=start_date,
        notes=(notes or "").strip() or None,
        slots=parsed,
    )


def mark_paid(plan: MonthlyPlan, today: date) -> MonthlyPlan:
    return replace(
        plan,
        payment_status=PaymentStatus.PAID,
        last_payment_date=today,
        next_payment_date=today + timedelta(days=BILLING_CYCLE_DAYS),
    )


def suspend(plan: MonthlyPlan) -> MonthlyPlan:
    if plan.status is not PlanStatus.ACTIVE:
        raise InvalidTransitionError(plan.status.value, "suspend", "a plan")
    return replace(plan, status=PlanStatus.SUSPENDED)


def reactivate(plan: MonthlyPlan) -> MonthlyPlan:
    if plan.status is PlanStatus.ACTIVE:
        raise InvalidTransitionError(plan.status.value, "reactivate", "a plan")
    return replace(plan, status=PlanStatus.ACTIVE)


def refresh_payment_status(plan: MonthlyPlan, today: date) -> MonthlyPlan:
    """Flag a plan whose payment date has passed as overdue."""
    if plan.payment_status is not PaymentStatus.OVERDUE and plan.next_payment_date < today:
        return replace(plan, payment_status=PaymentStatus.OVERDUE)
    if plan.payment_status is PaymentStatus.PAID and plan.next_payment_date <= today:
        return replace(plan, payment_status=PaymentStatus.PENDING)
    return plan


def payment_alert(plan: MonthlyPlan, today: date) -> str:
    """``overdue``, ``due_soon`` or ``ok`` for the plan list badges."""
    if plan.payment_status is PaymentStatus.OVERDUE or plan.next_payment_date < today:
        return "overdue"
    days_left = (plan.next_payment_date - today).days
    if plan.payment_status is PaymentStatus.PENDING or days_left <= DUE_SOON_DAYS:
        return "due_soon"
    return "ok"


def plan_stats(plans: Iterable[MonthlyPlan]) -> dict[str, object]:
    plans = list(plans)
    active = [p for p in plans if p.status is PlanStatus.ACTIVE]
    return {
        "active": len(active),
        "recurringRevenue": float(sum((p.monthly_price for p in active), Decimal("0"))),
        "pendingPayments": sum(1 for p in plans if p.payment_status is PaymentStatus.PENDING),
        "overduePayments": sum(1 for p in plans if p.payment_status is PaymentStatus.OVERDUE),
    }
