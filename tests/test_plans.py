"""Tests for monthly plan rules."""
from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal

import pytest

from barbershop import plans
from barbershop.errors import InvalidTransitionError, ValidationError

TODAY = date(2024, 6, 15)

MONDAY_CUT = {"day_of_week": 1, "time": "09:00", "service_type": "Corte Simples"}
THURSDAY_BEARD = {"day_of_week": 4, "time": "18:30", "service_type": "Barba"}


def test_new_plan_uses_catalog_price() -> None:
    plan = plans.new_plan(1, "premium", [MONDAY_CUT, THURSDAY_BEARD], TODAY)

    assert plan.plan_type is plans.PlanType.PREMIUM
    assert plan.monthly_price == Decimal("150.00")
    assert plan.status is plans.PlanStatus.ACTIVE
    assert plan.payment_status is plans.PaymentStatus.PENDING
    assert plan.next_payment_date == TODAY
    assert [s.label for s in plan.slots] == ["Mon 09:00", "Thu 18:30"]


def test_new_plan_custom_price() -> None:
    plan = plans.new_plan(1, "BASIC", [MONDAY_CUT], TODAY, custom_price="70")

    assert plan.monthly_price == Decimal("70.00")


@pytest.mark.parametrize(
    "plan_type, slots",
    [
        ("basic", [MONDAY_CUT, THURSDAY_BEARD]),
        ("premium", [MONDAY_CUT]),
        ("vip", [MONDAY_CUT, MONDAY_CUT]),
        ("gold", [MONDAY_CUT]),
    ],
)
def test_new_plan_rejects_bad_slots(plan_type, slots) -> None:
    with pytest.raises(ValidationError):
        plans.new_plan(1, plan_type, slots, TODAY)


@pytest.mark.parametrize(
    "raw",
    [
        {"day_of_week": 7, "time": "09:00", "service_type": "Barba"},
        {"day_of_week": "x", "time": "09:00", "service_type": "Barba"},
        {"day_of_week": 1, "time": "9h", "service_type": "Barba"},
        {"day_of_week": 1, "time": "24:00", "service_type": "Barba"},
        {"day_of_week": 1, "time": "09:00", "service_type": ""},
    ],
)
def test_parse_slot_rejects_invalid(raw) -> None:
    with pytest.raises(ValidationError):
        plans.parse_slot(raw)


def test_mark_paid_moves_due_date_one_cycle() -> None:
    plan = plans.new_plan(1, "basic", [MONDAY_CUT], TODAY)

    paid = plans.mark_paid(plan, TODAY)

    assert paid.payment_status is plans.PaymentStatus.PAID
    assert paid.last_payment_date == TODAY
    assert paid.next_payment_date == TODAY + timedelta(days=30)
    assert plans.payment_alert(paid, TODAY) == "ok"


def test_payment_alerts() -> None:
    plan = plans.mark_paid(plans.new_plan(1, "basic", [MONDAY_CUT], TODAY), TODAY)

    assert plans.payment_alert(plan, TODAY + timedelta(days=25)) == "due_soon"
    assert plans.payment_alert(plan, TODAY + timedelta(days=31)) == "overdue"


def test_refresh_payment_status() -> None:
    plan = plans.mark_paid(plans.new_plan(1, "basic", [MONDAY_CUT], TODAY), TODAY)

    assert plans.refresh_payment_status(plan, TODAY + timedelta(days=10)) == plan
    due = plans.refresh_payment_status(plan, TODAY + timedelta(days=30))
    assert due.payment_status is plans.PaymentStatus.PENDING
    late = plans.refresh_payment_status(due, TODAY + timedelta(days=31))
    assert late.payment_status is plans.PaymentStatus.OVERDUE


def test_suspend_and_reactivate() -> None:
    plan = plans.new_plan(1, "basic", [MONDAY_CUT], TODAY)

    suspended = plans.suspend(plan)
    assert suspended.status is plans.PlanStatus.SUSPENDED
    with pytest.raises(InvalidTransitionError):
        plans.suspend(suspended)

    assert plans.reactivate(suspended).status is plans.PlanStatus.ACTIVE
    with pytest.raises(InvalidTransitionError):
        plans.reactivate(plan)


def test_plan_stats() -> None:
    basic = plans.new_plan(1, "basic", [MONDAY_CUT], TODAY)
    vip = plans.mark_paid(plans.new_plan(2, "vip", [MONDAY_CUT, THURSDAY_BEARD], TODAY), TODAY)
    suspended = plans.suspend(plans.new_plan(3, "basic", [MONDAY_CUT], TODAY))
    overdue = replace(basic, client_id=4, payment_status=plans.PaymentStatus.OVERDUE)

    stats = plans.plan_stats([basic, vip, suspended, overdue])

    assert stats == {
        "active": 3,
        "recurringRevenue": 410.0,
        "pendingPayments": 2,
        "overduePayments": 1,
    }
