"""Database models for the barbershop backend."""
from __future__ import annotations

from .entities import AppointmentStatus, Channel, PaymentMethod, utc_now
from .loyalty import DEFAULT_CUTS_FOR_FREE, LoyaltyAction
from .extensions import db
from .plans import PaymentStatus, PlanStatus, PlanType


def _enum(values, name: str) -> db.Enum:
    return db.Enum(
        *[v.value for v in values],
        name=name,
        native_enum=False,
        validate_strings=True,
    )


class Client(db.Model):
    __tablename__ = "clients"

    client_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    phone = db.Column(db.String(30), unique=True, nullable=False)
    email = db.Column(db.String(255))
    notes = db.Column(db.Text)
    last_visit = db.Column(db.DateTime(timezone=True))
    total_visits = db.Column(db.Integer, nullable=False, default=0)
    total_spent_cents = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    appointments = db.relationship("Appointment", back_populates="client")


class Service(db.Model):
    """Catalog entry; appointments copy its name and price when booked."""

    __tablename__ = "services"

    service_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), unique=True, nullable=False)
    description = db.Column(db.Text)
    price_cents = db.Column(db.Integer, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)
    # Inactive services stay referenced by past appointments but are hidden from booking.
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )


class Appointment(db.Model):
    __tablename__ = "appointments"

    appointment_id = db.Column(db.Integer, primary_key=True)
    # Nullable: walk-ins are served without a registered client.
    client_id = db.Column(db.Integer, db.ForeignKey("clients.client_id"), nullable=True)
    scheduled_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    service_type = db.Column(db.String(150), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(
        _enum(AppointmentStatus, "appointment_status"),
        nullable=False,
        server_default=AppointmentStatus.SCHEDULED.value,
    )
    payment_method = db.Column(_enum(PaymentMethod, "payment_method"))
    created_via = db.Column(
        _enum(Channel, "appointment_channel"),
        nullable=False,
        server_default=Channel.MANUAL.value,
    )
    started_at = db.Column(db.DateTime(timezone=True))
    completed_at = db.Column(db.DateTime(timezone=True))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    client = db.relationship("Client", back_populates="appointments")


class TimerEntry(db.Model):
    """Durable key-value side-store for running service timers."""

    __tablename__ = "timer_entries"

    key = db.Column(db.String(64), primary_key=True)
    payload = db.Column(db.JSON, nullable=False, default=dict)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )


class MonthlyPlan(db.Model):
    __tablename__ = "monthly_plans"

    plan_id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.client_id"), nullable=False)
    plan_type = db.Column(_enum(PlanType, "plan_type"), nullable=False)
    monthly_price_cents = db.Column(db.Integer, nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    status = db.Column(
        _enum(PlanStatus, "plan_status"),
        nullable=False,
        server_default=PlanStatus.ACTIVE.value,
    )
    payment_status = db.Column(
        _enum(PaymentStatus, "plan_payment_status"),
        nullable=False,
        server_default=PaymentStatus.PENDING.value,
    )
    last_payment_date = db.Column(db.Date)
    next_payment_date = db.Column(db.Date, nullable=False)
    total_visits = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    client = db.relationship("Client")
    schedules = db.relationship(
        "MonthlySchedule",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="MonthlySchedule.day_of_week",
    )


class MonthlySchedule(db.Model):
    """Weekly slot reserved by a monthly plan (0=Sunday, 1=Monday, etc.)."""

    __tablename__ = "monthly_schedules"

    schedule_id = db.Column(db.Integer, primary_key=True)
    plan_id = db.Column(db.Integer, db.ForeignKey("monthly_plans.plan_id"), nullable=False)
    day_of_week = db.Column(db.Integer, nullable=False)
    time = db.Column(db.String(5), nullable=False)
    service_type = db.Column(db.String(150), nullable=False)
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)

    plan = db.relationship("MonthlyPlan", back_populates="schedules")


class LoyaltySettings(db.Model):
    """Shop-wide loyalty program settings; a single row."""

    __tablename__ = "loyalty_settings"

    settings_id = db.Column(db.Integer, primary_key=True)
    cuts_for_free = db.Column(db.Integer, nullable=False, default=DEFAULT_CUTS_FOR_FREE)
    program_active = db.Column(db.Boolean, nullable=False, default=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )


class ClientLoyalty(db.Model):
    """Loyalty balance of one client."""

    __tablename__ = "client_loyalty"

    client_loyalty_id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.client_id"), unique=True, nullable=False)
    points = db.Column(db.Integer, nullable=False, default=0)
    free_haircuts = db.Column(db.Integer, nullable=False, default=0)
    total_earned_points = db.Column(db.Integer, nullable=False, default=0)
    total_redeemed_haircuts = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    client = db.relationship("Client")


class LoyaltyHistory(db.Model):
    __tablename__ = "loyalty_history"

    history_id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.client_id"), nullable=False, index=True)
    action_type = db.Column(_enum(LoyaltyAction, "loyalty_action"), nullable=False)
    points_change = db.Column(db.Integer, nullable=False, default=0)
    free_haircuts_change = db.Column(db.Integer, nullable=False, default=0)
    # Plain id: the history outlives deleted appointments.
    appointment_id = db.Column(db.Integer)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
