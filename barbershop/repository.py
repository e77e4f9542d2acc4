"""Persistence boundary between the domain entities and the database.

The repository is created per request around a SQLAlchemy session and
handed to whoever needs it; nothing here is a module-level singleton. Writes
either commit completely or roll back and raise PersistenceFailure.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timezone, tzinfo
from typing import Callable

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from . import loyalty, models
from .entities import (Appointment, AppointmentStatus, Channel, Client,
                       PaymentMethod, Service, utc_now)
from .errors import (ConflictError, DuplicateClientError, NotFoundError,
                     PersistenceFailure, ValidationError)
from .loyalty import (HISTORY_LIMIT, LoyaltyAccount, LoyaltyAction, LoyaltyEntry,
                      LoyaltySettings)
from .metrics import client_aggregates
from .plans import (MonthlyPlan, PaymentStatus, PlanStatus, PlanType,
                    WeeklySlot)
from .pricing import from_cents, parse_price, to_cents
from .sync import Snapshot

logger = logging.getLogger(__name__)


def _aware(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; they were stored as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc)


def _text(value: object) -> str | None:
    if value is None:
        return None
    return str(value).strip() or None


def _client_entity(row: models.Client) -> Client:
    return Client(
        id=row.client_id,
        name=row.name,
        phone=row.phone,
        email=row.email,
        created_at=_aware(row.created_at),
        last_visit=_aware(row.last_visit),
        total_visits=row.total_visits or 0,
        total_spent=from_cents(row.total_spent_cents),
        notes=row.notes,
    )


def _service_entity(row: models.Service) -> Service:
    return Service(
        id=row.service_id,
        name=row.name,
        price=from_cents(row.price_cents),
        duration_minutes=row.duration_minutes,
        description=row.description,
        active=bool(row.active),
        created_at=_aware(row.created_at),
    )


def _appointment_entity(row: models.Appointment) -> Appointment:
    return Appointment(
        id=row.appointment_id,
        client_id=row.client_id,
        scheduled_date=_aware(row.scheduled_date),
        service_type=row.service_type,
        price=from_cents(row.price_cents),
        status=AppointmentStatus(row.status),
        payment_method=PaymentMethod(row.payment_method) if row.payment_method else None,
        channel=Channel(row.created_via),
        completed_at=_aware(row.completed_at),
        started_at=_aware(row.started_at),
        notes=row.notes,
        created_at=_aware(row.created_at),
    )


def _loyalty_entity(row: models.ClientLoyalty) -> LoyaltyAccount:
    return LoyaltyAccount(
        client_id=row.client_id,
        points=row.points or 0,
        free_haircuts=row.free_haircuts or 0,
        total_earned_points=row.total_earned_points or 0,
        total_redeemed_haircuts=row.total_redeemed_haircuts or 0,
        updated_at=_aware(row.updated_at),
    )


def _history_entity(row: models.LoyaltyHistory) -> LoyaltyEntry:
    return LoyaltyEntry(
        id=row.history_id,
        client_id=row.client_id,
        action=LoyaltyAction(row.action_type),
        points_change=row.points_change,
        free_haircuts_change=row.free_haircuts_change,
        appointment_id=row.appointment_id,
        notes=row.notes,
        created_at=_aware(row.created_at),
    )


def _plan_entity(row: models.MonthlyPlan) -> MonthlyPlan:
    return MonthlyPlan(
        id=row.plan_id,
        client_id=row.client_id,
        plan_type=PlanType(row.plan_type),
        monthly_price=from_cents(row.monthly_price_cents),
        start_date=row.start_date,
        next_payment_date=row.next_payment_date,
        status=PlanStatus(row.status),
        payment_status=PaymentStatus(row.payment_status),
        last_payment_date=row.last_payment_date,
        total_visits=row.total_visits or 0,
        notes=row.notes,
        slots=tuple(
            WeeklySlot(day_of_week=s.day_of_week, time=s.time, service_type=s.service_type)
            for s in row.schedules
            if s.active
        ),
    )


class BarbershopRepository:
    def __init__(self, session: Session, clock: Callable[[], datetime] = utc_now) -> None:
        self.session = session
        self.clock = clock

    def _commit(self, action: str) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Failed to %s", action)
            raise PersistenceFailure(f"Failed to {action}") from exc

    # -- clients -----------------------------------------------------------

    def _client_row(self, client_id: int) -> models.Client:
        row = self.session.get(models.Client, client_id)
        if row is None:
            raise NotFoundError("Client not found")
        return row

    def list_clients(self, search: str | None = None) -> list[Client]:
        query = self.session.query(models.Client)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(models.Client.name.ilike(pattern), models.Client.phone.ilike(pattern)))
        return [_client_entity(row) for row in query.order_by(models.Client.created_at.desc()).all()]

    def get_client(self, client_id: int) -> Client:
        return _client_entity(self._client_row(client_id))

    def _check_phone_free(self, phone: str, exclude_id: int | None = None) -> None:
        query = self.session.query(models.Client.client_id).filter(models.Client.phone == phone)
        if exclude_id is not None:
            query = query.filter(models.Client.client_id != exclude_id)
        if query.first() is not None:
            raise DuplicateClientError("Client with this phone number already exists")

    def create_client(
        self,
        name: str,
        phone: str,
        email: str | None = None,
        notes: str | None = None,
    ) -> Client:
        name, phone = _text(name), _text(phone)
        if not name or not phone:
            raise ValidationError("name and phone are required")
        self._check_phone_free(phone)

        row = models.Client(
            name=name,
            phone=phone,
            email=_text(email),
            notes=_text(notes),
            created_at=_utc(self.clock()),
        )
        self.session.add(row)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise DuplicateClientError("Client with this phone number already exists") from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Failed to create client")
            raise PersistenceFailure("Failed to create client") from exc
        return _client_entity(row)

    def update_client(self, client_id: int, **changes: object) -> Client:
        row = self._client_row(client_id)
        values = {}
        if "name" in changes:
            values["name"] = _text(changes["name"])
            if not values["name"]:
                raise ValidationError("name cannot be empty")
        if "phone" in changes:
            values["phone"] = _text(changes["phone"])
            if not values["phone"]:
                raise ValidationError("phone cannot be empty")
            self._check_phone_free(values["phone"], exclude_id=client_id)
        for field in ("email", "notes"):
            if field in changes:
                values[field] = _text(changes[field])

        # Nothing touches the row until every field has validated.
        for field, value in values.items():
            setattr(row, field, value)
        self._commit("update client")
        return _client_entity(row)

    def _recompute_aggregates(self, client_id: int) -> models.Client:
        """Recompute cached visit/spend counters from completed appointments."""
        row = self._client_row(client_id)
        appointments = [
            _appointment_entity(a)
            for a in self.session.query(models.Appointment).filter_by(client_id=client_id).all()
        ]
        visits, spent, last_visit = client_aggregates(appointments, client_id)
        row.total_visits = visits
        row.total_spent_cents = to_cents(spent)
        row.last_visit = _utc(last_visit)
        return row

    # -- services ----------------------------------------------------------

    def _service_row(self, service_id: int) -> models.Service:
        row = self.session.get(models.Service, service_id)
        if row is None:
            raise NotFoundError("Service not found")
        return row

    def list_services(self, include_inactive: bool = False) -> list[Service]:
        query = self.session.query(models.Service)
        if not include_inactive:
            query = query.filter(models.Service.active.is_(True))
        return [_service_entity(row) for row in query.order_by(models.Service.name.asc()).all()]

    def get_service(self, service_id: int) -> Service:
        return _service_entity(self._service_row(service_id))

    def find_service(self, name: str) -> Service | None:
        row = self.session.query(models.Service).filter(models.Service.name == name).first()
        return _service_entity(row) if row else None

    @staticmethod
    def _duration(value: object) -> int:
        try:
            minutes = int(value)
        except (TypeError, ValueError) as exc:
            raise ValidationError("duration_minutes must be a positive integer") from exc
        if minutes <= 0:
            raise ValidationError("duration_minutes must be a positive integer")
        return minutes

    def _check_service_name_free(self, name: str, exclude_id: int | None = None) -> None:
        query = self.session.query(models.Service.service_id).filter(models.Service.name == name)
        if exclude_id is not None:
            query = query.filter(models.Service.service_id != exclude_id)
        if query.first() is not None:
            raise ConflictError("A service with this name already exists")

    def create_service(
        self,
        name: str,
        price: object,
        duration_minutes: object,
        description: str | None = None,
        active: bool = True,
    ) -> Service:
        name = _text(name)
        if not name:
            raise ValidationError("name is required")
        self._check_service_name_free(name)

        row = models.Service(
            name=name,
            price_cents=to_cents(parse_price(price)),
            duration_minutes=self._duration(duration_minutes),
            description=_text(description),
            active=bool(active),
            created_at=_utc(self.clock()),
        )
        self.session.add(row)
        self._commit("create service")
        return _service_entity(row)

    def update_service(self, service_id: int, **changes: object) -> Service:
        """Edit a catalog entry; booked appointments keep their own copy."""
        row = self._service_row(service_id)
        values = {}
        if "name" in changes:
            values["name"] = _text(changes["name"])
            if not values["name"]:
                raise ValidationError("name cannot be empty")
            self._check_service_name_free(values["name"], exclude_id=service_id)
        if "price" in changes:
            values["price_cents"] = to_cents(parse_price(changes["price"]))
        if "duration_minutes" in changes:
            values["duration_minutes"] = self._duration(changes["duration_minutes"])
        if "description" in changes:
            values["description"] = _text(changes["description"])
        if "active" in changes:
            values["active"] = bool(changes["active"])

        for field, value in values.items():
            setattr(row, field, value)
        self._commit("update service")
        return _service_entity(row)

    def deactivate_service(self, service_id: int) -> Service:
        return self.update_service(service_id, active=False)

    # -- appointments ------------------------------------------------------

    def _appointment_row(self, appointment_id: int) -> models.Appointment:
        row = self.session.get(models.Appointment, appointment_id)
        if row is None:
            raise NotFoundError("Appointment not found")
        return row

    def list_appointments(
        self,
        day: date | None = None,
        status: AppointmentStatus | None = None,
        tz: tzinfo = timezone.utc,
    ) -> list[Appointment]:
        query = self.session.query(models.Appointment)
        if day is not None:
            start = datetime.combine(day, time.min, tzinfo=tz)
            end = datetime.combine(day, time.max, tzinfo=tz)
            query = query.filter(
                models.Appointment.scheduled_date >= _utc(start),
                models.Appointment.scheduled_date <= _utc(end),
            )
        if status is not None:
            query = query.filter(models.Appointment.status == status.value)
        rows = query.order_by(models.Appointment.scheduled_date.asc()).all()
        return [_appointment_entity(row) for row in rows]

    def get_appointment(self, appointment_id: int) -> Appointment:
        return _appointment_entity(self._appointment_row(appointment_id))

    def add_appointment(self, appointment: Appointment) -> Appointment:
        if appointment.client_id is not None:
            self._client_row(appointment.client_id)
        row = models.Appointment(created_at=_utc(appointment.created_at or self.clock()))
        self._apply(row, appointment)
        self.session.add(row)
        self._commit("create appointment")
        return _appointment_entity(row)

    def save_appointment(self, appointment: Appointment) -> Appointment:
        """Persist the next state computed by the status machine."""
        row = self._appointment_row(appointment.id)
        self._apply(row, appointment)
        self._commit("update appointment")
        return _appointment_entity(row)

    def save_completion(self, appointment: Appointment) -> Appointment:
        """Persist a completed appointment with its effect on the client.

        The client's cached counters and loyalty points are written in the
        same commit as the appointment.
        """
        row = self._appointment_row(appointment.id)
        self._apply(row, appointment)
        if appointment.client_id is not None:
            try:
                # The aggregate query flushes the completed row first.
                self._recompute_aggregates(appointment.client_id)
                settings = self.get_loyalty_settings()
                if settings.program_active:
                    account, entry = loyalty.earn(
                        self._loyalty_account(appointment.client_id),
                        settings,
                        now=appointment.completed_at or self.clock(),
                        appointment_id=appointment.id,
                    )
                    self._stage_loyalty(account, entry)
            except SQLAlchemyError as exc:
                self.session.rollback()
                logger.exception("Failed to complete appointment")
                raise PersistenceFailure("Failed to complete appointment") from exc
        self._commit("complete appointment")
        return _appointment_entity(row)

    def delete_appointment(self, appointment_id: int) -> None:
        row = self._appointment_row(appointment_id)
        client_id = row.client_id if row.status == AppointmentStatus.COMPLETED.value else None
        self.session.delete(row)
        if client_id is not None:
            try:
                self._recompute_aggregates(client_id)
            except SQLAlchemyError as exc:
                self.session.rollback()
                logger.exception("Failed to delete appointment")
                raise PersistenceFailure("Failed to delete appointment") from exc
        self._commit("delete appointment")

    @staticmethod
    def _apply(row: models.Appointment, appointment: Appointment) -> None:
        row.client_id = appointment.client_id
        row.scheduled_date = _utc(appointment.scheduled_date)
        row.service_type = appointment.service_type
        row.price_cents = to_cents(appointment.price)
        row.status = appointment.status.value
        row.payment_method = appointment.payment_method.value if appointment.payment_method else None
        row.created_via = appointment.channel.value
        row.started_at = _utc(appointment.started_at)
        row.completed_at = _utc(appointment.completed_at)
        row.notes = appointment.notes

    # -- snapshot ----------------------------------------------------------

    def load_snapshot(self) -> Snapshot:
        return Snapshot(
            clients=tuple(self.list_clients()),
            appointments=tuple(self.list_appointments()),
            services=tuple(self.list_services(include_inactive=True)),
            fetched_at=self.clock(),
        )

    # -- monthly plans -----------------------------------------------------

    def _plan_row(self, plan_id: int) -> models.MonthlyPlan:
        row = self.session.get(models.MonthlyPlan, plan_id)
        if row is None:
            raise NotFoundError("Monthly plan not found")
        return row

    def list_plans(self, status: PlanStatus | None = None) -> list[MonthlyPlan]:
        query = self.session.query(models.MonthlyPlan).options(selectinload(models.MonthlyPlan.schedules))
        if status is not None:
            query = query.filter(models.MonthlyPlan.status == status.value)
        return [_plan_entity(row) for row in query.order_by(models.MonthlyPlan.plan_id.asc()).all()]

    def get_plan(self, plan_id: int) -> MonthlyPlan:
        return _plan_entity(self._plan_row(plan_id))

    def add_plan(self, plan: MonthlyPlan) -> MonthlyPlan:
        self._client_row(plan.client_id)
        existing = (
            self.session.query(models.MonthlyPlan.plan_id)
            .filter(
                models.MonthlyPlan.client_id == plan.client_id,
                models.MonthlyPlan.status != PlanStatus.INACTIVE.value,
            )
            .first()
        )
        if existing is not None:
            raise ConflictError("Client already has a monthly plan")

        row = models.MonthlyPlan(client_id=plan.client_id, created_at=_utc(self.clock()))
        self._apply_plan(row, plan)
        row.schedules = [
            models.MonthlySchedule(day_of_week=s.day_of_week, time=s.time, service_type=s.service_type)
            for s in plan.slots
        ]
        self.session.add(row)
        self._commit("create monthly plan")
        return _plan_entity(row)

    def save_plan(self, plan: MonthlyPlan) -> MonthlyPlan:
        row = self._plan_row(plan.id)
        self._apply_plan(row, plan)
        self._commit("update monthly plan")
        return _plan_entity(row)

    def delete_plan(self, plan_id: int) -> None:
        self.session.delete(self._plan_row(plan_id))
        self._commit("delete monthly plan")

    @staticmethod
    def _apply_plan(row: models.MonthlyPlan, plan: MonthlyPlan) -> None:
        row.plan_type = plan.plan_type.value
        row.monthly_price_cents = to_cents(plan.monthly_price)
        row.start_date = plan.start_date
        row.status = plan.status.value
        row.payment_status = plan.payment_status.value
        row.last_payment_date = plan.last_payment_date
        row.next_payment_date = plan.next_payment_date
        row.total_visits = plan.total_visits
        row.notes = plan.notes

    # -- loyalty -----------------------------------------------------------

    def get_loyalty_settings(self) -> LoyaltySettings:
        row = self.session.query(models.LoyaltySettings).first()
        if row is None:
            return LoyaltySettings()
        return LoyaltySettings(cuts_for_free=row.cuts_for_free, program_active=bool(row.program_active))

    def save_loyalty_settings(self, settings: LoyaltySettings) -> LoyaltySettings:
        row = self.session.query(models.LoyaltySettings).first()
        if row is None:
            row = models.LoyaltySettings()
            self.session.add(row)
        row.cuts_for_free = settings.cuts_for_free
        row.program_active = settings.program_active
        self._commit("update loyalty settings")
        return self.get_loyalty_settings()

    def _loyalty_account(self, client_id: int) -> LoyaltyAccount:
        row = self.session.query(models.ClientLoyalty).filter_by(client_id=client_id).first()
        return _loyalty_entity(row) if row is not None else LoyaltyAccount(client_id=client_id)

    def get_loyalty(self, client_id: int) -> LoyaltyAccount:
        self._client_row(client_id)
        return self._loyalty_account(client_id)

    def list_loyalty(self) -> list[tuple[Client, LoyaltyAccount]]:
        """Every client with their balance, highest points first."""
        rows = (
            self.session.query(models.Client, models.ClientLoyalty)
            .outerjoin(models.ClientLoyalty, models.ClientLoyalty.client_id == models.Client.client_id)
            .all()
        )
        members = [
            (
                _client_entity(client),
                _loyalty_entity(account) if account is not None else LoyaltyAccount(client_id=client.client_id),
            )
            for client, account in rows
        ]
        members.sort(key=lambda member: (-member[1].points, -member[1].free_haircuts, member[0].name))
        return members

    def record_loyalty(self, account: LoyaltyAccount, entry: LoyaltyEntry) -> LoyaltyAccount:
        """Store a new balance together with the history entry that explains it."""
        self._client_row(account.client_id)
        row = self._stage_loyalty(account, entry)
        self._commit("update loyalty points")
        return _loyalty_entity(row)

    def _stage_loyalty(self, account: LoyaltyAccount, entry: LoyaltyEntry) -> models.ClientLoyalty:
        row = self.session.query(models.ClientLoyalty).filter_by(client_id=account.client_id).first()
        if row is None:
            row = models.ClientLoyalty(client_id=account.client_id, created_at=_utc(entry.created_at))
            self.session.add(row)
        row.points = account.points
        row.free_haircuts = account.free_haircuts
        row.total_earned_points = account.total_earned_points
        row.total_redeemed_haircuts = account.total_redeemed_haircuts
        row.updated_at = _utc(account.updated_at or entry.created_at)
        self.session.add(models.LoyaltyHistory(
            client_id=entry.client_id,
            action_type=entry.action.value,
            points_change=entry.points_change,
            free_haircuts_change=entry.free_haircuts_change,
            appointment_id=entry.appointment_id,
            notes=entry.notes,
            created_at=_utc(entry.created_at),
        ))
        return row

    def loyalty_history(self, client_id: int | None = None, limit: int = HISTORY_LIMIT) -> list[LoyaltyEntry]:
        query = self.session.query(models.LoyaltyHistory)
        if client_id is not None:
            self._client_row(client_id)
            query = query.filter(models.LoyaltyHistory.client_id == client_id)
        rows = query.order_by(
            models.LoyaltyHistory.created_at.desc(), models.LoyaltyHistory.history_id.desc()
        ).limit(limit).all()
        return [_history_entity(row) for row in rows]


class SqlTimerStore:
    """Timer side-store kept in the ``timer_entries`` table."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, key: str) -> dict | None:
        row = self.session.get(models.TimerEntry, key)
        return dict(row.payload) if row is not None else None

    def set(self, key: str, value: dict) -> None:
        row = self.session.get(models.TimerEntry, key)
        if row is None:
            row = models.TimerEntry(key=key, payload=dict(value))
            self.session.add(row)
        else:
            row.payload = dict(value)
        self._commit("save timer state")

    def delete(self, key: str) -> None:
        row = self.session.get(models.TimerEntry, key)
        if row is None:
            return
        self.session.delete(row)
        self._commit("clear timer state")

    def _commit(self, action: str) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Failed to %s", action)
            raise PersistenceFailure(f"Failed to {action}") from exc
