"""Revenue and client metrics computed from an in-memory appointment snapshot.

Every function here is pure: it reads the appointments it is given and the
``now``/timezone it is told about, so it can be recomputed from a fresh or a
stale snapshot at any time. Money is summed as Decimal and only rounded
when it is rendered.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo
from decimal import Decimal
from typing import Iterable

from .entities import Appointment, AppointmentStatus
from .errors import ValidationError

ZERO = Decimal("0")
PERIODS = ("today", "week", "month", "year")


@dataclass(frozen=True)
class DashboardMetrics:
    today_revenue: Decimal
    today_appointments: int
    weekly_revenue: Decimal
    monthly_revenue: Decimal
    completed_today: int
    scheduled_today: int

    def to_dict(self) -> dict[str, object]:
        return {
            "todayRevenue": float(self.today_revenue),
            "todayAppointments": self.today_appointments,
            "weeklyRevenue": float(self.weekly_revenue),
            "monthlyRevenue": float(self.monthly_revenue),
            "completedToday": self.completed_today,
            "scheduledToday": self.scheduled_today,
        }


@dataclass(frozen=True)
class ClientStats:
    total_appointments: int
    completed_appointments: int
    total_spent: Decimal
    last_visit: datetime | None
    favorite_service: str | None

    def to_dict(self) -> dict[str, object]:
        return {
            "totalAppointments": self.total_appointments,
            "completedAppointments": self.completed_appointments,
            "totalSpent": float(self.total_spent),
            "lastVisit": self.last_visit.isoformat() if self.last_visit else None,
            "favoriteService": self.favorite_service,
        }


@dataclass(frozen=True)
class RevenueShare:
    key: str
    revenue: Decimal
    percentage: float


@dataclass(frozen=True)
class RevenueBreakdown:
    period: str
    start: datetime
    end: datetime
    total_revenue: Decimal
    total_appointments: int
    by_service: list[RevenueShare] = field(default_factory=list)
    by_payment_method: list[RevenueShare] = field(default_factory=list)
    daily: list[tuple[str, Decimal]] = field(default_factory=list)

    @property
    def average_ticket(self) -> Decimal:
        if not self.total_appointments:
            return ZERO
        return self.total_revenue / self.total_appointments

    def to_dict(self) -> dict[str, object]:
        return {
            "period": self.period,
            "summary": {
                "totalRevenue": float(self.total_revenue),
                "totalAppointments": self.total_appointments,
                "averageTicket": round(float(self.average_ticket), 2),
                "startDate": self.start.isoformat(),
                "endDate": self.end.isoformat(),
            },
            "breakdown": {
                "byService": [
                    {"service": s.key, "revenue": float(s.revenue), "percentage": round(s.percentage, 2)}
                    for s in self.by_service
                ],
                "byPaymentMethod": [
                    {"method": s.key, "revenue": float(s.revenue), "percentage": round(s.percentage, 2)}
                    for s in self.by_payment_method
                ],
                "daily": [{"date": day, "revenue": float(total)} for day, total in self.daily],
            },
        }


def _completed(appointments: Iterable[Appointment]) -> list[Appointment]:
    return [a for a in appointments if a.status is AppointmentStatus.COMPLETED]


def _total(appointments: Iterable[Appointment]) -> Decimal:
    return sum((a.price for a in appointments), ZERO)


def start_of_day(moment: datetime, tz: tzinfo) -> datetime:
    local = moment.astimezone(tz)
    return datetime.combine(local.date(), time.min, tzinfo=tz)


def end_of_day(moment: datetime, tz: tzinfo) -> datetime:
    local = moment.astimezone(tz)
    return datetime.combine(local.date(), time.max, tzinfo=tz)


def in_window(appointment: Appointment, start: datetime, end: datetime) -> bool:
    return start <= appointment.scheduled_date <= end


def revenue_in_window(appointments: Iterable[Appointment], start: datetime, end: datetime) -> Decimal:
    """Sum of prices of completed appointments scheduled within [start, end]."""
    return _total(a for a in _completed(appointments) if in_window(a, start, end))


def period_window(period: str, now: datetime, tz: tzinfo) -> tuple[datetime, datetime]:
    """Boundaries for a named reporting period.

    ``week`` is a rolling seven days ending now, not the calendar week.
    """
    local_now = now.astimezone(tz)
    if period == "today":
        return start_of_day(now, tz), end_of_day(now, tz)
    if period == "week":
        return now - timedelta(days=7), now
    if period == "month":
        return datetime.combine(local_now.date().replace(day=1), time.min, tzinfo=tz), now
    if period == "year":
        return datetime.combine(date(local_now.year, 1, 1), time.min, tzinfo=tz), now
    raise ValidationError(f"period must be one of: {', '.join(PERIODS)}")


def period_revenue(appointments: Iterable[Appointment], period: str, now: datetime, tz: tzinfo) -> Decimal:
    start, end = period_window(period, now, tz)
    return revenue_in_window(appointments, start, end)


def today_revenue(appointments: Iterable[Appointment], now: datetime, tz: tzinfo) -> Decimal:
    return period_revenue(appointments, "today", now, tz)


def weekly_revenue(appointments: Iterable[Appointment], now: datetime, tz: tzinfo) -> Decimal:
    return period_revenue(appointments, "week", now, tz)


def monthly_revenue(appointments: Iterable[Appointment], now: datetime, tz: tzinfo) -> Decimal:
    return period_revenue(appointments, "month", now, tz)


def appointments_on_date(appointments: Iterable[Appointment], day: date, tz: tzinfo) -> list[Appointment]:
    """Appointments on a local calendar day, earliest first."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day, time.max, tzinfo=tz)
    return sorted(
        (a for a in appointments if in_window(a, start, end)),
        key=lambda a: a.scheduled_date,
    )


def group_by_date(appointments: Iterable[Appointment], tz: tzinfo) -> dict[str, list[Appointment]]:
    grouped: dict[str, list[Appointment]] = {}
    for appointment in sorted(appointments, key=lambda a: a.scheduled_date):
        key = appointment.scheduled_date.astimezone(tz).date().isoformat()
        grouped.setdefault(key, []).append(appointment)
    return grouped


def dashboard_metrics(appointments: Iterable[Appointment], now: datetime, tz: tzinfo) -> DashboardMetrics:
    snapshot = list(appointments)
    today = appointments_on_date(snapshot, now.astimezone(tz).date(), tz)
    counts = Counter(a.status for a in today)
    return DashboardMetrics(
        today_revenue=_total(_completed(today)),
        today_appointments=len(today),
        weekly_revenue=weekly_revenue(snapshot, now, tz),
        monthly_revenue=monthly_revenue(snapshot, now, tz),
        completed_today=counts[AppointmentStatus.COMPLETED],
        scheduled_today=counts[AppointmentStatus.SCHEDULED],
    )


def today_summary(appointments: Iterable[Appointment], now: datetime, tz: tzinfo) -> dict[str, object]:
    today = appointments_on_date(appointments, now.astimezone(tz).date(), tz)
    counts = Counter(a.status for a in today)
    summary: dict[str, object] = {"total": len(today)}
    for status in AppointmentStatus:
        summary[status.value] = counts[status]
    summary["revenue"] = float(_total(_completed(today)))
    return summary


def client_aggregates(
    appointments: Iterable[Appointment], client_id: int
) -> tuple[int, Decimal, datetime | None]:
    """Visits, spend and last visit of a client, from completed appointments."""
    completed = [a for a in _completed(appointments) if a.client_id == client_id]
    last_visit = max((a.scheduled_date for a in completed), default=None)
    return len(completed), _total(completed), last_visit


def client_stats(appointments: Iterable[Appointment], client_id: int) -> ClientStats:
    mine = [a for a in appointments if a.client_id == client_id]
    visits, spent, last_visit = client_aggregates(mine, client_id)

    # Counter keeps first-seen order, and max() returns the first of equal
    # counts, so ties go to the service booked first.
    counts = Counter(a.service_type for a in mine)
    favorite = max(counts, key=counts.__getitem__) if counts else None

    return ClientStats(
        total_appointments=len(mine),
        completed_appointments=visits,
        total_spent=spent,
        last_visit=last_visit,
        favorite_service=favorite,
    )


def _shares(totals: dict[str, Decimal], grand_total: Decimal) -> list[RevenueShare]:
    return [
        RevenueShare(
            key=key,
            revenue=revenue,
            percentage=float(revenue / grand_total * 100) if grand_total else 0.0,
        )
        for key, revenue in totals.items()
    ]


def revenue_breakdown(
    appointments: Iterable[Appointment], period: str, now: datetime, tz: tzinfo
) -> RevenueBreakdown:
    start, end = period_window(period, now, tz)
    completed = sorted(
        (a for a in _completed(appointments) if in_window(a, start, end)),
        key=lambda a: a.scheduled_date,
    )
    total = _total(completed)

    by_service: dict[str, Decimal] = {}
    by_method: dict[str, Decimal] = {}
    daily: dict[str, Decimal] = {}
    for appointment in completed:
        by_service[appointment.service_type] = by_service.get(appointment.service_type, ZERO) + appointment.price
        if appointment.payment_method is not None:
            method = appointment.payment_method.value
            by_method[method] = by_method.get(method, ZERO) + appointment.price
        day = appointment.scheduled_date.astimezone(tz).date().isoformat()
        daily[day] = daily.get(day, ZERO) + appointment.price

    return RevenueBreakdown(
        period=period,
        start=start,
        end=end,
        total_revenue=total,
        total_appointments=len(completed),
        by_service=_shares(by_service, total),
        by_payment_method=_shares(by_method, total),
        daily=sorted(daily.items()),
    )
