"""Loyalty program: one point per completed cut, a free cut every N points."""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable

from .entities import Client
from .errors import ValidationError

DEFAULT_CUTS_FOR_FREE = 10
NEAR_REWARD_MARGIN = 2
HISTORY_LIMIT = 100


class LoyaltyAction(str, Enum):
    EARNED = "earned"
    REDEEMED = "redeemed"
    ADJUSTED = "adjusted"


@dataclass(frozen=True)
class LoyaltySettings:
    cuts_for_free: int = DEFAULT_CUTS_FOR_FREE
    program_active: bool = True

    def to_dict(self) -> dict[str, object]:
        return {"cuts_for_free": self.cuts_for_free, "program_active": self.program_active}


@dataclass(frozen=True)
class LoyaltyAccount:
    client_id: int
    points: int = 0
    free_haircuts: int = 0
    total_earned_points: int = 0
    total_redeemed_haircuts: int = 0
    updated_at: datetime | None = None

    def to_dict(self, settings: LoyaltySettings | None = None) -> dict[str, object]:
        payload = {
            "client_id": self.client_id,
            "points": self.points,
            "free_haircuts": self.free_haircuts,
            "total_earned_points": self.total_earned_points,
            "total_redeemed_haircuts": self.total_redeemed_haircuts,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if settings is not None:
            payload["points_to_next_reward"] = max(settings.cuts_for_free - self.points, 0)
        return payload


@dataclass(frozen=True)
class LoyaltyEntry:
    client_id: int
    action: LoyaltyAction
    points_change: int
    free_haircuts_change: int
    created_at: datetime
    appointment_id: int | None = None
    notes: str | None = None
    id: int | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "action_type": self.action.value,
            "points_change": self.points_change,
            "free_haircuts_change": self.free_haircuts_change,
            "appointment_id": self.appointment_id,
            "notes": self.notes,
            "created_at": self.created_at.isoformat(),
        }


def _positive_int(value: object, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a positive integer")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be a positive integer") from exc
    if number <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return number


def update_settings(settings: LoyaltySettings, **changes: object) -> LoyaltySettings:
    if not changes:
        raise ValidationError("Nothing to update")
    values = {}
    if "cuts_for_free" in changes:
        values["cuts_for_free"] = _positive_int(changes["cuts_for_free"], "cuts_for_free")
    if "program_active" in changes:
        active = changes["program_active"]
        if not isinstance(active, bool):
            raise ValidationError("program_active must be true or false")
        values["program_active"] = active
    return replace(settings, **values)


def earn(
    account: LoyaltyAccount,
    settings: LoyaltySettings,
    now: datetime,
    appointment_id: int | None = None,
) -> tuple[LoyaltyAccount, LoyaltyEntry]:
    """Add the point for one completed cut.

    Reaching ``cuts_for_free`` points converts them into one free haircut and
    starts the count again from zero.
    """
    points = account.points + 1
    won = points >= settings.cuts_for_free
    updated = replace(
        account,
        points=0 if won else points,
        free_haircuts=account.free_haircuts + (1 if won else 0),
        total_earned_points=account.total_earned_points + 1,
        updated_at=now,
    )
    entry = LoyaltyEntry(
        client_id=account.client_id,
        action=LoyaltyAction.EARNED,
        points_change=1,
        free_haircuts_change=1 if won else 0,
        appointment_id=appointment_id,
        notes="Earned a free haircut" if won else "Earned 1 point",
        created_at=now,
    )
    return updated, entry


def redeem(
    account: LoyaltyAccount,
    now: datetime,
    appointment_id: int | None = None,
) -> tuple[LoyaltyAccount, LoyaltyEntry]:
    if account.free_haircuts <= 0:
        raise ValidationError("Client has no free haircuts to redeem")
    updated = replace(
        account,
        free_haircuts=account.free_haircuts - 1,
        total_redeemed_haircuts=account.total_redeemed_haircuts + 1,
        updated_at=now,
    )
    entry = LoyaltyEntry(
        client_id=account.client_id,
        action=LoyaltyAction.REDEEMED,
        points_change=0,
        free_haircuts_change=-1,
        appointment_id=appointment_id,
        notes="Redeemed 1 free haircut",
        created_at=now,
    )
    return updated, entry


def adjust(
    account: LoyaltyAccount,
    points_change: object,
    reason: object,
    now: datetime,
) -> tuple[LoyaltyAccount, LoyaltyEntry]:
    """Manual correction; the balance never goes below zero."""
    if isinstance(points_change, bool):
        raise ValidationError("points_change must be an integer")
    try:
        change = int(points_change)
    except (TypeError, ValueError) as exc:
        raise ValidationError("points_change must be an integer") from exc
    if change == 0:
        raise ValidationError("points_change must not be zero")
    reason = str(reason or "").strip()
    if not reason:
        raise ValidationError("reason is required")

    updated = replace(
        account,
        points=max(0, account.points + change),
        total_earned_points=account.total_earned_points + max(0, change),
        updated_at=now,
    )
    entry = LoyaltyEntry(
        client_id=account.client_id,
        action=LoyaltyAction.ADJUSTED,
        points_change=change,
        free_haircuts_change=0,
        notes=reason,
        created_at=now,
    )
    return updated, entry


def loyalty_stats(
    members: Iterable[tuple[Client, LoyaltyAccount]],
    settings: LoyaltySettings,
    now: datetime,
) -> dict[str, int]:
    """Program-wide counters for the loyalty dashboard."""
    members = list(members)
    week_ago = now - timedelta(days=7)
    near_from = settings.cuts_for_free - NEAR_REWARD_MARGIN
    return {
        "totalPoints": sum(a.points for _, a in members),
        "totalFreeHaircuts": sum(a.free_haircuts for _, a in members),
        "clientsNearReward": sum(
            1 for _, a in members if near_from <= a.points < settings.cuts_for_free
        ),
        "activeClients": sum(1 for c, _ in members if c.total_visits > 0),
        "weeklyClients": sum(
            1 for c, _ in members if c.last_visit is not None and c.last_visit >= week_ago
        ),
    }
