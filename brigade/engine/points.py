"""
brigade.engine.points — Event Points & Point Adjustments
=========================================================

Pure calculation, no Discord or DB I/O.

Every submitted event has a fixed base value.  An active streak bonus
scales it by ``1 + bonus_pct / 100`` and the result is rounded half-up per
event (``10 × 1.05 = 10.5 → 11``), then multiplied by the quantity.
Rounding goes through :class:`~decimal.Decimal` so ``x.5`` never falls to
banker's rounding or binary float error.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from brigade.database.models import Operator


class EventType(enum.StrEnum):
    """Activity events an operator can submit."""
    MRB_MASS_PATROL = "mrb_mass_patrol"
    SOLO_PATROL = "solo_patrol"
    COMBAT_TRAINING = "combat_training"
    GANG_DEPLOYMENT = "gang_deployment"
    VIP_PROTECTION = "vip_protection"
    WARRANT_EXECUTION = "warrant_execution"
    MRB_INSPECTION = "mrb_inspection"
    MRB_TRYOUT_PUBLIC = "mrb_tryout_public"
    MRB_TRYOUT_PRIVATE = "mrb_tryout_private"
    WAR = "war"


class PointAction(enum.StrEnum):
    """Direct point mutations available to Commanding Officers and Generals."""
    ADD = "add"
    REMOVE = "remove"
    SET = "set"
    REMOVE_ALL = "remove_all"


BASE_POINTS: dict[EventType, int] = {
    EventType.MRB_MASS_PATROL: 4,
    EventType.SOLO_PATROL: 1,          # per 30 minute interval
    EventType.COMBAT_TRAINING: 2,
    EventType.GANG_DEPLOYMENT: 4,
    EventType.VIP_PROTECTION: 4,
    EventType.WARRANT_EXECUTION: 10,
    EventType.MRB_INSPECTION: 3,
    EventType.MRB_TRYOUT_PUBLIC: 4,
    EventType.MRB_TRYOUT_PRIVATE: 3,
    EventType.WAR: 20,
}

EVENT_NAMES: dict[EventType, str] = {
    EventType.MRB_MASS_PATROL: "MRB Mass Patrol",
    EventType.SOLO_PATROL: "Solo Patrol",
    EventType.COMBAT_TRAINING: "Combat Training",
    EventType.GANG_DEPLOYMENT: "Gang Deployment",
    EventType.VIP_PROTECTION: "VIP Protection",
    EventType.WARRANT_EXECUTION: "Warrant Execution",
    EventType.MRB_INSPECTION: "MRB Inspection",
    EventType.MRB_TRYOUT_PUBLIC: "MRB Tryout (Public)",
    EventType.MRB_TRYOUT_PRIVATE: "MRB Tryout (Private)",
    EventType.WAR: "War Event",
}


def _coerce_event(event_type: EventType | str) -> EventType | None:
    try:
        return EventType(event_type)
    except ValueError:
        return None


def is_known_event(event_type: EventType | str) -> bool:
    return _coerce_event(event_type) is not None


def event_name(event_type: EventType | str) -> str:
    known = _coerce_event(event_type)
    return EVENT_NAMES[known] if known is not None else str(event_type)


def base_points(event_type: EventType | str) -> int:
    """Base value of *event_type*; unknown types are worth 0."""
    known = _coerce_event(event_type)
    return BASE_POINTS[known] if known is not None else 0


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def bonus_multiplier(bonus_pct: int) -> Decimal:
    return Decimal(1) + Decimal(bonus_pct) / Decimal(100)


def points_per_event(event_type: EventType | str, bonus_pct: int = 0) -> int:
    base = base_points(event_type)
    if bonus_pct <= 0:
        return base
    return _round_half_up(Decimal(base) * bonus_multiplier(bonus_pct))


def total_points(
    event_type: EventType | str, quantity: int = 1, bonus_pct: int = 0
) -> int:
    return points_per_event(event_type, bonus_pct) * quantity


# ---------------------------------------------------------------------------
# Breakdown for display
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PointsBreakdown:
    event_type: str
    base_points: int
    streak_bonus: int
    multiplier: Decimal
    points_per_event: int
    quantity: int
    total_points: int

    @property
    def has_streak_bonus(self) -> bool:
        return self.streak_bonus > 0

    def describe(self) -> str:
        """One-line explanation, e.g. ``4 base × 1.05 (5% streak bonus) = 4 pts × 3 events = 12 total pts``."""
        if self.has_streak_bonus:
            text = (
                f"{self.base_points} base × {self.multiplier:.2f} "
                f"({self.streak_bonus}% streak bonus) = {self.points_per_event} pts"
            )
        else:
            text = f"{self.base_points} base = {self.points_per_event} pts"
        if self.quantity > 1:
            text += f" × {self.quantity} events = {self.total_points} total pts"
        return text


def points_breakdown(
    event_type: EventType | str, quantity: int = 1, bonus_pct: int = 0
) -> PointsBreakdown:
    per_event = points_per_event(event_type, bonus_pct)
    return PointsBreakdown(
        event_type=str(event_type),
        base_points=base_points(event_type),
        streak_bonus=max(bonus_pct, 0),
        multiplier=bonus_multiplier(max(bonus_pct, 0)),
        points_per_event=per_event,
        quantity=quantity,
        total_points=per_event * quantity,
    )


# ---------------------------------------------------------------------------
# Point adjustments
# ---------------------------------------------------------------------------
def apply_adjustment(
    operator: Operator, action: PointAction | str, amount: int
) -> tuple[int, int]:
    """Apply a direct point mutation to *operator* in place.

    ``add`` raises all three counters; ``remove`` lowers all three, each
    floored at 0; ``set`` assigns the biweekly counter; ``remove_all``
    zeroes it.  Quota and eligibility are the caller's job.

    Returns ``(before_biweekly, after_biweekly)``.
    """
    action = PointAction(action)
    before = operator.biweekly_points or 0

    if action is PointAction.ADD:
        operator.biweekly_points = before + amount
        operator.all_time_points = (operator.all_time_points or 0) + amount
        operator.rank_points = (operator.rank_points or 0) + amount
    elif action is PointAction.REMOVE:
        operator.biweekly_points = max(0, before - amount)
        operator.all_time_points = max(0, (operator.all_time_points or 0) - amount)
        operator.rank_points = max(0, (operator.rank_points or 0) - amount)
    elif action is PointAction.SET:
        operator.biweekly_points = max(0, amount)
    else:
        operator.biweekly_points = 0

    return before, operator.biweekly_points
