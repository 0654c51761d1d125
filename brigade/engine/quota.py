"""
brigade.engine.quota — Rank Quotas & Cycle Calendar
====================================================

Each rank carries a fixed biweekly quota.  Officer and executive ranks have
quota 0, which is always satisfied::

    quota_completed ⇔ biweekly_quota == 0 or biweekly_points ≥ biweekly_quota

Cycles are ``length_days`` long, counted from a configured anchor date.
The bulk reset itself lives in :mod:`brigade.services.cycle_service`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from brigade.database.models import Operator

DEFAULT_QUOTA = 10

QUOTA_BY_RANK: dict[int, int] = {
    1: 20,
    2: 24, 3: 24, 4: 24,
    5: 30, 6: 30,
    7: 36, 8: 36,
    9: 0, 10: 0, 11: 0, 12: 0, 13: 0, 14: 0, 15: 0,
}


def quota_for_rank(level: int | None) -> int:
    """Biweekly quota for *level*; unknown levels get :data:`DEFAULT_QUOTA`."""
    return QUOTA_BY_RANK.get(level or 1, DEFAULT_QUOTA)


def is_quota_completed(operator: Operator) -> bool:
    quota = quota_for_rank(operator.rank_level)
    if quota == 0:
        return True
    return (operator.biweekly_points or 0) >= quota


@dataclass(frozen=True, slots=True)
class QuotaUpdate:
    updated: bool
    old_quota: int | None
    new_quota: int
    completed: bool


def update_quota(operator: Operator) -> QuotaUpdate:
    """Recompute ``biweekly_quota`` and ``quota_completed`` from the current rank.

    Idempotent: a second call with no intervening change reports
    ``updated=False`` and leaves the record as it was.
    """
    old_quota = operator.biweekly_quota
    new_quota = quota_for_rank(operator.rank_level)
    operator.biweekly_quota = new_quota
    operator.quota_completed = is_quota_completed(operator)
    return QuotaUpdate(
        updated=old_quota != new_quota,
        old_quota=old_quota,
        new_quota=new_quota,
        completed=operator.quota_completed,
    )


@dataclass(frozen=True, slots=True)
class QuotaProgress:
    current: int
    required: int
    percentage: int
    completed: bool
    remaining: int


def quota_progress(operator: Operator) -> QuotaProgress:
    required = quota_for_rank(operator.rank_level)
    current = operator.biweekly_points or 0
    if required == 0:
        pct = 100
    else:
        pct = min(100, round(current * 100 / required))
    return QuotaProgress(
        current=current,
        required=required,
        percentage=pct,
        completed=is_quota_completed(operator),
        remaining=max(0, required - current),
    )


# ---------------------------------------------------------------------------
# Cycle calendar
# ---------------------------------------------------------------------------
def is_cycle_boundary(day: date, anchor: date, length_days: int = 14) -> bool:
    """True if a new cycle starts on *day*."""
    if length_days <= 0:
        raise ValueError("length_days must be positive")
    return (day - anchor).days % length_days == 0


def next_cycle_boundary(day: date, anchor: date, length_days: int = 14) -> date:
    """First cycle start strictly after *day*."""
    if length_days <= 0:
        raise ValueError("length_days must be positive")
    offset = (day - anchor).days % length_days
    return day + timedelta(days=length_days - offset)
