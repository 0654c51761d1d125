"""
brigade.engine.streaks — Consecutive-Cycle Streaks
===================================================

A streak counts consecutive quota cycles completed without a miss.  It is
advanced or broken only at a cycle boundary, using the completion state the
operator had *at* the boundary (before counters are zeroed).

Bonus tiers::

    3+ cycles → +5%    6+ cycles → +10%    9+ cycles → +15%

Mid-cycle, an operator with a live streak who has earned nothing yet is
flagged at risk; the warning fires at most once per 24 hours.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from brigade.constants import as_utc

if TYPE_CHECKING:
    from brigade.database.models import Operator

WARNING_COOLDOWN = timedelta(hours=24)

# (cycles, bonus_pct), ascending
STREAK_MILESTONES: tuple[tuple[int, int], ...] = ((3, 5), (6, 10), (9, 15))


def bonus_for_streak(streak: int) -> int:
    if streak >= 9:
        return 15
    if streak >= 6:
        return 10
    if streak >= 3:
        return 5
    return 0


@dataclass(frozen=True, slots=True)
class Milestone:
    cycles: int
    bonus: int
    remaining: int


def next_milestone(streak: int) -> Milestone | None:
    """The next bonus tier to reach, or ``None`` once the top tier is held."""
    for cycles, bonus in STREAK_MILESTONES:
        if streak < cycles:
            return Milestone(cycles=cycles, bonus=bonus, remaining=cycles - streak)
    return None


# ---------------------------------------------------------------------------
# Boundary transitions
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class StreakTransition:
    discord_id: int
    completed: bool
    old_streak: int
    new_streak: int
    old_bonus: int
    new_bonus: int
    longest_streak: int

    @property
    def extended(self) -> bool:
        return self.completed

    @property
    def broken(self) -> bool:
        return not self.completed and self.old_streak > 0

    @property
    def bonus_increased(self) -> bool:
        return self.new_bonus > self.old_bonus

    @property
    def is_new_record(self) -> bool:
        return self.completed and self.new_streak == self.longest_streak


def record_cycle_boundary(
    operator: Operator, completed: bool, now: datetime
) -> StreakTransition:
    """Advance or break *operator*'s streak for the cycle that just ended."""
    old_streak = operator.quota_streak or 0
    old_bonus = operator.current_streak_bonus or 0

    if completed:
        operator.quota_streak = old_streak + 1
        operator.last_quota_completion = now
        operator.longest_streak = max(operator.longest_streak or 0, operator.quota_streak)
    else:
        operator.quota_streak = 0

    operator.current_streak_bonus = bonus_for_streak(operator.quota_streak)
    operator.streak_bonus_active = operator.current_streak_bonus > 0
    operator.streak_at_risk = False
    operator.last_streak_warning = None

    return StreakTransition(
        discord_id=operator.discord_id,
        completed=completed,
        old_streak=old_streak,
        new_streak=operator.quota_streak,
        old_bonus=old_bonus,
        new_bonus=operator.current_streak_bonus,
        longest_streak=operator.longest_streak or 0,
    )


# ---------------------------------------------------------------------------
# At-risk flagging
# ---------------------------------------------------------------------------
def is_streak_at_risk(operator: Operator) -> bool:
    if not operator.quota_streak:
        return False
    if operator.quota_completed:
        return False
    return (operator.biweekly_points or 0) == 0


def flag_streak_at_risk(operator: Operator, now: datetime) -> bool:
    """Mark *operator* at risk.  Returns True if a warning should go out.

    A warning raised less than 24 hours ago suppresses a new one and leaves
    the record untouched.
    """
    last = as_utc(operator.last_streak_warning)
    if last is not None and now - last < WARNING_COOLDOWN:
        return False
    operator.streak_at_risk = True
    operator.last_streak_warning = now
    return True


@dataclass(frozen=True, slots=True)
class StreakSnapshot:
    streak: int
    longest: int
    bonus: int
    bonus_active: bool
    at_risk: bool
    next_milestone: Milestone | None


def streak_snapshot(operator: Operator) -> StreakSnapshot:
    streak = operator.quota_streak or 0
    return StreakSnapshot(
        streak=streak,
        longest=operator.longest_streak or 0,
        bonus=bonus_for_streak(streak),
        bonus_active=bonus_for_streak(streak) > 0,
        at_risk=bool(operator.streak_at_risk),
        next_milestone=next_milestone(streak),
    )
