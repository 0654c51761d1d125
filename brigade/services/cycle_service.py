"""
brigade.services.cycle_service — Bulk Cycle Passes
===================================================

Roster-wide passes run by the scheduler or by ``/reset-cycle``:

- :func:`reset_cycle`         — close the biweekly cycle, advance streaks
- :func:`update_all_quotas`   — recompute every quota from current rank
- :func:`reset_daily_stats`   — zero today's point counter
- :func:`scan_streaks_at_risk` — flag live streaks with no points yet

Each operator is processed in its own transaction.  One bad row is logged
and counted; it never stops the rest of the pass.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, TypeVar

from sqlalchemy import select

from brigade.constants import as_utc, utcnow
from brigade.database.engine import get_session
from brigade.database.models import Operator
from brigade.engine.quota import is_quota_completed, update_quota
from brigade.engine.streaks import (
    StreakTransition,
    flag_streak_at_risk,
    is_streak_at_risk,
    record_cycle_boundary,
)
from brigade.services.operator_service import operator_lock

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

R = TypeVar("R")


@dataclass
class CycleResetSummary:
    processed: int = 0
    failed: int = 0
    streaks_extended: int = 0
    streaks_reset: int = 0
    failures: list[int] = field(default_factory=list)
    transitions: list[StreakTransition] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.processed + self.failed


@dataclass
class QuotaPassSummary:
    total: int = 0
    updated: int = 0
    completion_changes: int = 0
    failed: int = 0
    failures: list[int] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class StreakWarning:
    discord_id: int
    display_name: str
    streak: int
    bonus: int


# ---------------------------------------------------------------------------
# Per-operator isolation
# ---------------------------------------------------------------------------
def _active_ids(engine: Engine) -> list[int]:
    with get_session(engine) as session:
        return list(session.scalars(
            select(Operator.discord_id)
            .where(Operator.active.is_(True))
            .order_by(Operator.discord_id)
        ).all())


def _for_each_operator(
    engine: Engine,
    discord_ids: list[int],
    step: Callable[[Operator], R],
    label: str,
) -> list[tuple[int, R | None, bool]]:
    """Run *step* on each operator in its own session.

    Returns ``(discord_id, result, ok)`` per operator.
    """
    outcomes: list[tuple[int, R | None, bool]] = []
    for discord_id in discord_ids:
        try:
            with operator_lock(discord_id), get_session(engine) as session:
                operator = session.scalar(
                    select(Operator)
                    .where(Operator.discord_id == discord_id)
                    .with_for_update()
                )
                if operator is None:
                    continue
                result = step(operator)
            outcomes.append((discord_id, result, True))
        except Exception:
            logger.exception("%s failed for operator %s", label, discord_id)
            outcomes.append((discord_id, None, False))
    return outcomes


# ---------------------------------------------------------------------------
# Cycle reset
# ---------------------------------------------------------------------------
def reset_cycle(engine: Engine, now: datetime | None = None) -> CycleResetSummary:
    """Close the current quota cycle for every active operator.

    Completion is read *before* anything is zeroed, so the streak moves on
    the state the operator actually reached this cycle.
    """
    now = now or utcnow()

    def step(operator: Operator) -> StreakTransition:
        update_quota(operator)
        completed = is_quota_completed(operator)
        transition = record_cycle_boundary(operator, completed, now)

        operator.biweekly_points = 0
        operator.biweekly_events = 0
        operator.daily_points_today = 0
        operator.last_daily_reset = now
        update_quota(operator)
        return transition

    summary = CycleResetSummary()
    for discord_id, transition, ok in _for_each_operator(
        engine, _active_ids(engine), step, "Cycle reset"
    ):
        if not ok:
            summary.failed += 1
            summary.failures.append(discord_id)
            continue
        summary.processed += 1
        summary.transitions.append(transition)
        if transition.completed:
            summary.streaks_extended += 1
        elif transition.old_streak > 0:
            summary.streaks_reset += 1

    logger.info(
        "Cycle reset: %d processed, %d failed, %d streaks extended, %d reset",
        summary.processed, summary.failed,
        summary.streaks_extended, summary.streaks_reset,
    )
    return summary


# ---------------------------------------------------------------------------
# Quota pass
# ---------------------------------------------------------------------------
def update_all_quotas(engine: Engine) -> QuotaPassSummary:
    """Recompute every active operator's quota.  Safe to run repeatedly."""

    def step(operator: Operator) -> tuple[bool, bool]:
        was_completed = bool(operator.quota_completed)
        update = update_quota(operator)
        return update.updated, update.completed != was_completed

    summary = QuotaPassSummary()
    for discord_id, result, ok in _for_each_operator(
        engine, _active_ids(engine), step, "Quota update"
    ):
        summary.total += 1
        if not ok:
            summary.failed += 1
            summary.failures.append(discord_id)
            continue
        updated, changed = result
        summary.updated += int(updated)
        summary.completion_changes += int(changed)

    logger.info(
        "Quota pass: %d operators, %d quotas changed, %d completion changes, %d failed",
        summary.total, summary.updated, summary.completion_changes, summary.failed,
    )
    return summary


# ---------------------------------------------------------------------------
# Daily counters
# ---------------------------------------------------------------------------
def reset_daily_stats(engine: Engine, now: datetime | None = None) -> int:
    """Zero ``daily_points_today`` for operators not yet reset today (UTC)."""
    now = now or utcnow()
    count = 0
    with get_session(engine) as session:
        operators = session.scalars(
            select(Operator).where(Operator.active.is_(True))
        ).all()
        for operator in operators:
            last = as_utc(operator.last_daily_reset)
            if last is not None and last.date() >= now.date():
                continue
            operator.daily_points_today = 0
            operator.last_daily_reset = now
            count += 1
    if count:
        logger.info("Daily stats reset for %d operators", count)
    return count


# ---------------------------------------------------------------------------
# Streaks at risk
# ---------------------------------------------------------------------------
def scan_streaks_at_risk(
    engine: Engine, now: datetime | None = None
) -> list[StreakWarning]:
    """Flag at-risk streaks.  Returns the warnings that are due to go out."""
    now = now or utcnow()

    def step(operator: Operator) -> StreakWarning | None:
        if not is_streak_at_risk(operator):
            return None
        if not flag_streak_at_risk(operator, now):
            return None
        return StreakWarning(
            discord_id=operator.discord_id,
            display_name=operator.display_name,
            streak=operator.quota_streak,
            bonus=operator.current_streak_bonus,
        )

    warnings = [
        warning
        for _, warning, ok in _for_each_operator(
            engine, _active_ids(engine), step, "Streak scan"
        )
        if ok and warning is not None
    ]
    if warnings:
        logger.info("%d streaks flagged at risk", len(warnings))
    return warnings
