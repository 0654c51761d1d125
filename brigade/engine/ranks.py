"""
brigade.engine.ranks — Rank Table, Promotion Eligibility & Rank Locks
======================================================================

The fifteen-level ladder is static data, loaded once at import as an
immutable tuple.  Enlisted and NCO ranks (1–8) are earned with rank points;
officer ranks need no points; executive ranks (11+) are hand-picked only.

Eligibility is checked in a fixed order::

    max rank → rank locked → hand-picked only → rank_points ≥ required

A promotion into a rank with ``rank_lock_days > 0`` locks the operator until
``promoted_at + rank_lock_days`` at the reference hour (06:00 UTC by
default), so every lock expires at a comparable instant.  All math here is
on aware UTC instants; rendering them for humans is the embed layer's job.
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from brigade.constants import as_utc
from brigade.database.models import Operator, PromotionRecord
from brigade.engine.quota import update_quota

logger = logging.getLogger(__name__)

MAX_RANK_LEVEL = 15
EXECUTIVE_LEVEL = 11
DEFAULT_LOCK_HOUR = 6


@dataclass(frozen=True, slots=True)
class RankDefinition:
    level: int
    name: str
    points_required: int
    rank_lock_days: int
    emoji: str = ""

    @property
    def display(self) -> str:
        return f"{self.emoji} {self.name}" if self.emoji else self.name


RANKS: tuple[RankDefinition, ...] = (
    # Enlisted
    RankDefinition(1, "Private", 0, 3),
    RankDefinition(2, "Private First Class", 35, 3),
    RankDefinition(3, "Lance Corporal", 45, 5),
    RankDefinition(4, "Corporal", 55, 5),
    RankDefinition(5, "Sergeant", 70, 8),
    # NCO
    RankDefinition(6, "Staff Sergeant", 90, 8, "\u26a1"),  # ⚡
    RankDefinition(7, "Gunnery Sergeant", 120, 8, "\u26a1\u26a1"),  # ⚡⚡
    RankDefinition(8, "Warrant Officer", 140, 8, "\u26a1\u26a1\u26a1"),  # ⚡⚡⚡
    # Officers
    RankDefinition(9, "Second Lieutenant", 0, 0, "\u2b50"),  # ⭐
    RankDefinition(10, "First Lieutenant", 0, 0, "\u2b50\u2b50"),  # ⭐⭐
    RankDefinition(11, "Lieutenant Colonel", 0, 0, "\u2b50\u2b50\u2b50"),  # ⭐⭐⭐
    # Command
    RankDefinition(12, "Commanding Captain", 0, 0, "\U0001f396\ufe0f"),  # 🎖️
    RankDefinition(13, "Brigadier General", 0, 0, "\U0001f396\ufe0f\u2694\ufe0f"),  # 🎖️⚔️
    RankDefinition(14, "Major General", 0, 0, "\U0001f451"),  # 👑
    RankDefinition(15, "Chief of the Army", 0, 0, "\u2b50\U0001f451\u2b50"),  # ⭐👑⭐
)

_RANKS_BY_LEVEL: dict[int, RankDefinition] = {r.level: r for r in RANKS}


class PromotionKind(enum.StrEnum):
    STANDARD = "standard"
    FORCE = "force"
    BYPASS_LOCK = "bypass_lock"


# ---------------------------------------------------------------------------
# Table lookups
# ---------------------------------------------------------------------------
def get_rank(level: int | None) -> RankDefinition:
    """Rank at *level*; unknown levels fall back to level 1."""
    return _RANKS_BY_LEVEL.get(level or 1, RANKS[0])


def get_next_rank(level: int | None) -> RankDefinition | None:
    next_level = (level or 1) + 1
    if next_level > MAX_RANK_LEVEL:
        return None
    return get_rank(next_level)


def is_executive(level: int) -> bool:
    return level >= EXECUTIVE_LEVEL


# ---------------------------------------------------------------------------
# Rank locks
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class LockStatus:
    locked: bool
    expired: bool
    needs_notification: bool = False
    expires_at: datetime | None = None
    days_remaining: int = 0
    hours_remaining: int = 0


def is_rank_locked(operator: Operator, now: datetime) -> bool:
    lock_until = as_utc(operator.rank_lock_until)
    return lock_until is not None and lock_until > now


def compute_lock_until(
    promoted_at: datetime, lock_days: int, reference_hour: int = DEFAULT_LOCK_HOUR
) -> datetime:
    """``promoted_at + lock_days``, pinned to ``reference_hour:00`` UTC on that date."""
    target = as_utc(promoted_at) + timedelta(days=lock_days)
    return target.replace(hour=reference_hour, minute=0, second=0, microsecond=0)


def check_rank_lock_expiry(operator: Operator, now: datetime) -> LockStatus:
    """Lock state of *operator* at *now*.

    No lock counts as expired with nothing to announce.  An expired lock
    needs a notice until ``rank_lock_notified`` is set.
    """
    lock_until = as_utc(operator.rank_lock_until)
    if lock_until is None:
        return LockStatus(locked=False, expired=True)

    if lock_until <= now:
        return LockStatus(
            locked=False,
            expired=True,
            needs_notification=not operator.rank_lock_notified,
            expires_at=lock_until,
        )

    remaining = (lock_until - now).total_seconds()
    return LockStatus(
        locked=True,
        expired=False,
        expires_at=lock_until,
        days_remaining=math.ceil(remaining / 86400),
        hours_remaining=math.ceil(remaining / 3600),
    )


# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RankRequirements:
    points_required: int
    current_points: int
    points_remaining: int
    met: bool


@dataclass(frozen=True, slots=True)
class PromotionEligibility:
    eligible: bool
    reason_code: str  # max_rank | rank_locked | hand_picked_only | insufficient_points | ready
    reason: str
    current_rank: RankDefinition
    next_rank: RankDefinition | None
    requirements: RankRequirements | None = None
    lock_expires_at: datetime | None = None
    days_remaining: int = 0
    hours_remaining: int = 0

    @property
    def max_rank(self) -> bool:
        return self.reason_code == "max_rank"

    @property
    def rank_locked(self) -> bool:
        return self.reason_code == "rank_locked"

    @property
    def hand_picked_only(self) -> bool:
        return self.reason_code == "hand_picked_only"


def check_promotion_eligibility(
    operator: Operator, now: datetime
) -> PromotionEligibility:
    current = get_rank(operator.rank_level)
    nxt = get_next_rank(operator.rank_level)

    if nxt is None:
        return PromotionEligibility(
            eligible=False,
            reason_code="max_rank",
            reason="Already at maximum rank",
            current_rank=current,
            next_rank=None,
        )

    rank_points = operator.rank_points or 0
    requirements = RankRequirements(
        points_required=nxt.points_required,
        current_points=rank_points,
        points_remaining=max(0, nxt.points_required - rank_points),
        met=rank_points >= nxt.points_required,
    )

    if is_rank_locked(operator, now):
        lock = check_rank_lock_expiry(operator, now)
        return PromotionEligibility(
            eligible=False,
            reason_code="rank_locked",
            reason=(
                f"Rank locked for {lock.days_remaining} more day(s) "
                f"({lock.hours_remaining} hours)"
            ),
            current_rank=current,
            next_rank=nxt,
            requirements=requirements,
            lock_expires_at=lock.expires_at,
            days_remaining=lock.days_remaining,
            hours_remaining=lock.hours_remaining,
        )

    if is_executive(nxt.level):
        return PromotionEligibility(
            eligible=False,
            reason_code="hand_picked_only",
            reason="Executive ranks are hand-picked only",
            current_rank=current,
            next_rank=nxt,
            requirements=requirements,
        )

    if requirements.met:
        return PromotionEligibility(
            eligible=True,
            reason_code="ready",
            reason="Ready for promotion!",
            current_rank=current,
            next_rank=nxt,
            requirements=requirements,
        )

    return PromotionEligibility(
        eligible=False,
        reason_code="insufficient_points",
        reason=f"Need {requirements.points_remaining} more rank points",
        current_rank=current,
        next_rank=nxt,
        requirements=requirements,
    )


def refresh_eligibility(operator: Operator, now: datetime) -> PromotionEligibility:
    """Recompute and store ``promotion_eligible`` on *operator*."""
    eligibility = check_promotion_eligibility(operator, now)
    operator.promotion_eligible = eligibility.eligible
    operator.last_promotion_check = now
    return eligibility


@dataclass(frozen=True, slots=True)
class RankProgress:
    percentage: int
    current: int = 0
    required: int = 0
    remaining: int = 0
    is_max_rank: bool = False
    is_hand_picked: bool = False


def rank_progress(eligibility: PromotionEligibility) -> RankProgress:
    if eligibility.max_rank:
        return RankProgress(percentage=100, is_max_rank=True)
    if eligibility.hand_picked_only:
        return RankProgress(percentage=100, is_hand_picked=True)

    req = eligibility.requirements
    if req is None:
        return RankProgress(percentage=0)
    if req.points_required <= 0:
        pct = 100
    else:
        pct = min(100, round(req.current_points * 100 / req.points_required))
    return RankProgress(
        percentage=pct,
        current=req.current_points,
        required=req.points_required,
        remaining=req.points_remaining,
    )


# ---------------------------------------------------------------------------
# Promotion application
# ---------------------------------------------------------------------------
def apply_promotion(
    operator: Operator,
    *,
    kind: PromotionKind | str = PromotionKind.STANDARD,
    actor_id: int | None = None,
    actor_name: str | None = None,
    reason: str | None = None,
    now: datetime,
    reference_hour: int = DEFAULT_LOCK_HOUR,
) -> PromotionRecord:
    """Move *operator* up one rank and append the audit record.

    Authorization and eligibility are checked by the caller.  Raises
    ``ValueError`` at max rank.
    """
    current = get_rank(operator.rank_level)
    nxt = get_next_rank(operator.rank_level)
    if nxt is None:
        raise ValueError("Operator is already at maximum rank")

    lock_until = None
    if nxt.rank_lock_days > 0:
        lock_until = compute_lock_until(now, nxt.rank_lock_days, reference_hour)

    record = PromotionRecord(
        from_level=current.level,
        from_name=current.name,
        to_level=nxt.level,
        to_name=nxt.name,
        promoted_at=now,
        promoted_by_id=actor_id,
        promoted_by_name=actor_name,
        promotion_type=str(PromotionKind(kind)),
        reason=reason,
        rank_points_at_promotion=operator.rank_points or 0,
        all_time_points_at_promotion=operator.all_time_points or 0,
        lock_days=nxt.rank_lock_days,
        lock_until=lock_until,
    )
    operator.promotion_history.append(record)

    operator.rank_level = nxt.level
    operator.rank_name = nxt.name
    operator.rank_points = 0
    operator.rank_lock_until = lock_until
    operator.rank_lock_notified = False

    update_quota(operator)
    refresh_eligibility(operator, now)

    logger.info(
        "Promoted operator %s: %s → %s (%s, lock=%s)",
        operator.discord_id, current.name, nxt.name, record.promotion_type, lock_until,
    )
    return record
