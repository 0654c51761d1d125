"""
brigade.services.operator_service — Operator Records & Point Mutations
=======================================================================

Every write to an operator goes through here, one session per call:

  1. Load (or create) the operator row
  2. Apply the change through the pure engine functions
  3. Recompute quota and promotion eligibility
  4. Commit and hand back a result dataclass

Writes to one operator hold that operator's lock from load to commit
(:func:`operator_lock`), and the row is read ``FOR UPDATE``, so concurrent
mutations of the same operator apply one after the other.

All functions are synchronous; cogs call them through
:func:`brigade.database.engine.run_db`.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from brigade.constants import as_utc, utcnow
from brigade.database.engine import get_session
from brigade.database.models import EventLog, Operator
from brigade.engine.permissions import (
    Tier,
    can_bypass_rank_lock,
    can_delete_operators,
    can_force_promotions,
    can_manage_promotions,
    can_promote_to_rank,
    can_submit_events,
)
from brigade.engine.points import (
    PointsBreakdown,
    apply_adjustment,
    event_name,
    is_known_event,
    points_breakdown,
)
from brigade.engine.quota import QuotaProgress, quota_progress, update_quota
from brigade.engine.ranks import (
    DEFAULT_LOCK_HOUR,
    LockStatus,
    PromotionEligibility,
    PromotionKind,
    RankDefinition,
    RankProgress,
    check_promotion_eligibility,
    check_rank_lock_expiry,
    get_next_rank,
    get_rank,
    is_rank_locked,
    rank_progress,
    refresh_eligibility,
)
from brigade.engine.ranks import apply_promotion as _apply_promotion
from brigade.engine.store import MemoryStore
from brigade.engine.streaks import STREAK_MILESTONES, StreakSnapshot, streak_snapshot
from brigade.errors import (
    ExternalServiceError,
    OperatorNotFound,
    PermissionDenied,
    PromotionBlocked,
    ValidationError,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from brigade.engine.approval import PointCommand

logger = logging.getLogger(__name__)

MIN_EVENT_QUANTITY = 1
MAX_EVENT_QUANTITY = 20
MAX_DESCRIPTION_LENGTH = 500
LEADERBOARD_LIMIT = 50


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AdjustmentResult:
    before_biweekly: int
    new_biweekly: int
    new_all_time: int
    quota_completed: bool
    promotion_eligible: bool


@dataclass(frozen=True, slots=True)
class EventSubmissionResult:
    discord_id: int
    event_type: str
    event_name: str
    breakdown: PointsBreakdown
    points_awarded: int
    new_biweekly: int
    new_all_time: int
    new_rank_points: int
    quota_completed: bool
    quota_just_completed: bool
    promotion_eligible: bool
    became_eligible: bool


@dataclass(frozen=True, slots=True)
class PromotionResult:
    discord_id: int
    display_name: str
    kind: PromotionKind
    from_rank: RankDefinition
    to_rank: RankDefinition
    lock_days: int
    lock_until: datetime | None
    new_quota: int


@dataclass(frozen=True, slots=True)
class OperatorSnapshot:
    discord_id: int
    display_name: str
    active: bool
    rank: RankDefinition
    biweekly_points: int
    all_time_points: int
    rank_points: int
    biweekly_events: int
    total_events: int
    eligibility: PromotionEligibility
    progress: RankProgress
    quota: QuotaProgress
    streak: StreakSnapshot
    lock: LockStatus
    promotions: int


@dataclass(frozen=True, slots=True)
class LockExpiryNotice:
    discord_id: int
    display_name: str
    rank_name: str
    expired_at: datetime
    promotion_eligible: bool


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
_operator_locks: MemoryStore[int, Lock] = MemoryStore()


@contextmanager
def operator_lock(discord_id: int) -> Iterator[None]:
    """Hold the in-process write lock for one operator.

    Enter it *before* opening the session so the lock outlives the commit.
    """
    with _operator_locks.get_or_create(discord_id, Lock):
        yield


def _find(
    session: Session, discord_id: int, *, for_update: bool = False
) -> Operator | None:
    stmt = select(Operator).where(Operator.discord_id == discord_id)
    if for_update:
        stmt = stmt.with_for_update()
    return session.scalar(stmt)


def get_or_create_operator(
    session: Session,
    discord_id: int,
    display_name: str,
    now: datetime | None = None,
    *,
    for_update: bool = False,
) -> Operator:
    """Fetch or insert an operator row, refreshing the display name."""
    operator = _find(session, discord_id, for_update=for_update)
    if operator is None:
        now = now or utcnow()
        operator = Operator(
            discord_id=discord_id,
            display_name=display_name,
            joined_at=now,
            last_daily_reset=now,
        )
        update_quota(operator)
        session.add(operator)
        session.flush()
        logger.info("Created operator %s (%s)", discord_id, display_name)
    elif display_name and operator.display_name != display_name:
        operator.display_name = display_name
    return operator


def get_operator(engine: Engine, discord_id: int) -> Operator | None:
    with get_session(engine) as session:
        return _find(session, discord_id)


def _require_active(session: Session, discord_id: int) -> Operator:
    operator = _find(session, discord_id, for_update=True)
    if operator is None or not operator.active:
        raise OperatorNotFound(f"No active operator with id {discord_id}.")
    return operator


# ---------------------------------------------------------------------------
# Point mutation path
# ---------------------------------------------------------------------------
def apply_point_command(
    engine: Engine, command: PointCommand, now: datetime | None = None
) -> AdjustmentResult:
    """Apply an already-authorized :class:`PointCommand` to its target.

    The target record is created on first use.  Deactivated targets raise
    :class:`OperatorNotFound`; storage failures surface as
    :class:`ExternalServiceError`.
    """
    now = now or utcnow()
    try:
        with operator_lock(command.target_id), get_session(engine) as session:
            operator = get_or_create_operator(
                session, command.target_id, command.target_name, now, for_update=True
            )
            if not operator.active:
                raise OperatorNotFound(
                    f"{command.target_name} has been removed from the roster."
                )

            before, after = apply_adjustment(operator, command.action, command.amount)
            operator.last_points_update = now
            update_quota(operator)
            eligibility = refresh_eligibility(operator, now)

            result = AdjustmentResult(
                before_biweekly=before,
                new_biweekly=after,
                new_all_time=operator.all_time_points,
                quota_completed=operator.quota_completed,
                promotion_eligible=eligibility.eligible,
            )
    except SQLAlchemyError as exc:
        logger.exception("Point update failed for operator %s", command.target_id)
        raise ExternalServiceError("Could not save the point update.") from exc

    logger.info(
        "Points %s by %s on %s: %d → %d (%s)",
        command.action, command.actor_id, command.target_id,
        result.before_biweekly, result.new_biweekly, command.reason,
    )
    return result


# ---------------------------------------------------------------------------
# Event submission
# ---------------------------------------------------------------------------
def submit_event(
    engine: Engine,
    *,
    discord_id: int,
    display_name: str,
    actor_tier: Tier,
    event_type: str,
    quantity: int = 1,
    description: str | None = None,
    now: datetime | None = None,
) -> EventSubmissionResult:
    """Record an activity event and award its points.

    Points include the operator's current streak bonus.  Operators removed
    from the roster raise :class:`OperatorNotFound`.
    """
    if not can_submit_events(actor_tier):
        raise PermissionDenied("You need the Operator role to submit events.")
    if not is_known_event(event_type):
        raise ValidationError(f"Unknown event type: {event_type!r}")
    if not (MIN_EVENT_QUANTITY <= quantity <= MAX_EVENT_QUANTITY):
        raise ValidationError(
            f"Quantity must be between {MIN_EVENT_QUANTITY} and {MAX_EVENT_QUANTITY}."
        )
    if description and len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters."
        )

    now = now or utcnow()
    with operator_lock(discord_id), get_session(engine) as session:
        operator = get_or_create_operator(
            session, discord_id, display_name, now, for_update=True
        )
        if not operator.active:
            logger.warning("Removed operator %s tried to submit %s", discord_id, event_type)
            raise OperatorNotFound("You have been removed from the roster.")

        was_completed = bool(operator.quota_completed)
        was_eligible = bool(operator.promotion_eligible)
        breakdown = points_breakdown(
            event_type, quantity, operator.current_streak_bonus or 0
        )
        points = breakdown.total_points

        operator.biweekly_points += points
        operator.all_time_points += points
        operator.rank_points += points
        operator.daily_points_today += points
        operator.biweekly_events += quantity
        operator.total_events += quantity
        operator.last_points_update = now

        session.add(EventLog(
            operator_id=operator.id,
            event_type=str(event_type),
            quantity=quantity,
            base_points=breakdown.base_points,
            streak_bonus=breakdown.streak_bonus,
            points_awarded=points,
            description=description,
            metadata_={"points_per_event": breakdown.points_per_event},
            timestamp=now,
        ))

        update_quota(operator)
        eligibility = refresh_eligibility(operator, now)

        result = EventSubmissionResult(
            discord_id=discord_id,
            event_type=str(event_type),
            event_name=event_name(event_type),
            breakdown=breakdown,
            points_awarded=points,
            new_biweekly=operator.biweekly_points,
            new_all_time=operator.all_time_points,
            new_rank_points=operator.rank_points,
            quota_completed=operator.quota_completed,
            quota_just_completed=operator.quota_completed and not was_completed,
            promotion_eligible=eligibility.eligible,
            became_eligible=eligibility.eligible and not was_eligible,
        )

    logger.info(
        "Event %s x%d by %s: +%d pts (bonus %d%%)",
        event_type, quantity, discord_id, points, breakdown.streak_bonus,
    )
    return result


# ---------------------------------------------------------------------------
# Promotions
# ---------------------------------------------------------------------------
def promote_operator(
    engine: Engine,
    *,
    discord_id: int,
    actor_id: int,
    actor_name: str,
    actor_tier: Tier,
    kind: PromotionKind | str = PromotionKind.STANDARD,
    reason: str | None = None,
    now: datetime | None = None,
    reference_hour: int = DEFAULT_LOCK_HOUR,
) -> PromotionResult:
    """Promote one rank.

    ``standard`` needs eligibility and a tier allowed to promote into the
    next level.  ``force`` (Generals) skips the points and hand-picked rules
    but still respects the rank lock.  ``bypass_lock`` (Generals) skips
    everything.
    """
    kind = PromotionKind(kind)
    if not can_manage_promotions(actor_tier):
        raise PermissionDenied("You do not have permission to manage promotions.")
    if kind is PromotionKind.FORCE and not can_force_promotions(actor_tier):
        raise PermissionDenied("Only Generals can force promotions.")
    if kind is PromotionKind.BYPASS_LOCK and not can_bypass_rank_lock(actor_tier):
        raise PermissionDenied("Only Generals can bypass rank locks.")

    now = now or utcnow()
    with operator_lock(discord_id), get_session(engine) as session:
        operator = _require_active(session, discord_id)
        current = get_rank(operator.rank_level)
        nxt = get_next_rank(operator.rank_level)
        if nxt is None:
            raise PromotionBlocked(
                f"{operator.display_name} is already at maximum rank.", rule="max_rank"
            )
        if not can_promote_to_rank(actor_tier, nxt.level):
            raise PermissionDenied(f"You cannot promote to {nxt.name}.")

        if kind is PromotionKind.STANDARD:
            eligibility = check_promotion_eligibility(operator, now)
            if not eligibility.eligible:
                raise PromotionBlocked(eligibility.reason, rule=eligibility.reason_code)
        elif kind is PromotionKind.FORCE and is_rank_locked(operator, now):
            lock = check_rank_lock_expiry(operator, now)
            raise PromotionBlocked(
                f"{operator.display_name} is rank locked for "
                f"{lock.days_remaining} more day(s).",
                rule="rank_locked",
            )

        record = _apply_promotion(
            operator,
            kind=kind,
            actor_id=actor_id,
            actor_name=actor_name,
            reason=reason,
            now=now,
            reference_hour=reference_hour,
        )
        return PromotionResult(
            discord_id=operator.discord_id,
            display_name=operator.display_name,
            kind=kind,
            from_rank=current,
            to_rank=nxt,
            lock_days=record.lock_days,
            lock_until=record.lock_until,
            new_quota=operator.biweekly_quota,
        )


# ---------------------------------------------------------------------------
# Removal
# ---------------------------------------------------------------------------
def deactivate_operator(
    engine: Engine,
    *,
    discord_id: int,
    actor_id: int,
    actor_tier: Tier,
    reason: str | None = None,
    now: datetime | None = None,
) -> Operator:
    """Soft-delete an operator.  The row and its history are kept."""
    if not can_delete_operators(actor_tier):
        raise PermissionDenied("Only Generals can remove operators.")

    now = now or utcnow()
    with operator_lock(discord_id), get_session(engine) as session:
        operator = _require_active(session, discord_id)
        operator.active = False
        operator.deleted_at = now
        operator.deleted_by = actor_id
        operator.deletion_reason = reason
        session.flush()
        session.expunge(operator)

    logger.info("Operator %s removed by %s: %s", discord_id, actor_id, reason)
    return operator


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------
def build_snapshot(operator: Operator, now: datetime) -> OperatorSnapshot:
    eligibility = check_promotion_eligibility(operator, now)
    return OperatorSnapshot(
        discord_id=operator.discord_id,
        display_name=operator.display_name,
        active=operator.active,
        rank=get_rank(operator.rank_level),
        biweekly_points=operator.biweekly_points,
        all_time_points=operator.all_time_points,
        rank_points=operator.rank_points,
        biweekly_events=operator.biweekly_events,
        total_events=operator.total_events,
        eligibility=eligibility,
        progress=rank_progress(eligibility),
        quota=quota_progress(operator),
        streak=streak_snapshot(operator),
        lock=check_rank_lock_expiry(operator, now),
        promotions=len(operator.promotion_history),
    )


def get_operator_snapshot(
    engine: Engine, discord_id: int, now: datetime | None = None
) -> OperatorSnapshot | None:
    now = now or utcnow()
    with get_session(engine) as session:
        operator = _find(session, discord_id)
        if operator is None:
            return None
        return build_snapshot(operator, now)


# ---------------------------------------------------------------------------
# Leaderboards & roster statistics
# ---------------------------------------------------------------------------
class LeaderboardKind(enum.StrEnum):
    BIWEEKLY = "biweekly"
    ALL_TIME = "all_time"
    STREAK = "streak"


@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
    position: int
    discord_id: int
    display_name: str
    rank_name: str
    score: int
    quota_completed: bool
    quota_streak: int


@dataclass(frozen=True, slots=True)
class LeaderboardPosition:
    discord_id: int
    biweekly: int
    all_time: int
    total: int


@dataclass(frozen=True, slots=True)
class RosterStatistics:
    total_operators: int = 0
    quota_completed: int = 0
    quota_rate: int = 0
    average_points: float = 0.0
    average_events: float = 0.0
    most_active: tuple[str, int] | None = None
    biggest_gainer: tuple[str, int] | None = None
    active_streaks: int = 0
    streaks_at_risk: int = 0
    bonus_holders: int = 0
    average_streak: float = 0.0
    longest_current_streak: int = 0
    longest_streak_ever: int = 0
    # bonus % → operators holding it
    bonus_distribution: dict[int, int] = field(default_factory=dict)


def _leaderboard_order(kind: LeaderboardKind) -> tuple:
    if kind is LeaderboardKind.ALL_TIME:
        return (Operator.all_time_points.desc(), Operator.rank_level.desc())
    if kind is LeaderboardKind.STREAK:
        return (Operator.quota_streak.desc(), Operator.longest_streak.desc())
    return (Operator.biweekly_points.desc(), Operator.biweekly_events.desc())


def _score(operator: Operator, kind: LeaderboardKind) -> int:
    if kind is LeaderboardKind.ALL_TIME:
        return operator.all_time_points
    if kind is LeaderboardKind.STREAK:
        return operator.quota_streak
    return operator.biweekly_points


def leaderboard(
    engine: Engine,
    kind: LeaderboardKind | str = LeaderboardKind.BIWEEKLY,
    limit: int = LEADERBOARD_LIMIT,
) -> list[LeaderboardEntry]:
    """Top active operators for *kind*, best first.

    Ties fall back to a secondary column, then to discord id, so the order
    is stable.  The streak board only lists operators with a live streak.
    """
    kind = LeaderboardKind(kind)
    if limit < 1:
        raise ValidationError("Leaderboard limit must be at least 1.")

    stmt = select(Operator).where(Operator.active.is_(True))
    if kind is LeaderboardKind.STREAK:
        stmt = stmt.where(Operator.quota_streak > 0)
    stmt = stmt.order_by(*_leaderboard_order(kind), Operator.discord_id).limit(limit)

    with get_session(engine) as session:
        operators = session.scalars(stmt).all()
        return [
            LeaderboardEntry(
                position=position,
                discord_id=op.discord_id,
                display_name=op.display_name,
                rank_name=op.rank_name,
                score=_score(op, kind),
                quota_completed=op.quota_completed,
                quota_streak=op.quota_streak,
            )
            for position, op in enumerate(operators, start=1)
        ]


def leaderboard_position(engine: Engine, discord_id: int) -> LeaderboardPosition | None:
    """Where one active operator stands on the points boards.

    Operators with equal points share a position.
    """
    with get_session(engine) as session:
        operator = _find(session, discord_id)
        if operator is None or not operator.active:
            return None

        def ahead(column, value: int) -> int:
            return session.scalar(
                select(func.count(Operator.id)).where(
                    Operator.active.is_(True), column > value
                )
            ) or 0

        total = session.scalar(
            select(func.count(Operator.id)).where(Operator.active.is_(True))
        ) or 0
        return LeaderboardPosition(
            discord_id=discord_id,
            biweekly=ahead(Operator.biweekly_points, operator.biweekly_points) + 1,
            all_time=ahead(Operator.all_time_points, operator.all_time_points) + 1,
            total=total,
        )


def summarize_roster(operators: Iterable[Operator]) -> RosterStatistics:
    """Aggregate counters over *operators* (callers pass the active roster)."""
    roster = list(operators)
    distribution = {0: 0, **{bonus: 0 for _, bonus in STREAK_MILESTONES}}
    if not roster:
        return RosterStatistics(bonus_distribution=distribution)

    total = len(roster)
    completed = sum(1 for op in roster if op.quota_completed)
    streaking = [op for op in roster if (op.quota_streak or 0) > 0]
    for op in roster:
        bonus = op.current_streak_bonus or 0
        distribution[bonus] = distribution.get(bonus, 0) + 1

    top_events = max(roster, key=lambda op: op.biweekly_events or 0)
    top_daily = max(roster, key=lambda op: op.daily_points_today or 0)

    return RosterStatistics(
        total_operators=total,
        quota_completed=completed,
        quota_rate=completed * 100 // total,
        average_points=round(sum(op.biweekly_points or 0 for op in roster) / total, 1),
        average_events=round(sum(op.biweekly_events or 0 for op in roster) / total, 1),
        most_active=(
            (top_events.display_name, top_events.biweekly_events)
            if top_events.biweekly_events else None
        ),
        biggest_gainer=(
            (top_daily.display_name, top_daily.daily_points_today)
            if top_daily.daily_points_today else None
        ),
        active_streaks=len(streaking),
        streaks_at_risk=sum(1 for op in roster if op.streak_at_risk),
        bonus_holders=sum(1 for op in roster if (op.current_streak_bonus or 0) > 0),
        average_streak=(
            round(sum(op.quota_streak for op in streaking) / len(streaking), 1)
            if streaking else 0.0
        ),
        longest_current_streak=max(op.quota_streak or 0 for op in roster),
        longest_streak_ever=max(op.longest_streak or 0 for op in roster),
        bonus_distribution=distribution,
    )


def roster_statistics(engine: Engine) -> RosterStatistics:
    with get_session(engine) as session:
        operators = session.scalars(
            select(Operator).where(Operator.active.is_(True))
        ).all()
        return summarize_roster(operators)


# ---------------------------------------------------------------------------
# Rank-lock expiry notices
# ---------------------------------------------------------------------------
def collect_lock_expiry_notices(
    engine: Engine, now: datetime | None = None
) -> list[LockExpiryNotice]:
    """Operators whose lock has run out and who have not been told yet.

    Eligibility is refreshed on the way.  Nothing is marked notified here;
    call :func:`mark_lock_notified` once the notice is delivered.
    """
    now = now or utcnow()
    notices: list[LockExpiryNotice] = []
    with get_session(engine) as session:
        candidates = session.scalars(
            select(Operator).where(
                Operator.active.is_(True),
                Operator.rank_lock_until.is_not(None),
                Operator.rank_lock_notified.is_(False),
            )
        ).all()
        for operator in candidates:
            status = check_rank_lock_expiry(operator, now)
            if not status.needs_notification:
                continue
            eligibility = refresh_eligibility(operator, now)
            notices.append(LockExpiryNotice(
                discord_id=operator.discord_id,
                display_name=operator.display_name,
                rank_name=operator.rank_name,
                expired_at=as_utc(operator.rank_lock_until),
                promotion_eligible=eligibility.eligible,
            ))
    return notices


def mark_lock_notified(engine: Engine, discord_id: int) -> bool:
    with get_session(engine) as session:
        operator = _find(session, discord_id)
        if operator is None:
            return False
        operator.rank_lock_notified = True
        return True
