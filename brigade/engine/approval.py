"""
brigade.engine.approval — Point Commands & Approval State Machine
==================================================================

A point adjustment travels as an immutable :class:`PointCommand`.  When a
Commanding Officer asks for more than the approval threshold, the command
is parked in an :class:`ApprovalRequest` until a General decides or the
window runs out::

    pending ──decision(approve)──▶ approved
            ──decision(deny)─────▶ denied
            ──timer──────────────▶ expired

Exactly one transition ever happens.  Only a General who is not the
requester may decide.  The orchestration (posting, timers, replay) lives in
:mod:`brigade.services.approval_service`.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from brigade.engine.permissions import Tier, can_approve_requests
from brigade.engine.points import PointAction
from brigade.errors import ValidationError

if TYPE_CHECKING:
    from brigade.services.operator_service import AdjustmentResult

__all__ = [
    "MAX_AMOUNT",
    "MIN_AMOUNT",
    "ApprovalEvent",
    "ApprovalRequest",
    "ApprovalState",
    "MutationOutcome",
    "PointAction",
    "PointCommand",
    "validate_command",
]

MIN_AMOUNT = 1
MAX_AMOUNT = 1000
MAX_REASON_LENGTH = 500


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PointCommand:
    """A requested point mutation, replayable as its original actor."""

    actor_id: int
    actor_name: str
    actor_tier: Tier
    target_id: int
    target_name: str
    action: PointAction
    amount: int
    reason: str

    @property
    def magnitude(self) -> int:
        return abs(self.amount)


def validate_command(command: PointCommand) -> PointCommand:
    """Check ranges and return a normalized copy.

    ``remove_all`` carries no amount; it is forced to 0.  Everything else
    needs ``1 ≤ amount ≤ 1000``.  A reason is always required.
    """
    try:
        action = PointAction(command.action)
    except ValueError:
        raise ValidationError(f"Unknown action: {command.action!r}") from None

    reason = (command.reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required for point adjustments.")
    if len(reason) > MAX_REASON_LENGTH:
        raise ValidationError(f"Reason must be at most {MAX_REASON_LENGTH} characters.")

    amount = command.amount
    if action is PointAction.REMOVE_ALL:
        amount = 0
    elif amount is None or not (MIN_AMOUNT <= amount <= MAX_AMOUNT):
        raise ValidationError(
            f"Amount must be between {MIN_AMOUNT} and {MAX_AMOUNT} for '{action}'."
        )

    return PointCommand(
        actor_id=command.actor_id,
        actor_name=command.actor_name,
        actor_tier=Tier(command.actor_tier),
        target_id=command.target_id,
        target_name=command.target_name,
        action=action,
        amount=amount,
        reason=reason,
    )


# ---------------------------------------------------------------------------
# Approval requests
# ---------------------------------------------------------------------------
class ApprovalState(enum.StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    EXPIRED = "expired"


@dataclass(slots=True)
class ApprovalRequest:
    request_id: str
    command: PointCommand
    created_at: datetime
    expires_at: datetime
    state: ApprovalState = ApprovalState.PENDING
    decided_by: int | None = None
    decided_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.state is ApprovalState.PENDING

    def accepts_decision_from(self, reviewer_id: int, reviewer_tier: Tier) -> bool:
        """Whether a decision by this reviewer would count."""
        return (
            self.is_pending
            and can_approve_requests(reviewer_tier)
            and reviewer_id != self.command.actor_id
        )

    def decide(self, reviewer_id: int, approve: bool, now: datetime) -> None:
        if not self.is_pending:
            raise ValueError(f"Request {self.request_id} already {self.state}")
        self.state = ApprovalState.APPROVED if approve else ApprovalState.DENIED
        self.decided_by = reviewer_id
        self.decided_at = now

    def expire(self, now: datetime) -> None:
        if not self.is_pending:
            raise ValueError(f"Request {self.request_id} already {self.state}")
        self.state = ApprovalState.EXPIRED
        self.decided_at = now


# ---------------------------------------------------------------------------
# Outcomes & events
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class MutationOutcome:
    status: str  # applied | pending | rejected
    new_biweekly_points: int | None = None
    new_all_time_points: int | None = None
    before_biweekly_points: int | None = None
    quota_completed: bool | None = None
    promotion_eligible: bool | None = None
    expires_at: datetime | None = None
    request_id: str | None = None
    reason_code: str | None = None
    message: str | None = None
    retry_after: float | None = None
    alerted: bool = False

    @classmethod
    def applied(cls, result: AdjustmentResult, *, alerted: bool = False) -> MutationOutcome:
        return cls(
            status="applied",
            new_biweekly_points=result.new_biweekly,
            new_all_time_points=result.new_all_time,
            before_biweekly_points=result.before_biweekly,
            quota_completed=result.quota_completed,
            promotion_eligible=result.promotion_eligible,
            alerted=alerted,
        )

    @classmethod
    def pending(cls, request: ApprovalRequest) -> MutationOutcome:
        return cls(
            status="pending",
            expires_at=request.expires_at,
            request_id=request.request_id,
        )

    @classmethod
    def rejected(
        cls, reason_code: str, message: str = "", *, retry_after: float | None = None
    ) -> MutationOutcome:
        return cls(
            status="rejected",
            reason_code=reason_code,
            message=message,
            retry_after=retry_after,
        )

    @property
    def is_applied(self) -> bool:
        return self.status == "applied"


@dataclass(frozen=True, slots=True)
class ApprovalEvent:
    kind: str  # created | approved | denied | expired
    request: ApprovalRequest
    reviewer_id: int | None = None
    result: MutationOutcome | None = None
