"""
brigade.services.approval_service — Point Adjustment Workflow
==============================================================

Every ``/manage-points`` call ends up in :meth:`ApprovalWorkflow.submit`,
which runs these steps strictly in order:

  1. Validate the command, then check ``can_manage_points``
  2. Below General: count the attempt against the sliding-window limiter
  3. Below General and over the threshold: post an approval request to the
     review surface, arm the expiry timer, return ``pending``
  4. Otherwise apply now; Generals over the threshold and every
     ``remove_all`` also raise an audit alert

Pending requests are resolved by :meth:`ApprovalWorkflow.decide` (the
first qualifying General wins) or by :meth:`ApprovalWorkflow.expire` when
the timer fires.  The request leaves the store before the first ``await``
of either path, so it can only ever be resolved once.

Notification failures are logged and swallowed.  They never undo a
mutation or a decision.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Protocol

from brigade.constants import HIGH_SEVERITY_AMOUNT, utcnow
from brigade.database.engine import run_db
from brigade.engine.approval import (
    ApprovalEvent,
    ApprovalRequest,
    MutationOutcome,
    PointAction,
    PointCommand,
    validate_command,
)
from brigade.engine.permissions import (
    Tier,
    bypasses_approval,
    bypasses_rate_limit,
    can_manage_points,
)
from brigade.engine.rate_limit import SlidingWindowLimiter
from brigade.engine.store import KeyedStore, MemoryStore
from brigade.errors import BrigadeError, RateLimitExceeded, ValidationError
from brigade.services.operator_service import AdjustmentResult, apply_point_command

if TYPE_CHECKING:
    from sqlalchemy import Engine

    ApplyFn = Callable[[Engine, PointCommand, datetime], AdjustmentResult]

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 50
DEFAULT_WINDOW = timedelta(hours=24)
RATE_LIMIT_CLASS = "points"


# ---------------------------------------------------------------------------
# Collaborator contracts
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AuditAlert:
    kind: str  # rate_limited | large_adjustment | remove_all
    command: PointCommand
    created_at: datetime
    retry_after: float | None = None
    attempts: int | None = None
    outcome: MutationOutcome | None = None

    @property
    def high_severity(self) -> bool:
        return (
            self.command.action is PointAction.REMOVE_ALL
            or self.command.magnitude >= HIGH_SEVERITY_AMOUNT
        )


class ReviewSurface(Protocol):
    """Where Generals see approval requests and audit alerts."""

    async def post_request(self, command: PointCommand, expires_at: datetime) -> str:
        """Post a request and return its id (the posted message id)."""
        ...

    async def publish_outcome(self, event: ApprovalEvent) -> None: ...

    async def send_alert(self, alert: AuditAlert) -> None: ...


class ResultSink(Protocol):
    """Tells the requester what happened to their request."""

    async def deliver(self, event: ApprovalEvent) -> None: ...


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------
class ApprovalWorkflow:
    def __init__(
        self,
        engine: Engine,
        *,
        limiter: SlidingWindowLimiter,
        review_surface: ReviewSurface | None = None,
        result_sink: ResultSink | None = None,
        store: KeyedStore[str, ApprovalRequest] | None = None,
        threshold: int = DEFAULT_THRESHOLD,
        window: timedelta = DEFAULT_WINDOW,
        clock: Callable[[], datetime] = utcnow,
        apply_fn: ApplyFn = apply_point_command,
    ) -> None:
        self._engine = engine
        self._limiter = limiter
        self.review_surface = review_surface
        self.result_sink = result_sink
        # Backstop only; the expiry timer resolves requests long before this.
        self._store = store if store is not None else MemoryStore(
            default_ttl=window.total_seconds() * 2
        )
        self.threshold = threshold
        self.window = window
        self._clock = clock
        self._apply_fn = apply_fn
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()

    # -- queries ------------------------------------------------------------
    def get(self, request_id: str) -> ApprovalRequest | None:
        return self._store.get(request_id)

    def pending(self) -> list[ApprovalRequest]:
        requests = (self._store.get(key) for key in self._store.keys())
        return [r for r in requests if r is not None]

    def requires_approval(self, command: PointCommand) -> bool:
        return command.magnitude > self.threshold and not bypasses_approval(
            command.actor_tier
        )

    # -- submit ---------------------------------------------------------------
    async def submit(self, command: PointCommand) -> MutationOutcome:
        try:
            command = validate_command(command)
        except ValidationError as exc:
            return MutationOutcome.rejected(exc.reason_code, str(exc))

        if not can_manage_points(command.actor_tier):
            return MutationOutcome.rejected(
                "permission_denied",
                "You need Commanding Officer or General permissions to manage points.",
            )

        if not bypasses_rate_limit(command.actor_tier):
            try:
                self._limiter.enforce(command.actor_id, RATE_LIMIT_CLASS)
            except RateLimitExceeded as exc:
                await self._alert(AuditAlert(
                    kind="rate_limited",
                    command=command,
                    created_at=self._clock(),
                    retry_after=exc.retry_after,
                    attempts=exc.count,
                ))
                return MutationOutcome.rejected(
                    exc.reason_code, str(exc), retry_after=exc.retry_after
                )

        if self.requires_approval(command):
            return await self._open_request(command)

        outcome = await self._apply(command)
        if outcome.is_applied and (
            command.magnitude > self.threshold
            or command.action is PointAction.REMOVE_ALL
        ):
            alerted = await self._alert(AuditAlert(
                kind="remove_all" if command.action is PointAction.REMOVE_ALL
                else "large_adjustment",
                command=command,
                created_at=self._clock(),
                outcome=outcome,
            ))
            if alerted:
                outcome = replace(outcome, alerted=True)
        return outcome

    async def _open_request(self, command: PointCommand) -> MutationOutcome:
        if self.review_surface is None:
            logger.error(
                "Approval needed for %s by %s but no review surface is configured",
                command.action, command.actor_id,
            )
            return MutationOutcome.rejected(
                "configuration_error",
                "Approval is required but no review channel is configured.",
            )

        now = self._clock()
        expires_at = now + self.window
        try:
            request_id = await self.review_surface.post_request(command, expires_at)
        except Exception:
            logger.exception("Could not post approval request for %s", command.actor_id)
            return MutationOutcome.rejected(
                "external_service_error", "Could not post the approval request."
            )

        request = ApprovalRequest(
            request_id=str(request_id),
            command=command,
            created_at=now,
            expires_at=expires_at,
        )
        self._store.set(request.request_id, request)
        self._arm_timer(request.request_id)
        logger.info(
            "Approval request %s opened: %s %d for %s by %s",
            request.request_id, command.action, command.amount,
            command.target_id, command.actor_id,
        )
        await self._deliver(ApprovalEvent(kind="created", request=request))
        return MutationOutcome.pending(request)

    # -- resolution ---------------------------------------------------------
    async def decide(
        self, request_id: str, reviewer_id: int, reviewer_tier: Tier, approve: bool
    ) -> ApprovalEvent | None:
        """Resolve a pending request.  Returns None when the decision does not count."""
        request_id = str(request_id)
        request = self._store.get(request_id)
        if request is None:
            return None
        if not request.accepts_decision_from(reviewer_id, reviewer_tier):
            logger.info(
                "Ignored decision on %s by %s (tier %s)",
                request_id, reviewer_id, reviewer_tier,
            )
            return None

        # Claim the request before any suspension point.
        self._store.pop(request_id)
        self._cancel_timer(request_id)
        request.decide(reviewer_id, approve, self._clock())

        result = await self._apply(request.command) if approve else None
        event = ApprovalEvent(
            kind=str(request.state), request=request, reviewer_id=reviewer_id, result=result
        )
        logger.info("Approval request %s %s by %s", request_id, request.state, reviewer_id)
        await self._publish(event)
        return event

    async def expire(self, request_id: str) -> ApprovalEvent | None:
        request_id = str(request_id)
        request = self._store.pop(request_id)
        self._cancel_timer(request_id)
        if request is None or not request.is_pending:
            return None
        request.expire(self._clock())
        event = ApprovalEvent(kind="expired", request=request)
        logger.info("Approval request %s expired", request_id)
        await self._publish(event)
        return event

    # -- timers ---------------------------------------------------------------
    def _arm_timer(self, request_id: str) -> None:
        loop = asyncio.get_running_loop()
        self._timers[request_id] = loop.call_later(
            self.window.total_seconds(), self._on_timeout, request_id
        )

    def _cancel_timer(self, request_id: str) -> None:
        handle = self._timers.pop(request_id, None)
        if handle is not None:
            handle.cancel()

    def _on_timeout(self, request_id: str) -> None:
        self._timers.pop(request_id, None)
        task = asyncio.ensure_future(self.expire(request_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def has_timer(self, request_id: str) -> bool:
        return request_id in self._timers

    def shutdown(self) -> None:
        """Cancel every armed timer.  Pending requests are dropped."""
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._store.clear()

    def sweep(self) -> int:
        return self._limiter.sweep() + self._store.sweep()

    # -- side effects -------------------------------------------------------
    async def _apply(self, command: PointCommand) -> MutationOutcome:
        try:
            result = await run_db(self._apply_fn, self._engine, command, self._clock())
        except BrigadeError as exc:
            logger.warning(
                "Point command by %s on %s rejected: %s",
                command.actor_id, command.target_id, exc,
            )
            return MutationOutcome.rejected(exc.reason_code, str(exc))
        return MutationOutcome.applied(result)

    async def _alert(self, alert: AuditAlert) -> bool:
        if self.review_surface is None:
            logger.warning(
                "Audit alert %s for %s dropped: no review surface configured",
                alert.kind, alert.command.actor_id,
            )
            return False
        try:
            await self.review_surface.send_alert(alert)
        except Exception:
            logger.exception("Failed to send %s alert", alert.kind)
            return False
        return True

    async def _deliver(self, event: ApprovalEvent) -> None:
        if self.result_sink is None:
            return
        try:
            await self.result_sink.deliver(event)
        except Exception:
            logger.exception(
                "Failed to notify requester of %s request %s",
                event.kind, event.request.request_id,
            )

    async def _publish(self, event: ApprovalEvent) -> None:
        if self.review_surface is not None:
            try:
                await self.review_surface.publish_outcome(event)
            except Exception:
                logger.exception(
                    "Failed to publish outcome of request %s", event.request.request_id
                )
        await self._deliver(event)
