"""
tests/test_approval_workflow.py — Approval Workflow Integration Tests
======================================================================

Drives :class:`ApprovalWorkflow` end to end against the SQLite engine with
fake review-surface and result-sink collaborators.  Async scenarios run
through ``run_async`` (no pytest-asyncio).
"""

from __future__ import annotations

import asyncio
import time
from datetime import timedelta

from conftest import add_operator
from test_approval_engine import make_command

from brigade.engine.approval import PointAction
from brigade.engine.permissions import Tier
from brigade.engine.rate_limit import SlidingWindowLimiter
from brigade.engine.store import MemoryStore
from brigade.services import operator_service
from brigade.services.approval_service import ApprovalWorkflow
from brigade.services.operator_service import deactivate_operator, get_operator

GENERAL_ID = 500
OTHER_GENERAL_ID = 501


# Helper to run async tests without pytest-asyncio
def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.run(coro)


class FakeSurface:
    def __init__(self, *, fail_post: bool = False, fail_alert: bool = False) -> None:
        self.fail_post = fail_post
        self.fail_alert = fail_alert
        self.posted = []
        self.outcomes = []
        self.alerts = []
        self._next_id = 9000

    async def post_request(self, command, expires_at):
        if self.fail_post:
            raise RuntimeError("channel unavailable")
        self._next_id += 1
        self.posted.append((command, expires_at))
        return str(self._next_id)

    async def publish_outcome(self, event):
        self.outcomes.append(event)

    async def send_alert(self, alert):
        if self.fail_alert:
            raise RuntimeError("channel unavailable")
        self.alerts.append(alert)


class FakeSink:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.events = []

    async def deliver(self, event):
        if self.fail:
            raise RuntimeError("DMs closed")
        self.events.append(event)


def make_workflow(db_engine, *, surface=None, sink=None, limit=10, window=None):
    return ApprovalWorkflow(
        db_engine,
        limiter=SlidingWindowLimiter(max_actions=limit, window_seconds=3600),
        review_surface=surface,
        result_sink=sink,
        store=MemoryStore(),
        threshold=50,
        window=window or timedelta(hours=24),
    )


def biweekly(db_engine, discord_id: int = 2) -> int | None:
    operator = get_operator(db_engine, discord_id)
    return None if operator is None else operator.biweekly_points


# ---------------------------------------------------------------------------
# Immediate application
# ---------------------------------------------------------------------------
class TestImmediate:
    def test_small_adjustment_applies(self, db_engine):
        surface = FakeSurface()
        workflow = make_workflow(db_engine, surface=surface)

        outcome = run_async(workflow.submit(make_command(amount=30)))

        assert outcome.is_applied
        assert outcome.before_biweekly_points == 0
        assert outcome.new_biweekly_points == 30
        assert outcome.quota_completed
        assert not outcome.alerted
        assert surface.posted == [] and surface.alerts == []
        assert biweekly(db_engine) == 30

    def test_threshold_itself_does_not_need_approval(self, db_engine):
        workflow = make_workflow(db_engine, surface=FakeSurface())
        assert run_async(workflow.submit(make_command(amount=50))).is_applied

    def test_general_large_adjustment_applies_and_alerts(self, db_engine):
        surface = FakeSurface()
        workflow = make_workflow(db_engine, surface=surface)

        outcome = run_async(workflow.submit(make_command(
            actor_id=GENERAL_ID, actor_tier=Tier.GENERAL, amount=150,
        )))

        assert outcome.is_applied
        assert outcome.alerted
        assert [a.kind for a in surface.alerts] == ["large_adjustment"]
        assert surface.alerts[0].high_severity
        assert biweekly(db_engine) == 150

    def test_remove_all_alerts_at_any_tier(self, db_engine):
        surface = FakeSurface()
        workflow = make_workflow(db_engine, surface=surface)
        run_async(workflow.submit(make_command(amount=40)))

        outcome = run_async(workflow.submit(make_command(
            action=PointAction.REMOVE_ALL, amount=0,
        )))

        assert outcome.is_applied
        assert outcome.new_biweekly_points == 0
        assert [a.kind for a in surface.alerts] == ["remove_all"]
        assert surface.alerts[0].high_severity

    def test_overlapping_submits_both_land(self, db_engine, monkeypatch):
        add_operator(db_engine, discord_id=2, biweekly_points=1, all_time_points=1)
        original = operator_service.apply_adjustment

        def slow_adjustment(*args, **kwargs):
            time.sleep(0.2)
            return original(*args, **kwargs)

        monkeypatch.setattr(operator_service, "apply_adjustment", slow_adjustment)
        workflow = make_workflow(db_engine, surface=FakeSurface())
        command = make_command(actor_id=GENERAL_ID, actor_tier=Tier.GENERAL, amount=10)

        async def both():
            return await asyncio.gather(workflow.submit(command), workflow.submit(command))

        outcomes = run_async(both())

        assert all(o.is_applied for o in outcomes)
        assert sorted(o.new_biweekly_points for o in outcomes) == [11, 21]
        assert biweekly(db_engine) == 21

    def test_alert_failure_does_not_undo_mutation(self, db_engine):
        workflow = make_workflow(db_engine, surface=FakeSurface(fail_alert=True))
        outcome = run_async(workflow.submit(make_command(
            actor_id=GENERAL_ID, actor_tier=Tier.GENERAL, amount=80,
        )))
        assert outcome.is_applied
        assert not outcome.alerted
        assert biweekly(db_engine) == 80


# ---------------------------------------------------------------------------
# Rejections
# ---------------------------------------------------------------------------
class TestRejections:
    def test_validation_runs_before_rate_limit(self, db_engine):
        workflow = make_workflow(db_engine, limit=1)
        outcome = run_async(workflow.submit(make_command(amount=0)))
        assert outcome.reason_code == "validation_error"
        # the bad command did not use up the single slot
        assert run_async(workflow.submit(make_command(amount=5))).is_applied

    def test_operator_cannot_manage_points(self, db_engine):
        workflow = make_workflow(db_engine)
        outcome = run_async(workflow.submit(make_command(actor_tier=Tier.OPERATOR)))
        assert outcome.reason_code == "permission_denied"
        assert biweekly(db_engine) is None

    def test_rate_limit_rejects_and_alerts(self, db_engine):
        surface = FakeSurface()
        workflow = make_workflow(db_engine, surface=surface, limit=2)

        async def scenario():
            return [await workflow.submit(make_command(amount=5)) for _ in range(3)]

        outcomes = run_async(scenario())

        assert [o.status for o in outcomes] == ["applied", "applied", "rejected"]
        assert outcomes[2].reason_code == "rate_limited"
        assert outcomes[2].retry_after > 0
        assert [a.kind for a in surface.alerts] == ["rate_limited"]
        assert surface.alerts[0].attempts == 2
        assert biweekly(db_engine) == 10

    def test_generals_bypass_rate_limit(self, db_engine):
        workflow = make_workflow(db_engine, limit=1)

        async def scenario():
            return [
                await workflow.submit(make_command(
                    actor_id=GENERAL_ID, actor_tier=Tier.GENERAL, amount=5,
                ))
                for _ in range(3)
            ]

        assert all(o.is_applied for o in run_async(scenario()))

    def test_missing_surface_is_a_configuration_error(self, db_engine):
        workflow = make_workflow(db_engine)
        outcome = run_async(workflow.submit(make_command(amount=80)))
        assert outcome.reason_code == "configuration_error"
        assert workflow.pending() == []
        assert biweekly(db_engine) is None

    def test_post_failure_is_an_external_error(self, db_engine):
        workflow = make_workflow(db_engine, surface=FakeSurface(fail_post=True))
        outcome = run_async(workflow.submit(make_command(amount=80)))
        assert outcome.reason_code == "external_service_error"
        assert workflow.pending() == []


# ---------------------------------------------------------------------------
# Approval round trips
# ---------------------------------------------------------------------------
class TestApprovalFlow:
    def test_large_co_adjustment_goes_pending(self, db_engine):
        surface, sink = FakeSurface(), FakeSink()
        workflow = make_workflow(db_engine, surface=surface, sink=sink)

        async def scenario():
            outcome = await workflow.submit(make_command(amount=80))
            return outcome, workflow.has_timer(outcome.request_id)

        outcome, armed = run_async(scenario())

        assert outcome.status == "pending"
        assert outcome.request_id == "9001"
        assert outcome.expires_at is not None
        assert armed
        assert workflow.get("9001").is_pending
        assert [e.kind for e in sink.events] == ["created"]
        assert biweekly(db_engine) is None

    def test_approval_applies_once(self, db_engine):
        surface, sink = FakeSurface(), FakeSink()
        workflow = make_workflow(db_engine, surface=surface, sink=sink)

        async def scenario():
            pending = await workflow.submit(make_command(amount=80))
            first = await workflow.decide(pending.request_id, GENERAL_ID, Tier.GENERAL, True)
            second = await workflow.decide(
                pending.request_id, OTHER_GENERAL_ID, Tier.GENERAL, True
            )
            return pending, first, second

        pending, first, second = run_async(scenario())

        assert first.kind == "approved"
        assert first.reviewer_id == GENERAL_ID
        assert first.result.is_applied
        assert second is None
        assert not workflow.has_timer(pending.request_id)
        assert workflow.get(pending.request_id) is None
        assert biweekly(db_engine) == 80
        assert [e.kind for e in surface.outcomes] == ["approved"]
        assert [e.kind for e in sink.events] == ["created", "approved"]

    def test_denial_leaves_target_untouched(self, db_engine):
        sink = FakeSink()
        workflow = make_workflow(db_engine, surface=FakeSurface(), sink=sink)

        async def scenario():
            pending = await workflow.submit(make_command(amount=80))
            return await workflow.decide(pending.request_id, GENERAL_ID, Tier.GENERAL, False)

        event = run_async(scenario())

        assert event.kind == "denied"
        assert event.result is None
        assert biweekly(db_engine) is None
        assert sink.events[-1].kind == "denied"

    def test_non_general_and_self_decisions_are_ignored(self, db_engine):
        workflow = make_workflow(db_engine, surface=FakeSurface())

        async def scenario():
            pending = await workflow.submit(make_command(amount=80))
            by_co = await workflow.decide(pending.request_id, 77, Tier.COMMANDING_OFFICER, True)
            # requester later promoted to General still cannot self-approve
            by_self = await workflow.decide(pending.request_id, 1, Tier.GENERAL, True)
            return pending, by_co, by_self

        pending, by_co, by_self = run_async(scenario())

        assert by_co is None and by_self is None
        assert workflow.get(pending.request_id).is_pending
        assert biweekly(db_engine) is None

    def test_unknown_request_is_ignored(self, db_engine):
        workflow = make_workflow(db_engine, surface=FakeSurface())
        assert run_async(workflow.decide("404", GENERAL_ID, Tier.GENERAL, True)) is None

    def test_request_expires_without_decision(self, db_engine):
        surface, sink = FakeSurface(), FakeSink()
        workflow = make_workflow(
            db_engine, surface=surface, sink=sink, window=timedelta(milliseconds=50)
        )

        async def scenario():
            pending = await workflow.submit(make_command(amount=80))
            await asyncio.sleep(0.3)
            late = await workflow.decide(pending.request_id, GENERAL_ID, Tier.GENERAL, True)
            return pending, late

        pending, late = run_async(scenario())

        assert late is None
        assert workflow.get(pending.request_id) is None
        assert [e.kind for e in surface.outcomes] == ["expired"]
        assert sink.events[-1].kind == "expired"
        assert biweekly(db_engine) is None

    def test_sink_failure_does_not_undo_approval(self, db_engine):
        workflow = make_workflow(db_engine, surface=FakeSurface(), sink=FakeSink(fail=True))

        async def scenario():
            pending = await workflow.submit(make_command(amount=80))
            return await workflow.decide(pending.request_id, GENERAL_ID, Tier.GENERAL, True)

        event = run_async(scenario())
        assert event.result.is_applied
        assert biweekly(db_engine) == 80

    def test_removed_target_yields_approved_but_not_applied(self, db_engine):
        workflow = make_workflow(db_engine, surface=FakeSurface())
        run_async(workflow.submit(make_command(amount=5)))
        deactivate_operator(
            db_engine, discord_id=2, actor_id=GENERAL_ID, actor_tier=Tier.GENERAL,
        )

        async def scenario():
            pending = await workflow.submit(make_command(amount=80))
            return await workflow.decide(pending.request_id, GENERAL_ID, Tier.GENERAL, True)

        event = run_async(scenario())

        assert event.kind == "approved"
        assert not event.result.is_applied
        assert event.result.reason_code == "operator_not_found"
        assert biweekly(db_engine) == 5

    def test_shutdown_cancels_timers(self, db_engine):
        workflow = make_workflow(db_engine, surface=FakeSurface())

        async def scenario():
            pending = await workflow.submit(make_command(amount=80))
            workflow.shutdown()
            return pending

        pending = run_async(scenario())
        assert not workflow.has_timer(pending.request_id)
        assert workflow.pending() == []
