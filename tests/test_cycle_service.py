"""
tests/test_cycle_service.py — Bulk Cycle Pass Tests
====================================================

Cycle reset, quota pass, daily counters and streak scans, including
per-operator failure isolation.
"""

from __future__ import annotations

from datetime import timedelta

from conftest import NOW, add_operator

import brigade.services.cycle_service as cycle_service
from brigade.services.cycle_service import (
    reset_cycle,
    reset_daily_stats,
    scan_streaks_at_risk,
    update_all_quotas,
)
from brigade.services.operator_service import get_operator


class TestResetCycle:
    def test_streaks_move_on_completion(self, db_engine):
        add_operator(db_engine, discord_id=1, biweekly_points=25, biweekly_events=6,
                     daily_points_today=4, quota_streak=2, longest_streak=2)
        add_operator(db_engine, discord_id=2, biweekly_points=5, quota_streak=4,
                     current_streak_bonus=5, streak_bonus_active=True)
        add_operator(db_engine, discord_id=3, rank_level=9, quota_streak=1)

        summary = reset_cycle(db_engine, NOW)

        assert summary.processed == 3
        assert summary.failed == 0
        assert summary.streaks_extended == 2
        assert summary.streaks_reset == 1

        finisher = get_operator(db_engine, 1)
        assert finisher.quota_streak == 3
        assert finisher.current_streak_bonus == 5
        assert finisher.biweekly_points == 0
        assert finisher.biweekly_events == 0
        assert finisher.daily_points_today == 0
        assert not finisher.quota_completed

        misser = get_operator(db_engine, 2)
        assert misser.quota_streak == 0
        assert not misser.streak_bonus_active

        officer = get_operator(db_engine, 3)
        assert officer.quota_streak == 2
        assert officer.quota_completed

    def test_keeps_lifetime_counters(self, db_engine):
        add_operator(db_engine, discord_id=1, biweekly_points=25, all_time_points=400,
                     rank_points=60)
        reset_cycle(db_engine, NOW)
        operator = get_operator(db_engine, 1)
        assert (operator.all_time_points, operator.rank_points) == (400, 60)

    def test_skips_removed_operators(self, db_engine):
        add_operator(db_engine, discord_id=1, active=False, biweekly_points=30,
                     quota_streak=5)
        summary = reset_cycle(db_engine, NOW)
        assert summary.total == 0
        assert get_operator(db_engine, 1).quota_streak == 5

    def test_one_failure_does_not_stop_the_pass(self, db_engine, monkeypatch):
        for discord_id in (1, 2, 3):
            add_operator(db_engine, discord_id=discord_id, biweekly_points=30)

        real = cycle_service.record_cycle_boundary

        def flaky(operator, completed, now):
            if operator.discord_id == 2:
                raise RuntimeError("corrupt row")
            return real(operator, completed, now)

        monkeypatch.setattr(cycle_service, "record_cycle_boundary", flaky)

        summary = reset_cycle(db_engine, NOW)

        assert summary.processed == 2
        assert summary.failed == 1
        assert summary.failures == [2]
        # the failed operator's transaction was rolled back
        assert get_operator(db_engine, 2).biweekly_points == 30
        assert get_operator(db_engine, 3).biweekly_points == 0


class TestQuotaPass:
    def test_recomputes_stale_quotas(self, db_engine):
        add_operator(db_engine, discord_id=1, rank_level=5, biweekly_quota=20,
                     biweekly_points=25, quota_completed=True)
        add_operator(db_engine, discord_id=2, rank_level=1, biweekly_quota=20)

        summary = update_all_quotas(db_engine)

        assert summary.total == 2
        assert summary.updated == 1
        assert summary.completion_changes == 1
        operator = get_operator(db_engine, 1)
        assert operator.biweekly_quota == 30
        assert not operator.quota_completed

    def test_idempotent(self, db_engine):
        add_operator(db_engine, discord_id=1, rank_level=7, biweekly_quota=10)
        update_all_quotas(db_engine)
        assert update_all_quotas(db_engine).updated == 0


class TestDailyStats:
    def test_resets_once_per_day(self, db_engine):
        add_operator(db_engine, discord_id=1, daily_points_today=8,
                     last_daily_reset=NOW - timedelta(days=1))
        add_operator(db_engine, discord_id=2, daily_points_today=3,
                     last_daily_reset=NOW - timedelta(hours=1))

        assert reset_daily_stats(db_engine, NOW) == 1
        assert get_operator(db_engine, 1).daily_points_today == 0
        assert get_operator(db_engine, 2).daily_points_today == 3
        assert reset_daily_stats(db_engine, NOW) == 0


class TestStreakScan:
    def test_flags_once_per_cooldown(self, db_engine):
        add_operator(db_engine, discord_id=1, quota_streak=3, current_streak_bonus=5)
        add_operator(db_engine, discord_id=2, quota_streak=3, biweekly_points=4)
        add_operator(db_engine, discord_id=3, quota_streak=0)

        warnings = scan_streaks_at_risk(db_engine, NOW)

        assert [w.discord_id for w in warnings] == [1]
        assert warnings[0].bonus == 5
        assert get_operator(db_engine, 1).streak_at_risk

        assert scan_streaks_at_risk(db_engine, NOW + timedelta(hours=2)) == []
        assert len(scan_streaks_at_risk(db_engine, NOW + timedelta(hours=25))) == 1
