"""
tests/test_points.py — Event Scoring & Point Adjustment Tests
==============================================================

Pure calculation, no database.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from conftest import make_operator

from brigade.engine.points import (
    BASE_POINTS,
    EventType,
    PointAction,
    apply_adjustment,
    base_points,
    event_name,
    is_known_event,
    points_breakdown,
    points_per_event,
    total_points,
)


class TestEventScoring:
    def test_every_event_has_a_value(self):
        assert set(BASE_POINTS) == set(EventType)
        assert base_points(EventType.WAR) == 20
        assert base_points("solo_patrol") == 1

    def test_unknown_event_is_worth_nothing(self):
        assert not is_known_event("bake_sale")
        assert base_points("bake_sale") == 0
        assert event_name("bake_sale") == "bake_sale"

    def test_display_names(self):
        assert event_name(EventType.MRB_TRYOUT_PUBLIC) == "MRB Tryout (Public)"

    @pytest.mark.parametrize("event, bonus, expected", [
        (EventType.MRB_MASS_PATROL, 0, 4),
        (EventType.MRB_MASS_PATROL, 5, 4),     # 4.2
        (EventType.MRB_MASS_PATROL, 15, 5),    # 4.6
        (EventType.WARRANT_EXECUTION, 5, 11),  # 10.5 rounds up
        (EventType.WARRANT_EXECUTION, 15, 12),  # 11.5 rounds up
        (EventType.COMBAT_TRAINING, 10, 2),    # 2.2
        (EventType.WAR, 10, 22),
    ])
    def test_streak_bonus_rounds_half_up(self, event, bonus, expected):
        assert points_per_event(event, bonus) == expected

    def test_bonus_applies_per_event_before_quantity(self):
        # 10.5 → 11, then ×3; not round(31.5)
        assert total_points(EventType.WARRANT_EXECUTION, 3, 5) == 33

    def test_breakdown(self):
        breakdown = points_breakdown(EventType.MRB_INSPECTION, 2, 10)
        assert breakdown.base_points == 3
        assert breakdown.multiplier == Decimal("1.1")
        assert breakdown.points_per_event == 3
        assert breakdown.total_points == 6
        assert breakdown.has_streak_bonus
        assert "10% streak bonus" in breakdown.describe()
        assert "× 2 events" in breakdown.describe()

    def test_breakdown_without_bonus(self):
        breakdown = points_breakdown(EventType.SOLO_PATROL)
        assert not breakdown.has_streak_bonus
        assert breakdown.describe() == "1 base = 1 pts"


class TestApplyAdjustment:
    def test_add_raises_all_counters(self):
        op = make_operator(biweekly_points=5, all_time_points=50, rank_points=10)
        assert apply_adjustment(op, PointAction.ADD, 7) == (5, 12)
        assert (op.all_time_points, op.rank_points) == (57, 17)

    def test_remove_floors_at_zero(self):
        op = make_operator(biweekly_points=5, all_time_points=50, rank_points=3)
        assert apply_adjustment(op, "remove", 10) == (5, 0)
        assert op.all_time_points == 40
        assert op.rank_points == 0

    def test_set_only_touches_biweekly(self):
        op = make_operator(biweekly_points=5, all_time_points=50, rank_points=3)
        assert apply_adjustment(op, PointAction.SET, 30) == (5, 30)
        assert (op.all_time_points, op.rank_points) == (50, 3)

    def test_remove_all(self):
        op = make_operator(biweekly_points=44, all_time_points=50)
        assert apply_adjustment(op, PointAction.REMOVE_ALL, 0) == (44, 0)
        assert op.all_time_points == 50

    def test_unknown_action(self):
        with pytest.raises(ValueError):
            apply_adjustment(make_operator(), "double", 5)
