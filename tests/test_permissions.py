"""
tests/test_permissions.py — Permission Tier Tests
==================================================

Tier resolution from Discord role ids and the capability predicates.
"""

from __future__ import annotations

import pytest

from brigade.engine.permissions import (
    Tier,
    bypasses_approval,
    bypasses_rate_limit,
    can_approve_requests,
    can_delete_operators,
    can_force_promotions,
    can_manage_points,
    can_promote_to_rank,
    can_reset_cycle,
    can_submit_events,
    can_view_leaderboard,
    can_view_other_stats,
    can_view_own_stats,
    parse_tier,
    permission_summary,
    resolve_tier,
)

ROLE_TIERS = {
    100: Tier.GENERAL,
    50: Tier.COMMANDING_OFFICER,
    10: Tier.OPERATOR,
}


class TestResolveTier:
    def test_highest_role_wins(self):
        assert resolve_tier([10, 50], ROLE_TIERS) is Tier.COMMANDING_OFFICER
        assert resolve_tier([10, 100, 50], ROLE_TIERS) is Tier.GENERAL

    def test_unmapped_roles_fail_closed(self):
        assert resolve_tier([999, 12345], ROLE_TIERS) is Tier.NONE

    def test_no_roles_or_no_mapping(self):
        assert resolve_tier([], ROLE_TIERS) is Tier.NONE
        assert resolve_tier(None, ROLE_TIERS) is Tier.NONE
        assert resolve_tier([100], {}) is Tier.NONE


class TestParseTier:
    @pytest.mark.parametrize("value, expected", [
        ("general", Tier.GENERAL),
        ("Generals", Tier.GENERAL),
        ("co", Tier.COMMANDING_OFFICER),
        ("Commanding Officer", Tier.COMMANDING_OFFICER),
        ("commanding-officer", Tier.COMMANDING_OFFICER),
        ("operator", Tier.OPERATOR),
        (50, Tier.COMMANDING_OFFICER),
        ("100", Tier.GENERAL),
        (Tier.OPERATOR, Tier.OPERATOR),
    ])
    def test_accepted_values(self, value, expected):
        assert parse_tier(value) is expected

    def test_unknown_name_rejected(self):
        with pytest.raises(ValueError):
            parse_tier("captain")


class TestCapabilities:
    def test_operator(self):
        assert can_submit_events(Tier.OPERATOR)
        assert can_view_own_stats(Tier.OPERATOR)
        assert can_view_leaderboard(Tier.OPERATOR)
        assert not can_manage_points(Tier.OPERATOR)
        assert not can_view_other_stats(Tier.OPERATOR)

    def test_no_role_can_do_nothing(self):
        assert not can_view_leaderboard(Tier.NONE)
        assert not any(permission_summary(Tier.NONE).values())

    def test_commanding_officer(self):
        tier = Tier.COMMANDING_OFFICER
        assert can_manage_points(tier)
        assert can_view_other_stats(tier)
        assert not can_force_promotions(tier)
        assert not can_delete_operators(tier)
        assert not can_reset_cycle(tier)
        assert not can_approve_requests(tier)
        assert not bypasses_rate_limit(tier)
        assert not bypasses_approval(tier)

    def test_general_has_everything(self):
        assert all(permission_summary(Tier.GENERAL).values())
        assert len(permission_summary(Tier.GENERAL)) == 13

    def test_promotion_ceiling(self):
        assert can_promote_to_rank(Tier.COMMANDING_OFFICER, 8)
        assert not can_promote_to_rank(Tier.COMMANDING_OFFICER, 9)
        assert can_promote_to_rank(Tier.GENERAL, 15)
        assert not can_promote_to_rank(Tier.OPERATOR, 2)
