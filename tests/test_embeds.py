"""
tests/test_embeds.py — Embed Builder Tests
===========================================
"""

from __future__ import annotations

from datetime import timedelta

import discord
import pytest
from conftest import NOW, make_operator
from test_approval_engine import make_command

from brigade.constants import COLOR_DENIED, COLOR_RATE_LIMIT
from brigade.engine.approval import ApprovalEvent, ApprovalRequest, MutationOutcome, PointAction
from brigade.services.approval_service import AuditAlert
from brigade.services.cycle_service import CycleResetSummary, StreakWarning
from brigade.services.embeds import (
    build_alert_embed,
    build_approval_outcome_embed,
    build_approval_request_embed,
    build_cycle_reset_embed,
    build_leaderboard_embed,
    build_stats_embed,
    build_streak_warning_embed,
    format_duration,
    progress_bar,
    rejection_text,
)
from brigade.services.operator_service import (
    LeaderboardEntry,
    LeaderboardKind,
    LeaderboardPosition,
    build_snapshot,
    summarize_roster,
)


def _field(embed: discord.Embed, name: str) -> str:
    for field in embed.fields:
        if field.name == name:
            return field.value
    raise AssertionError(f"no field {name!r}")


@pytest.mark.parametrize("pct, filled", [(0, 0), (45, 4), (100, 10), (150, 10)])
def test_progress_bar(pct, filled):
    bar = progress_bar(pct)
    assert bar.count("█") == filled
    assert len(bar) == 12


@pytest.mark.parametrize("seconds, text", [(30, "<1m"), (125, "2m"), (3725, "1h 2m")])
def test_format_duration(seconds, text):
    assert format_duration(seconds) == text


def test_rate_limited_rejection_mentions_retry():
    outcome = MutationOutcome.rejected("rate_limited", "Rate limit reached (10/10).",
                                       retry_after=600)
    assert "10m" in rejection_text(outcome)


def test_plain_rejection():
    outcome = MutationOutcome.rejected("permission_denied", "Nope.")
    assert rejection_text(outcome).endswith("Nope.")


def test_approval_request_embed():
    command = make_command(amount=80)
    embed = build_approval_request_embed(command, NOW + timedelta(hours=24), 50)
    assert "<@2>" in embed.description
    assert "80 points" in embed.description
    assert _field(embed, "Reason") == "Patrol cover"
    assert _field(embed, "Expires").startswith("<t:")


def test_outcome_embed_for_failed_apply():
    request = ApprovalRequest(
        request_id="1", command=make_command(amount=80),
        created_at=NOW, expires_at=NOW + timedelta(hours=24),
    )
    event = ApprovalEvent(
        kind="approved", request=request, reviewer_id=9,
        result=MutationOutcome.rejected("operator_not_found", "Gone."),
    )
    embed = build_approval_outcome_embed(event)
    assert _field(embed, "Decided by") == "<@9>"
    assert _field(embed, "Not applied") == "Gone."


def test_remove_all_alert_is_high_severity():
    alert = AuditAlert(
        kind="remove_all",
        command=make_command(action=PointAction.REMOVE_ALL, amount=0),
        created_at=NOW,
    )
    embed = build_alert_embed(alert)
    assert "HIGH SEVERITY" in embed.title
    assert embed.colour.value == COLOR_DENIED
    assert "ALL biweekly points" in embed.description


def test_rate_limit_alert():
    alert = AuditAlert(kind="rate_limited", command=make_command(), created_at=NOW,
                       retry_after=90, attempts=10)
    embed = build_alert_embed(alert)
    assert embed.colour.value == COLOR_RATE_LIMIT
    assert _field(embed, "Retry in") == "1m"


def test_stats_embed_for_locked_operator():
    operator = make_operator(
        rank_level=3, rank_points=50, biweekly_points=12, quota_streak=4,
        rank_lock_until=NOW + timedelta(days=2),
    )
    embed = build_stats_embed(build_snapshot(operator, NOW))
    assert "Lance Corporal" in embed.description
    assert "12/24" in _field(embed, "Biweekly quota")
    assert "Locked until" in _field(embed, "Rank progress")
    assert "+5% bonus" in _field(embed, "Streak")


def test_stats_embed_for_zero_quota_rank():
    embed = build_stats_embed(build_snapshot(make_operator(rank_level=12), NOW))
    assert _field(embed, "Biweekly quota") == "No quota at this rank"
    assert "hand-picked" in _field(embed, "Rank progress")


def test_cycle_reset_embed_reports_failures():
    summary = CycleResetSummary(processed=4, failed=1, streaks_extended=3, streaks_reset=1)
    embed = build_cycle_reset_embed(summary)
    assert _field(embed, "Failed").startswith("1")


def test_streak_warning_embed():
    embed = build_streak_warning_embed(
        StreakWarning(discord_id=7, display_name="Ghost", streak=6, bonus=10)
    )
    assert "<@7>" in embed.description
    assert "+10%" in embed.description


def _entry(position, name, score, **overrides):
    fields = {
        "position": position, "discord_id": position, "display_name": name,
        "rank_name": "Private", "score": score, "quota_completed": False,
        "quota_streak": 0,
    }
    fields.update(overrides)
    return LeaderboardEntry(**fields)


def test_leaderboard_embed_with_stats_and_position():
    entries = [_entry(1, "Ace", 40, quota_completed=True), _entry(2, "Bishop", 12)]
    stats = summarize_roster([
        make_operator(discord_id=1, display_name="Ace", biweekly_points=40,
                      quota_completed=True, biweekly_events=6),
        make_operator(discord_id=2, display_name="Bishop", biweekly_points=12),
    ])
    position = LeaderboardPosition(discord_id=2, biweekly=2, all_time=1, total=2)

    embed = build_leaderboard_embed(LeaderboardKind.BIWEEKLY, entries, stats, position)

    lines = embed.description.splitlines()
    assert lines[0].startswith("\U0001f947 Ace") and lines[0].endswith("✅")
    assert "Bishop (Private): 12 pts" in lines[1]
    assert _field(embed, "Quota") == "1/2 complete (50%)"
    assert _field(embed, "Most active") == "Ace (6 events)"
    assert embed.footer.text == "Your position: #2 of 2"


def test_streak_leaderboard_embed():
    entries = [_entry(1, "Crow", 7, quota_streak=7)]
    stats = summarize_roster([
        make_operator(discord_id=3, display_name="Crow", quota_streak=7,
                      longest_streak=7, current_streak_bonus=10),
    ])
    embed = build_leaderboard_embed(LeaderboardKind.STREAK, entries, stats)
    assert "7 cycle(s)" in embed.description
    assert "+10%: 1" in _field(embed, "Bonuses")
    assert embed.footer.text is None


def test_empty_leaderboard_embed():
    embed = build_leaderboard_embed(LeaderboardKind.ALL_TIME, [])
    assert embed.description == "No operators on the board yet."
    assert embed.fields == []
