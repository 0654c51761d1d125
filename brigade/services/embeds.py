"""
brigade.services.embeds — Discord embed builders
=================================================

All embed construction lives here so the cogs and adapters only supply
result objects from the services.  Instants are rendered with Discord's
``<t:…>`` markup so every reader sees their own timezone.
"""

from __future__ import annotations

import discord
from discord.utils import format_dt

from brigade.constants import (
    COLOR_APPROVED,
    COLOR_DENIED,
    COLOR_EXPIRED,
    COLOR_PENDING,
    COLOR_RATE_LIMIT,
    TIER_LABELS,
    action_label,
)
from brigade.engine.approval import ApprovalEvent, MutationOutcome, PointCommand
from brigade.services.approval_service import AuditAlert
from brigade.services.cycle_service import CycleResetSummary, StreakWarning
from brigade.services.operator_service import (
    EventSubmissionResult,
    LeaderboardEntry,
    LeaderboardKind,
    LeaderboardPosition,
    LockExpiryNotice,
    OperatorSnapshot,
    PromotionResult,
    RosterStatistics,
)


# ---------------------------------------------------------------------------
# Small formatting helpers
# ---------------------------------------------------------------------------
def progress_bar(percentage: int, length: int = 10) -> str:
    filled = max(0, min(length, (percentage * length) // 100))
    return "[" + "\u2588" * filled + "\u2591" * (length - filled) + "]"


def format_duration(seconds: float) -> str:
    """``3725`` → ``"1h 2m"``; anything under a minute → ``"<1m"``."""
    minutes = int(seconds // 60)
    if minutes < 1:
        return "<1m"
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def _amount_text(command: PointCommand) -> str:
    if command.action == "remove_all":
        return "ALL biweekly points"
    return f"{command.amount} points"


# ---------------------------------------------------------------------------
# Point adjustments
# ---------------------------------------------------------------------------
def build_points_applied_embed(
    command: PointCommand, outcome: MutationOutcome
) -> discord.Embed:
    embed = discord.Embed(
        title=f"{action_label(command.action)}",
        description=f"<@{command.target_id}>: {_amount_text(command)}",
        color=COLOR_APPROVED,
    )
    embed.add_field(
        name="Biweekly",
        value=f"{outcome.before_biweekly_points} → **{outcome.new_biweekly_points}**",
    )
    embed.add_field(name="All-time", value=str(outcome.new_all_time_points))
    embed.add_field(
        name="Quota",
        value="\u2705 Complete" if outcome.quota_completed else "\u23f3 In progress",
    )
    if outcome.promotion_eligible:
        embed.add_field(name="Promotion", value="\U0001f396 Eligible!", inline=False)
    embed.add_field(name="Reason", value=command.reason, inline=False)
    embed.set_footer(text=f"By {command.actor_name}")
    return embed


def rejection_text(outcome: MutationOutcome) -> str:
    """Ephemeral reply for a rejected command."""
    if outcome.reason_code == "rate_limited" and outcome.retry_after is not None:
        return (
            f"\u23f1 {outcome.message} Try again in "
            f"{format_duration(outcome.retry_after)}."
        )
    return f"\u274c {outcome.message or outcome.reason_code}"


def build_approval_request_embed(
    command: PointCommand, expires_at, threshold: int
) -> discord.Embed:
    embed = discord.Embed(
        title="\U0001f6a8 Approval Required",
        description=(
            f"**{command.actor_name}** ({TIER_LABELS.get(int(command.actor_tier), 'Unknown')}) "
            f"wants to **{action_label(command.action)}** for <@{command.target_id}>.\n"
            f"Amount: **{_amount_text(command)}** (threshold {threshold})"
        ),
        color=COLOR_PENDING,
    )
    embed.add_field(name="Reason", value=command.reason, inline=False)
    embed.add_field(name="Expires", value=format_dt(expires_at, style="R"), inline=False)
    embed.set_footer(text="Generals: react \u2705 to approve or \u274c to deny")
    return embed


_OUTCOME_STYLE: dict[str, tuple[str, int]] = {
    "approved": ("\u2705 Request Approved", COLOR_APPROVED),
    "denied": ("\u274c Request Denied", COLOR_DENIED),
    "expired": ("\u231b Request Expired", COLOR_EXPIRED),
    "created": ("\u23f3 Request Pending", COLOR_PENDING),
}


def build_approval_outcome_embed(event: ApprovalEvent) -> discord.Embed:
    title, color = _OUTCOME_STYLE.get(event.kind, (event.kind.title(), COLOR_PENDING))
    command = event.request.command
    embed = discord.Embed(
        title=title,
        description=(
            f"{action_label(command.action)}: {_amount_text(command)} "
            f"for <@{command.target_id}>"
        ),
        color=color,
    )
    embed.add_field(name="Requested by", value=f"<@{command.actor_id}>")
    if event.reviewer_id is not None:
        embed.add_field(name="Decided by", value=f"<@{event.reviewer_id}>")
    if event.result is not None:
        if event.result.is_applied:
            embed.add_field(
                name="New biweekly total",
                value=str(event.result.new_biweekly_points),
                inline=False,
            )
        else:
            embed.add_field(
                name="Not applied",
                value=event.result.message or event.result.reason_code or "unknown",
                inline=False,
            )
    embed.add_field(name="Reason", value=command.reason, inline=False)
    return embed


def build_alert_embed(alert: AuditAlert) -> discord.Embed:
    command = alert.command
    if alert.kind == "rate_limited":
        embed = discord.Embed(
            title="\u23f1 Rate Limit Hit",
            description=(
                f"**{command.actor_name}** tried to {action_label(command.action)} "
                f"({_amount_text(command)}) for <@{command.target_id}> "
                f"after {alert.attempts} adjustments this hour."
            ),
            color=COLOR_RATE_LIMIT,
        )
        if alert.retry_after is not None:
            embed.add_field(name="Retry in", value=format_duration(alert.retry_after))
        return embed

    title = "\U0001f6a8 HIGH SEVERITY ADJUSTMENT" if alert.high_severity else "\u26a0 Large Adjustment"
    embed = discord.Embed(
        title=title,
        description=(
            f"**{command.actor_name}** applied {action_label(command.action)} "
            f"({_amount_text(command)}) to <@{command.target_id}>."
        ),
        color=COLOR_DENIED if alert.high_severity else COLOR_PENDING,
    )
    if alert.outcome is not None and alert.outcome.is_applied:
        embed.add_field(
            name="Biweekly",
            value=f"{alert.outcome.before_biweekly_points} → {alert.outcome.new_biweekly_points}",
        )
    embed.add_field(name="Reason", value=command.reason, inline=False)
    embed.timestamp = alert.created_at
    return embed


# ---------------------------------------------------------------------------
# Events & stats
# ---------------------------------------------------------------------------
def build_event_submission_embed(
    result: EventSubmissionResult, display_name: str
) -> discord.Embed:
    embed = discord.Embed(
        title=f"\U0001f4cb {result.event_name} logged",
        description=f"**{display_name}** earned **{result.points_awarded}** points.",
        color=discord.Color.blue(),
    )
    embed.add_field(name="Breakdown", value=result.breakdown.describe(), inline=False)
    embed.add_field(name="Biweekly", value=str(result.new_biweekly))
    embed.add_field(name="Rank points", value=str(result.new_rank_points))
    embed.add_field(name="All-time", value=str(result.new_all_time))
    if result.quota_just_completed:
        embed.add_field(name="Quota", value="\u2705 Quota complete for this cycle!", inline=False)
    if result.became_eligible:
        embed.add_field(name="Promotion", value="\U0001f396 Now eligible for promotion!", inline=False)
    return embed


def build_stats_embed(snapshot: OperatorSnapshot) -> discord.Embed:
    embed = discord.Embed(
        title=f"\U0001f4ca {snapshot.display_name}",
        description=f"**{snapshot.rank.display}** (level {snapshot.rank.level})",
        color=discord.Color.dark_green(),
    )

    quota = snapshot.quota
    if quota.required == 0:
        quota_text = "No quota at this rank"
    else:
        quota_text = (
            f"{progress_bar(quota.percentage)} {quota.current}/{quota.required} "
            f"({quota.percentage}%)"
        )
    embed.add_field(name="Biweekly quota", value=quota_text, inline=False)

    progress = snapshot.progress
    elig = snapshot.eligibility
    if progress.is_max_rank:
        rank_text = "MAX RANK"
    elif progress.is_hand_picked:
        rank_text = "Next rank is hand-picked"
    else:
        rank_text = (
            f"{progress_bar(progress.percentage)} {progress.current}/{progress.required} "
            f"({progress.percentage}%)"
        )
    if elig.next_rank is not None:
        rank_text += f"\nNext: {elig.next_rank.display}"
    if elig.rank_locked and elig.lock_expires_at is not None:
        rank_text += f"\n\U0001f512 Locked until {format_dt(elig.lock_expires_at, style='f')}"
    elif elig.eligible:
        rank_text += "\n\U0001f396 Eligible for promotion!"
    embed.add_field(name="Rank progress", value=rank_text, inline=False)

    streak = snapshot.streak
    streak_text = f"\U0001f525 {streak.streak} cycle(s)" if streak.streak else "No active streak"
    if streak.bonus:
        streak_text += f" (+{streak.bonus}% bonus)"
    if streak.next_milestone is not None:
        streak_text += (
            f"\n{streak.next_milestone.remaining} more for "
            f"+{streak.next_milestone.bonus}%"
        )
    if streak.at_risk:
        streak_text += "\n\u26a0 Streak at risk!"
    embed.add_field(name="Streak", value=streak_text, inline=False)

    embed.add_field(name="Biweekly", value=str(snapshot.biweekly_points))
    embed.add_field(name="All-time", value=str(snapshot.all_time_points))
    embed.add_field(name="Events", value=str(snapshot.total_events))
    embed.set_footer(text=f"Longest streak: {streak.longest} | Promotions: {snapshot.promotions}")
    return embed


# ---------------------------------------------------------------------------
# HR
# ---------------------------------------------------------------------------
def build_promotion_embed(result: PromotionResult, actor_name: str) -> discord.Embed:
    embed = discord.Embed(
        title="\U0001f396 Promotion",
        description=(
            f"<@{result.discord_id}> has been promoted from "
            f"**{result.from_rank.name}** to **{result.to_rank.display}**!"
        ),
        color=discord.Color.gold(),
    )
    if result.kind != "standard":
        embed.add_field(name="Type", value=result.kind.replace("_", " ").title())
    if result.lock_until is not None:
        embed.add_field(
            name="Rank lock",
            value=f"{result.lock_days} days, until {format_dt(result.lock_until, style='f')}",
            inline=False,
        )
    embed.add_field(name="New quota", value=str(result.new_quota) if result.new_quota else "None")
    embed.set_footer(text=f"Promoted by {actor_name}")
    return embed


def build_cycle_reset_embed(summary: CycleResetSummary) -> discord.Embed:
    embed = discord.Embed(
        title="\U0001f504 Quota Cycle Reset",
        description=f"{summary.processed} operators moved to a new cycle.",
        color=COLOR_APPROVED if not summary.failed else COLOR_PENDING,
    )
    embed.add_field(name="Streaks extended", value=str(summary.streaks_extended))
    embed.add_field(name="Streaks reset", value=str(summary.streaks_reset))
    if summary.failed:
        embed.add_field(
            name="Failed",
            value=f"{summary.failed} (see logs)",
            inline=False,
        )
    milestones = [t for t in summary.transitions if t.bonus_increased]
    if milestones:
        embed.add_field(
            name="New streak bonuses",
            value="\n".join(
                f"<@{t.discord_id}>: {t.new_streak} cycles → +{t.new_bonus}%"
                for t in milestones[:15]
            ),
            inline=False,
        )
    return embed


def build_lock_expiry_embed(notice: LockExpiryNotice) -> discord.Embed:
    text = f"<@{notice.discord_id}>, your rank lock as **{notice.rank_name}** has ended."
    if notice.promotion_eligible:
        text += "\nYou are eligible for promotion!"
    return discord.Embed(
        title="\U0001f513 Rank Lock Expired",
        description=text,
        color=discord.Color.teal(),
    )


def build_streak_warning_embed(warning: StreakWarning) -> discord.Embed:
    text = (
        f"<@{warning.discord_id}>, your **{warning.streak}-cycle** streak is at risk: "
        "no points logged this cycle yet."
    )
    if warning.bonus:
        text += f"\nKeep it going to hold your +{warning.bonus}% bonus."
    return discord.Embed(
        title="\u26a0 Streak at Risk",
        description=text,
        color=COLOR_RATE_LIMIT,
    )


# ---------------------------------------------------------------------------
# Leaderboards
# ---------------------------------------------------------------------------
_BOARD_TITLES = {
    LeaderboardKind.BIWEEKLY: "\U0001f3c6 Biweekly Leaderboard",
    LeaderboardKind.ALL_TIME: "\U0001f3c6 All-Time Leaderboard",
    LeaderboardKind.STREAK: "\U0001f525 Streak Leaderboard",
}
_MEDALS = {1: "\U0001f947", 2: "\U0001f948", 3: "\U0001f949"}


def _board_line(kind: LeaderboardKind, entry: LeaderboardEntry) -> str:
    prefix = _MEDALS.get(entry.position, f"**{entry.position}.**")
    if kind is LeaderboardKind.STREAK:
        score = f"{entry.score} cycle(s)"
    else:
        score = f"{entry.score} pts"
        if kind is LeaderboardKind.BIWEEKLY and entry.quota_completed:
            score += " \u2705"
    return f"{prefix} {entry.display_name} ({entry.rank_name}): {score}"


def build_leaderboard_embed(
    kind: LeaderboardKind,
    entries: list[LeaderboardEntry],
    stats: RosterStatistics | None = None,
    position: LeaderboardPosition | None = None,
) -> discord.Embed:
    kind = LeaderboardKind(kind)
    embed = discord.Embed(
        title=_BOARD_TITLES[kind],
        description=(
            "\n".join(_board_line(kind, e) for e in entries)
            if entries else "No operators on the board yet."
        ),
        color=discord.Color.gold(),
    )

    if stats is not None and stats.total_operators:
        if kind is LeaderboardKind.STREAK:
            embed.add_field(
                name="Streaks",
                value=(
                    f"{stats.active_streaks} active, {stats.streaks_at_risk} at risk\n"
                    f"Average {stats.average_streak} | Longest ever {stats.longest_streak_ever}"
                ),
                inline=False,
            )
            embed.add_field(
                name="Bonuses",
                value=" | ".join(
                    f"+{bonus}%: {count}"
                    for bonus, count in sorted(stats.bonus_distribution.items())
                    if bonus
                ),
                inline=False,
            )
        else:
            embed.add_field(
                name="Quota",
                value=(
                    f"{stats.quota_completed}/{stats.total_operators} complete "
                    f"({stats.quota_rate}%)"
                ),
            )
            embed.add_field(name="Average points", value=str(stats.average_points))
            if stats.most_active is not None:
                name, events = stats.most_active
                embed.add_field(name="Most active", value=f"{name} ({events} events)")

    if position is not None:
        place = position.all_time if kind is LeaderboardKind.ALL_TIME else position.biweekly
        embed.set_footer(text=f"Your position: #{place} of {position.total}")
    return embed
