"""
brigade.bot.cogs.points — Point Commands & Approval Reactions
==============================================================

- /manage-points — add / remove / set / remove-all biweekly points
- /submit-event — log an activity event for yourself
- /stats — rank, quota and streak overview
- /leaderboard — biweekly, all-time or streak standings with roster stats

``/manage-points`` only builds a :class:`PointCommand` and hands it to the
approval workflow; every safeguard lives there.  Generals decide pending
requests by reacting on the request message in the alert channel.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands
from discord.utils import format_dt

from brigade.constants import APPROVE_EMOJI, DENY_EMOJI
from brigade.database.engine import run_db
from brigade.engine.approval import PointAction, PointCommand
from brigade.engine.permissions import (
    can_view_leaderboard,
    can_view_other_stats,
    can_view_own_stats,
)
from brigade.engine.points import EVENT_NAMES
from brigade.errors import BrigadeError
from brigade.services.embeds import (
    build_event_submission_embed,
    build_leaderboard_embed,
    build_points_applied_embed,
    build_stats_embed,
    rejection_text,
)
from brigade.services.operator_service import (
    LEADERBOARD_LIMIT,
    MAX_EVENT_QUANTITY,
    LeaderboardKind,
    get_operator_snapshot,
    leaderboard,
    leaderboard_position,
    roster_statistics,
    submit_event,
)

if TYPE_CHECKING:
    from brigade.bot.core import BrigadeBot

logger = logging.getLogger(__name__)


class Points(commands.Cog, name="Points"):
    """Point management, event logging and stats."""

    def __init__(self, bot: BrigadeBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # /manage-points
    # -------------------------------------------------------------------
    @app_commands.command(
        name="manage-points",
        description="Add, remove or set an operator's biweekly points.",
    )
    @app_commands.describe(
        member="The operator to adjust",
        action="What to do",
        amount="Number of points (ignored for Remove All)",
        reason="Why the adjustment is being made",
    )
    @app_commands.choices(
        action=[
            app_commands.Choice(name="Add", value=PointAction.ADD.value),
            app_commands.Choice(name="Remove", value=PointAction.REMOVE.value),
            app_commands.Choice(name="Set", value=PointAction.SET.value),
            app_commands.Choice(name="Remove All", value=PointAction.REMOVE_ALL.value),
        ],
    )
    async def manage_points(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        action: str,
        reason: str,
        amount: int = 0,
    ) -> None:
        # Posting to the review channel can take longer than the 3s window.
        await interaction.response.defer(ephemeral=True, thinking=True)

        command = PointCommand(
            actor_id=interaction.user.id,
            actor_name=interaction.user.display_name,
            actor_tier=self.bot.tier_of(interaction.user),
            target_id=member.id,
            target_name=member.display_name,
            action=PointAction(action),
            amount=amount,
            reason=reason,
        )
        outcome = await self.bot.workflow.submit(command)

        if outcome.status == "applied":
            await interaction.followup.send(
                embed=build_points_applied_embed(command, outcome), ephemeral=True
            )
        elif outcome.status == "pending":
            await interaction.followup.send(
                f"⏳ Adjustment exceeds {self.bot.workflow.threshold} points and was "
                f"sent to the Generals for approval. It expires "
                f"{format_dt(outcome.expires_at, style='R')}.",
                ephemeral=True,
            )
        else:
            await interaction.followup.send(rejection_text(outcome), ephemeral=True)

    # -------------------------------------------------------------------
    # /submit-event
    # -------------------------------------------------------------------
    @app_commands.command(name="submit-event", description="Log an activity event.")
    @app_commands.describe(
        event_type="What you took part in",
        quantity=f"How many times (1-{MAX_EVENT_QUANTITY})",
        description="Optional notes",
    )
    @app_commands.choices(
        event_type=[
            app_commands.Choice(name=name, value=event.value)
            for event, name in EVENT_NAMES.items()
        ],
    )
    async def submit_event_cmd(
        self,
        interaction: discord.Interaction,
        event_type: str,
        quantity: int = 1,
        description: str | None = None,
    ) -> None:
        try:
            result = await run_db(
                submit_event,
                self.bot.engine,
                discord_id=interaction.user.id,
                display_name=interaction.user.display_name,
                actor_tier=self.bot.tier_of(interaction.user),
                event_type=event_type,
                quantity=quantity,
                description=description,
            )
        except BrigadeError as exc:
            await interaction.response.send_message(f"❌ {exc}", ephemeral=True)
            return

        await interaction.response.send_message(
            embed=build_event_submission_embed(result, interaction.user.display_name)
        )

    # -------------------------------------------------------------------
    # /stats
    # -------------------------------------------------------------------
    @app_commands.command(name="stats", description="Show rank, quota and streak progress.")
    @app_commands.describe(member="Another operator (Commanding Officers and up)")
    async def stats(
        self,
        interaction: discord.Interaction,
        member: discord.Member | None = None,
    ) -> None:
        tier = self.bot.tier_of(interaction.user)
        target = member or interaction.user
        if target.id != interaction.user.id and not can_view_other_stats(tier):
            await interaction.response.send_message(
                "❌ You can only view your own stats.", ephemeral=True
            )
            return
        if not can_view_own_stats(tier):
            await interaction.response.send_message(
                "❌ You need the Operator role to view stats.", ephemeral=True
            )
            return

        snapshot = await run_db(get_operator_snapshot, self.bot.engine, target.id)
        if snapshot is None:
            await interaction.response.send_message(
                f"{target.display_name} has no record yet.", ephemeral=True
            )
            return
        await interaction.response.send_message(
            embed=build_stats_embed(snapshot), ephemeral=True
        )

    # -------------------------------------------------------------------
    # /leaderboard
    # -------------------------------------------------------------------
    @app_commands.command(name="leaderboard", description="Show the top operators.")
    @app_commands.describe(
        kind="Which board to show",
        limit=f"How many operators to list (1-{LEADERBOARD_LIMIT})",
    )
    @app_commands.choices(
        kind=[
            app_commands.Choice(name="Biweekly points", value=LeaderboardKind.BIWEEKLY.value),
            app_commands.Choice(name="All-time points", value=LeaderboardKind.ALL_TIME.value),
            app_commands.Choice(name="Quota streaks", value=LeaderboardKind.STREAK.value),
        ],
    )
    async def leaderboard_cmd(
        self,
        interaction: discord.Interaction,
        kind: str = LeaderboardKind.BIWEEKLY.value,
        limit: app_commands.Range[int, 1, LEADERBOARD_LIMIT] = 10,
    ) -> None:
        if not can_view_leaderboard(self.bot.tier_of(interaction.user)):
            await interaction.response.send_message(
                "❌ You need the Operator role to view the leaderboard.", ephemeral=True
            )
            return

        engine = self.bot.engine
        entries = await run_db(leaderboard, engine, kind, limit)
        stats = await run_db(roster_statistics, engine)
        position = await run_db(leaderboard_position, engine, interaction.user.id)
        await interaction.response.send_message(
            embed=build_leaderboard_embed(LeaderboardKind(kind), entries, stats, position)
        )

    # -------------------------------------------------------------------
    # Approval reactions
    # -------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent) -> None:
        if self.bot.user is not None and payload.user_id == self.bot.user.id:
            return
        if payload.channel_id != self.bot.cfg.alert_channel_id:
            return
        emoji = str(payload.emoji)
        if emoji not in (APPROVE_EMOJI, DENY_EMOJI):
            return
        if self.bot.workflow.get(str(payload.message_id)) is None:
            return

        try:
            event = await self.bot.workflow.decide(
                str(payload.message_id),
                reviewer_id=payload.user_id,
                reviewer_tier=self.bot.tier_of(payload.member),
                approve=emoji == APPROVE_EMOJI,
            )
        except Exception:
            logger.exception(
                "Error deciding request %s from user %s",
                payload.message_id, payload.user_id,
            )
            return
        if event is None:
            logger.debug(
                "Reaction by %s on request %s did not count",
                payload.user_id, payload.message_id,
            )


async def setup(bot: BrigadeBot) -> None:
    await bot.add_cog(Points(bot))
