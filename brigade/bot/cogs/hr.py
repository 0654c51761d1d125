"""
brigade.bot.cogs.hr — Promotion & Roster Commands
==================================================

- /promote — standard, forced or lock-bypassing promotion
- /reset-cycle — close the biweekly quota cycle now (Generals)
- /remove-operator — soft-delete an operator (Generals)

Authorization for promotions and removals is enforced by the services;
this cog only maps their errors to ephemeral replies.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from brigade.database.engine import run_db
from brigade.engine.permissions import can_reset_cycle
from brigade.engine.ranks import PromotionKind
from brigade.errors import BrigadeError
from brigade.services.cycle_service import reset_cycle
from brigade.services.embeds import build_cycle_reset_embed, build_promotion_embed
from brigade.services.operator_service import deactivate_operator, promote_operator

if TYPE_CHECKING:
    from brigade.bot.core import BrigadeBot

logger = logging.getLogger(__name__)


class HR(commands.Cog, name="HR"):
    """Promotions and roster management."""

    def __init__(self, bot: BrigadeBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # /promote
    # -------------------------------------------------------------------
    @app_commands.command(name="promote", description="Promote an operator one rank.")
    @app_commands.describe(
        member="The operator to promote",
        kind="Standard needs eligibility; Force and Bypass Lock are for Generals",
        reason="Optional note for the promotion record",
    )
    @app_commands.choices(
        kind=[
            app_commands.Choice(name="Standard", value=PromotionKind.STANDARD.value),
            app_commands.Choice(name="Force", value=PromotionKind.FORCE.value),
            app_commands.Choice(name="Bypass Lock", value=PromotionKind.BYPASS_LOCK.value),
        ],
    )
    async def promote(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        kind: str = PromotionKind.STANDARD.value,
        reason: str | None = None,
    ) -> None:
        try:
            result = await run_db(
                promote_operator,
                self.bot.engine,
                discord_id=member.id,
                actor_id=interaction.user.id,
                actor_name=interaction.user.display_name,
                actor_tier=self.bot.tier_of(interaction.user),
                kind=kind,
                reason=reason,
                reference_hour=self.bot.cfg.rank_lock_reference_hour,
            )
        except BrigadeError as exc:
            await interaction.response.send_message(f"❌ {exc}", ephemeral=True)
            return

        await interaction.response.send_message(
            embed=build_promotion_embed(result, interaction.user.display_name)
        )

    # -------------------------------------------------------------------
    # /reset-cycle
    # -------------------------------------------------------------------
    @app_commands.command(
        name="reset-cycle",
        description="Close the current quota cycle for every operator.",
    )
    @app_commands.describe(confirm="Set to True to really reset every operator")
    async def reset_cycle_cmd(
        self, interaction: discord.Interaction, confirm: bool = False
    ) -> None:
        if not can_reset_cycle(self.bot.tier_of(interaction.user)):
            await interaction.response.send_message(
                "❌ Only Generals can reset the cycle.", ephemeral=True
            )
            return
        if not confirm:
            await interaction.response.send_message(
                "⚠️ This zeroes every operator's biweekly points and moves streaks on. "
                "Run again with `confirm: True` to proceed.",
                ephemeral=True,
            )
            return

        await interaction.response.defer(thinking=True)
        logger.info("Manual cycle reset by %s", interaction.user.id)
        summary = await run_db(reset_cycle, self.bot.engine)
        await interaction.followup.send(embed=build_cycle_reset_embed(summary))

    # -------------------------------------------------------------------
    # /remove-operator
    # -------------------------------------------------------------------
    @app_commands.command(
        name="remove-operator",
        description="Remove an operator from the roster (history is kept).",
    )
    @app_commands.describe(member="The operator to remove", reason="Why they are removed")
    async def remove_operator(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        reason: str | None = None,
    ) -> None:
        try:
            await run_db(
                deactivate_operator,
                self.bot.engine,
                discord_id=member.id,
                actor_id=interaction.user.id,
                actor_tier=self.bot.tier_of(interaction.user),
                reason=reason,
            )
        except BrigadeError as exc:
            await interaction.response.send_message(f"❌ {exc}", ephemeral=True)
            return

        await interaction.response.send_message(
            f"✅ **{member.display_name}** has been removed from the roster.",
            ephemeral=True,
        )


async def setup(bot: BrigadeBot) -> None:
    await bot.add_cog(HR(bot))
