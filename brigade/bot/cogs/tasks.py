"""
brigade.bot.cogs.tasks — Periodic Background Tasks
=====================================================

Scheduled jobs that run on ``discord.ext.tasks`` loops:

- **Daily sweep** — at the rank-lock reference hour (UTC): zero daily
  counters, run the scheduled cycle reset on boundary days, recompute
  quotas, announce expired rank locks and warn at-risk streaks.
- **Housekeeping** — hourly, drops idle rate-limiter windows and any
  approval requests past their backstop TTL.

Each step logs its own failure and the rest of the sweep carries on.
"""

from __future__ import annotations

import logging
from datetime import UTC, time
from typing import TYPE_CHECKING

import discord
from discord.ext import commands, tasks

from brigade.constants import utcnow
from brigade.database.engine import run_db
from brigade.engine.quota import is_cycle_boundary
from brigade.services.cycle_service import (
    reset_cycle,
    reset_daily_stats,
    scan_streaks_at_risk,
    update_all_quotas,
)
from brigade.services.embeds import (
    build_cycle_reset_embed,
    build_lock_expiry_embed,
    build_streak_warning_embed,
)
from brigade.services.operator_service import (
    collect_lock_expiry_notices,
    mark_lock_notified,
)

if TYPE_CHECKING:
    from brigade.bot.core import BrigadeBot

logger = logging.getLogger(__name__)


class PeriodicTasks(commands.Cog):
    """Cog for scheduled background maintenance tasks."""

    def __init__(self, bot: BrigadeBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        """Start task loops when the cog is loaded."""
        self.daily_loop.change_interval(
            time=time(hour=self.bot.cfg.rank_lock_reference_hour, tzinfo=UTC)
        )
        self.daily_loop.start()
        self.housekeeping_loop.start()

    async def cog_unload(self) -> None:
        """Cancel task loops on unload."""
        self.daily_loop.cancel()
        self.housekeeping_loop.cancel()

    # -------------------------------------------------------------------
    # Delivery helpers
    # -------------------------------------------------------------------
    async def _announce(self, embed: discord.Embed) -> bool:
        channel_id = self.bot.cfg.announce_channel_id
        if not channel_id:
            return False
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            channel = await self.bot.fetch_channel(channel_id)
        await channel.send(embed=embed)
        return True

    async def _dm(self, user_id: int, embed: discord.Embed) -> bool:
        user = self.bot.get_user(user_id) or await self.bot.fetch_user(user_id)
        try:
            await user.send(embed=embed)
        except discord.Forbidden:
            logger.info("User %s has DMs closed", user_id)
            return False
        return True

    # -------------------------------------------------------------------
    # Daily sweep
    # -------------------------------------------------------------------
    @tasks.loop(hours=24)
    async def daily_loop(self):
        """Run the once-a-day roster passes."""
        now = utcnow()
        engine = self.bot.engine
        cfg = self.bot.cfg

        try:
            await run_db(reset_daily_stats, engine, now)
        except Exception:
            logger.exception("Daily stats reset failed", extra={"task": "daily_stats"})

        if cfg.cycle_anchor is not None and is_cycle_boundary(
            now.date(), cfg.cycle_anchor, cfg.cycle_length_days
        ):
            try:
                summary = await run_db(reset_cycle, engine, now)
                await self._announce(build_cycle_reset_embed(summary))
            except Exception:
                logger.exception("Scheduled cycle reset failed", extra={"task": "cycle_reset"})

        try:
            await run_db(update_all_quotas, engine)
        except Exception:
            logger.exception("Quota pass failed", extra={"task": "quota"})

        await self._send_lock_expiry_notices(now)
        await self._send_streak_warnings(now)

    async def _send_lock_expiry_notices(self, now) -> None:
        try:
            notices = await run_db(collect_lock_expiry_notices, self.bot.engine, now)
        except Exception:
            logger.exception("Rank lock scan failed", extra={"task": "rank_locks"})
            return

        for notice in notices:
            embed = build_lock_expiry_embed(notice)
            try:
                delivered = await self._announce(embed) or await self._dm(
                    notice.discord_id, embed
                )
                if delivered:
                    await run_db(mark_lock_notified, self.bot.engine, notice.discord_id)
            except Exception:
                logger.exception(
                    "Rank lock notice failed for operator %s", notice.discord_id
                )
        if notices:
            logger.info("Rank lock notices processed: %d", len(notices))

    async def _send_streak_warnings(self, now) -> None:
        try:
            warnings = await run_db(scan_streaks_at_risk, self.bot.engine, now)
        except Exception:
            logger.exception("Streak scan failed", extra={"task": "streaks"})
            return

        for warning in warnings:
            try:
                await self._dm(warning.discord_id, build_streak_warning_embed(warning))
            except Exception:
                logger.exception("Streak warning failed for operator %s", warning.discord_id)

    @daily_loop.before_loop
    async def _wait_daily(self):
        await self.bot.wait_until_ready()

    # -------------------------------------------------------------------
    # Housekeeping — runs every hour
    # -------------------------------------------------------------------
    @tasks.loop(hours=1)
    async def housekeeping_loop(self):
        """Drop idle limiter windows and stale approval requests."""
        removed = self.bot.workflow.sweep()
        if removed:
            logger.debug("Housekeeping removed %d stale entries", removed)

    @housekeeping_loop.before_loop
    async def _wait_housekeeping(self):
        await self.bot.wait_until_ready()


async def setup(bot: BrigadeBot) -> None:
    await bot.add_cog(PeriodicTasks(bot))
