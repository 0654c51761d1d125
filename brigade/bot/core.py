"""
brigade.bot.core — Bot Instance & Cog Loader
=============================================

:class:`BrigadeBot` is a ``commands.Bot`` subclass that carries the shared
state every cog reads through ``self.bot``:

- ``bot.cfg``      — the parsed :class:`BrigadeConfig`
- ``bot.engine``   — the SQLAlchemy engine
- ``bot.limiter``  — the point-adjustment rate limiter
- ``bot.workflow`` — the approval workflow, wired to the Discord adapters

On startup it loads every cog listed in :data:`EXTENSIONS` and syncs the
slash-command tree (guild-scoped when ``DEV_GUILD_ID`` is set).
"""

from __future__ import annotations

import logging
import os
from datetime import timedelta

import discord
from discord.ext import commands
from sqlalchemy import Engine

from brigade.bot.adapters import DiscordResultSink, DiscordReviewSurface, member_tier
from brigade.config import BrigadeConfig
from brigade.engine.permissions import Tier
from brigade.engine.rate_limit import SlidingWindowLimiter
from brigade.services.approval_service import ApprovalWorkflow

logger = logging.getLogger(__name__)

EXTENSIONS: list[str] = [
    "brigade.bot.cogs.points",
    "brigade.bot.cogs.hr",
    "brigade.bot.cogs.tasks",
]


class BrigadeBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`BrigadeConfig` from ``config.yaml``.
    engine:
        A SQLAlchemy :class:`Engine` connected to PostgreSQL.
    """

    def __init__(self, cfg: BrigadeConfig, engine: Engine) -> None:
        intents = discord.Intents.default()
        intents.members = True            # Privileged: role lookups for tiers
        intents.presences = False

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            description=f"{cfg.community_name} operator tracking",
        )

        self.cfg = cfg
        self.engine = engine
        self.limiter = SlidingWindowLimiter(
            max_actions=cfg.rate_limit_max,
            window_seconds=cfg.rate_limit_window_seconds,
        )
        self.workflow = ApprovalWorkflow(
            engine,
            limiter=self.limiter,
            review_surface=DiscordReviewSurface(self) if cfg.alert_channel_id else None,
            result_sink=DiscordResultSink(self),
            threshold=cfg.approval_threshold,
            window=timedelta(hours=cfg.approval_window_hours),
        )

    def tier_of(self, member: discord.abc.User | None) -> Tier:
        """Permission tier of *member* from the configured role mapping."""
        return member_tier(member, self.cfg.role_tiers)

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load all cog extensions.  One broken cog doesn't stop the rest."""
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        assert self.user is not None
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))

        if not self.cfg.alert_channel_id:
            logger.warning(
                "alert_channel_id is not set: large adjustments by Commanding "
                "Officers will be rejected and audit alerts dropped"
            )

    async def close(self) -> None:
        """Graceful shutdown.  Pending approval requests are dropped."""
        logger.info("Bot shutting down…")
        pending = len(self.workflow.pending())
        if pending:
            logger.warning("Dropping %d pending approval request(s)", pending)
        self.workflow.shutdown()
        await super().close()
