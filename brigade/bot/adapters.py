"""
brigade.bot.adapters — Discord implementations of the workflow collaborators
=============================================================================

:class:`DiscordReviewSurface` posts approval requests and audit alerts into
the configured alert channel; Generals answer by reacting on the request
message, whose id doubles as the request id.  :class:`DiscordResultSink`
DMs the requester when their request is decided or expires.

Both raise on Discord failures; the workflow logs and swallows them.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

import discord

from brigade.constants import APPROVE_EMOJI, DENY_EMOJI
from brigade.engine.approval import ApprovalEvent, PointCommand
from brigade.engine.permissions import Tier, resolve_tier
from brigade.errors import ConfigurationError
from brigade.services.embeds import (
    build_alert_embed,
    build_approval_outcome_embed,
    build_approval_request_embed,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from brigade.bot.core import BrigadeBot
    from brigade.services.approval_service import AuditAlert

logger = logging.getLogger(__name__)


def member_tier(member: discord.abc.User | None, role_tiers: Mapping[int, Tier]) -> Tier:
    """Tier of a guild member.  Users outside the guild have no roles."""
    roles = getattr(member, "roles", None)
    if not roles:
        return Tier.NONE
    return resolve_tier([role.id for role in roles], role_tiers)


async def _resolve_channel(bot: BrigadeBot, channel_id: int | None) -> discord.abc.Messageable:
    if not channel_id:
        raise ConfigurationError("No alert channel is configured.")
    channel = bot.get_channel(channel_id)
    if channel is None:
        channel = await bot.fetch_channel(channel_id)
    return channel  # type: ignore[return-value]


class DiscordReviewSurface:
    """Alert-channel review surface."""

    def __init__(self, bot: BrigadeBot) -> None:
        self.bot = bot

    async def post_request(self, command: PointCommand, expires_at: datetime) -> str:
        channel = await _resolve_channel(self.bot, self.bot.cfg.alert_channel_id)
        embed = build_approval_request_embed(
            command, expires_at, self.bot.cfg.approval_threshold
        )
        message = await channel.send(embed=embed)
        await message.add_reaction(APPROVE_EMOJI)
        await message.add_reaction(DENY_EMOJI)
        return str(message.id)

    async def publish_outcome(self, event: ApprovalEvent) -> None:
        channel = await _resolve_channel(self.bot, self.bot.cfg.alert_channel_id)
        embed = build_approval_outcome_embed(event)
        try:
            message = await channel.fetch_message(int(event.request.request_id))
        except discord.NotFound:
            await channel.send(embed=embed)
            return
        await message.edit(embed=embed)
        try:
            await message.clear_reactions()
        except discord.Forbidden:
            logger.debug("Cannot clear reactions on request %s", event.request.request_id)

    async def send_alert(self, alert: AuditAlert) -> None:
        channel = await _resolve_channel(self.bot, self.bot.cfg.alert_channel_id)
        await channel.send(embed=build_alert_embed(alert))


class DiscordResultSink:
    """DMs the requester once a request is resolved."""

    def __init__(self, bot: BrigadeBot) -> None:
        self.bot = bot

    async def deliver(self, event: ApprovalEvent) -> None:
        if event.kind == "created":
            return  # the slash-command reply already says "pending"
        actor_id = event.request.command.actor_id
        user = self.bot.get_user(actor_id) or await self.bot.fetch_user(actor_id)
        try:
            await user.send(embed=build_approval_outcome_embed(event))
        except discord.Forbidden:
            logger.info("User %s has DMs closed; outcome not delivered", actor_id)
