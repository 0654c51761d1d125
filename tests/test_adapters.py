"""
tests/test_adapters.py — Discord Collaborator Tests
====================================================

The review surface and result sink against mocked discord.py objects.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import NOW
from test_approval_engine import make_command

from brigade.bot.adapters import DiscordResultSink, DiscordReviewSurface, member_tier
from brigade.constants import APPROVE_EMOJI, DENY_EMOJI
from brigade.engine.approval import ApprovalEvent, ApprovalRequest
from brigade.engine.permissions import Tier
from brigade.errors import ConfigurationError


# Helper to run async tests without pytest-asyncio
def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.run(coro)


def _make_bot(*, alert_channel_id: int | None = 100, channel=None) -> MagicMock:
    bot = MagicMock()
    bot.cfg = SimpleNamespace(alert_channel_id=alert_channel_id, approval_threshold=50)
    bot.get_channel = MagicMock(return_value=channel)
    return bot


def _make_channel() -> MagicMock:
    message = MagicMock()
    message.id = 777
    message.add_reaction = AsyncMock()
    message.edit = AsyncMock()
    message.clear_reactions = AsyncMock()

    channel = MagicMock()
    channel.send = AsyncMock(return_value=message)
    channel.fetch_message = AsyncMock(return_value=message)
    return channel


def _event(kind: str) -> ApprovalEvent:
    request = ApprovalRequest(
        request_id="777", command=make_command(amount=80),
        created_at=NOW, expires_at=NOW + timedelta(hours=24),
    )
    return ApprovalEvent(kind=kind, request=request, reviewer_id=5)


class TestMemberTier:
    ROLE_TIERS = {1: Tier.OPERATOR, 2: Tier.GENERAL}

    def test_highest_role(self):
        member = SimpleNamespace(roles=[SimpleNamespace(id=1), SimpleNamespace(id=2)])
        assert member_tier(member, self.ROLE_TIERS) is Tier.GENERAL

    def test_user_without_roles(self):
        assert member_tier(SimpleNamespace(), self.ROLE_TIERS) is Tier.NONE
        assert member_tier(None, self.ROLE_TIERS) is Tier.NONE


class TestReviewSurface:
    def test_post_request_adds_reactions(self):
        channel = _make_channel()
        surface = DiscordReviewSurface(_make_bot(channel=channel))

        request_id = run_async(surface.post_request(make_command(amount=80), NOW))

        assert request_id == "777"
        channel.send.assert_awaited_once()
        message = channel.send.return_value
        assert [c.args[0] for c in message.add_reaction.await_args_list] == [
            APPROVE_EMOJI, DENY_EMOJI,
        ]

    def test_publish_outcome_edits_request_message(self):
        channel = _make_channel()
        surface = DiscordReviewSurface(_make_bot(channel=channel))

        run_async(surface.publish_outcome(_event("approved")))

        channel.fetch_message.assert_awaited_once_with(777)
        message = channel.fetch_message.return_value
        message.edit.assert_awaited_once()
        message.clear_reactions.assert_awaited_once()

    def test_missing_channel_config(self):
        surface = DiscordReviewSurface(_make_bot(alert_channel_id=None))
        with pytest.raises(ConfigurationError):
            run_async(surface.send_alert(MagicMock()))


class TestResultSink:
    def test_created_is_not_sent(self):
        bot = _make_bot()
        user = MagicMock(send=AsyncMock())
        bot.get_user = MagicMock(return_value=user)

        run_async(DiscordResultSink(bot).deliver(_event("created")))

        user.send.assert_not_awaited()

    def test_outcome_is_sent_to_requester(self):
        bot = _make_bot()
        user = MagicMock(send=AsyncMock())
        bot.get_user = MagicMock(return_value=user)

        run_async(DiscordResultSink(bot).deliver(_event("denied")))

        bot.get_user.assert_called_once_with(1)
        user.send.assert_awaited_once()
