"""
tally.bot.cogs.voice — Voice Time Tracker
==========================================

Forwards voice-state updates to the session state machine in
:mod:`tally.engine.voice`:

* join (no channel → channel) opens a session,
* leave (channel → no channel) credits the elapsed seconds,
* move (channel A → channel B) keeps the session running,
* mute/deafen/stream toggles in the same channel are ignored.

Bots are never tracked.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from tally.database.engine import run_db

if TYPE_CHECKING:
    from tally.bot.core import TallyBot

logger = logging.getLogger(__name__)


class Voice(commands.Cog, name="Voice"):
    """Tracks time spent in voice channels."""

    def __init__(self, bot: TallyBot) -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        """Track voice join/leave events."""
        if member.bot:
            return
        logger.debug(
            "Gateway event: VOICE_STATE %s (%s → %s)",
            member.name,
            getattr(before.channel, "name", "None"),
            getattr(after.channel, "name", "None"),
        )
        try:
            await self._handle_voice_update(member, before, after)
        except Exception:
            logger.exception("Error processing voice state update for user %s", member.id)

    async def _handle_voice_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> int | None:
        """Hand the channel pair to the tracker; returns seconds credited."""
        before_id = before.channel.id if before.channel is not None else None
        after_id = after.channel.id if after.channel is not None else None
        return await run_db(
            self.bot.tracker.on_voice_presence_change,
            str(member.id),
            member.name,
            before_id,
            after_id,
        )


async def setup(bot: TallyBot) -> None:
    await bot.add_cog(Voice(bot))
