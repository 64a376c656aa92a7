"""
tally.bot.cogs.social — Message Counter
========================================

Listens for on_message events and counts one message per non-bot author.
Message content is never read or stored; only the author is used.
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


class Social(commands.Cog, name="Social"):
    """Counts messages per member."""

    def __init__(self, bot: TallyBot) -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        """Count every non-bot message."""
        if message.author.bot:
            return
        try:
            count = await run_db(
                self.bot.tracker.on_message,
                str(message.author.id),
                message.author.name,
            )
            logger.debug("%s now has %d message(s)", message.author.name, count)
        except Exception:
            logger.exception(
                "Error updating message counter for user %s", message.author.id,
            )


async def setup(bot: TallyBot) -> None:
    await bot.add_cog(Social(bot))
