"""
tally.bot.cogs.tasks — Periodic Background Tasks
=================================================

Scheduled jobs that run on ``discord.ext.tasks`` loops:

- **Database backup** — every ``backup_interval_minutes`` (default 6 h),
  writes a snapshot to ``backup_dir`` and, if ``backup_channel_id`` is
  set, uploads it to that channel for off-host recovery.

File I/O runs through ``run_db()``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import discord
from discord.ext import commands, tasks

from tally.database.engine import run_db

if TYPE_CHECKING:
    from tally.bot.core import TallyBot

logger = logging.getLogger(__name__)


class PeriodicTasks(commands.Cog):
    """Cog for scheduled background maintenance tasks."""

    def __init__(self, bot: TallyBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        """Start task loops when the cog is loaded."""
        self.backup_loop.change_interval(minutes=self.bot.cfg.backup_interval_minutes)
        self.backup_loop.start()

    async def cog_unload(self) -> None:
        """Cancel task loops on unload."""
        self.backup_loop.cancel()

    # -------------------------------------------------------------------
    # Database backup
    # -------------------------------------------------------------------
    @tasks.loop(minutes=360)
    async def backup_loop(self):
        """Snapshot the database and optionally ship it to a channel."""
        try:
            path = await run_db(self.bot.backups.write_snapshot, "scheduled")
        except Exception:
            logger.exception("Backup task failed", extra={"task": "backup"})
            return

        if self.bot.cfg.backup_channel_id:
            await self._upload(path)

    @backup_loop.before_loop
    async def _wait_backup(self):
        await self.bot.wait_until_ready()

    async def _upload(self, path: Path) -> None:
        channel = self.bot.get_channel(self.bot.cfg.backup_channel_id)
        if channel is None or not hasattr(channel, "send"):
            logger.warning(
                "Backup channel %s not found — snapshot kept locally only",
                self.bot.cfg.backup_channel_id,
            )
            return
        try:
            await channel.send(
                f"\U0001f4be Scheduled backup `{path.name}`",
                file=discord.File(path, filename=path.name),
            )
        except discord.HTTPException:
            logger.exception("Failed to upload backup %s", path.name)


async def setup(bot: TallyBot) -> None:
    await bot.add_cog(PeriodicTasks(bot))
