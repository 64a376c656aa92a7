"""
tally.bot.core — Bot Instance & Cog Loader
===========================================

**Why this file exists:**
It defines :class:`TallyBot`, a ``commands.Bot`` subclass that:

1. Carries the shared config (``bot.cfg``), the tracker
   (``bot.tracker``) and the backup writer (``bot.backups``) so every Cog
   can reach them via ``self.bot.*``.
2. Loads every Cog listed in :data:`EXTENSIONS`.
3. Syncs the slash-command tree on startup (guild-scoped for dev, global
   for production — controlled by the ``DEV_GUILD_ID`` env var).
4. Re-opens voice sessions for members already in voice when it connects.
5. Serves the FastAPI health/read API in-process when ``api_port`` is set.
6. Writes a crash backup when an event handler raises, and a final backup
   on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time

import discord
import uvicorn
from discord.ext import commands

from tally.config import TallyConfig
from tally.database.engine import run_db
from tally.services.activity_service import ActivityService
from tally.services.backup_service import BackupService

logger = logging.getLogger(__name__)

# Cog modules to load on startup.
EXTENSIONS: list[str] = [
    "tally.bot.cogs.social",
    "tally.bot.cogs.voice",
    "tally.bot.cogs.meta",
    "tally.bot.cogs.admin",
    "tally.bot.cogs.tasks",
]

# Minimum gap between crash backups triggered by on_error
CRASH_BACKUP_COOLDOWN_SECONDS = 300


class TallyBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`TallyConfig` from ``config.yaml``.
    tracker:
        The loaded :class:`ActivityService` (owner of all tracked state).
    backups:
        Snapshot writer used by the backup loop, ``/backup`` and crashes.
    """

    def __init__(self, cfg: TallyConfig, tracker: ActivityService, backups: BackupService) -> None:
        # GUILD_MESSAGES + GUILD_VOICE_STATES come with default().
        # MESSAGE_CONTENT is not needed: only the author is counted.
        intents = discord.Intents.default()
        intents.members = True  # Privileged: voice members on startup priming

        super().__init__(
            command_prefix=cfg.bot_prefix,
            intents=intents,
            description=f"{cfg.bot_name} — message & voice activity tracker",
        )

        self.cfg = cfg
        self.tracker = tracker
        self.backups = backups

        self._api_server: uvicorn.Server | None = None
        self._api_task: asyncio.Task | None = None
        self._last_crash_backup: float | None = None

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load Cog extensions and start the HTTP listener.

        One broken Cog shouldn't take down the whole bot, so failures are
        logged and skipped.
        """
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

        if self.cfg.api_port:
            self._start_api(self.cfg.api_port)

    async def on_ready(self) -> None:
        """Fired when the bot has connected and the cache is populated."""
        assert self.user is not None  # guaranteed after on_ready
        logger.info("✅ Bot logged in as %s (ID: %s)", self.user.name, self.user.id)

        # --- Slash-command sync ---------------------------------------------
        try:
            dev_guild_id = os.getenv("DEV_GUILD_ID")
            if dev_guild_id:
                guild = discord.Object(id=int(dev_guild_id))
                self.tree.copy_global_to(guild=guild)
                synced = await self.tree.sync(guild=guild)
                logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
            else:
                synced = await self.tree.sync()
                logger.info("Synced %d commands globally", len(synced))
        except discord.HTTPException:
            logger.exception("❌ Error during slash command registration")

        # --- Reconcile voice sessions against live presence -----------------
        members = list(self.members_in_voice())
        await run_db(self.tracker.prime_voice_sessions, members)

    def members_in_voice(self):
        """Yield ``(identity, name)`` for every non-bot member in a voice channel."""
        for guild in self.guilds:
            for channel in guild.voice_channels + list(guild.stage_channels):
                for member in channel.members:
                    if not member.bot:
                        yield str(member.id), member.name

    async def on_error(self, event_method: str, /, *args, **kwargs) -> None:
        """Snapshot the database, then let discord.py log the traceback."""
        now = time.monotonic()
        last = self._last_crash_backup
        if last is None or now - last >= CRASH_BACKUP_COOLDOWN_SECONDS:
            self._last_crash_backup = now
            await run_db(self.backups.crash_snapshot)
        await super().on_error(event_method, *args, **kwargs)

    async def close(self) -> None:
        """Graceful shutdown — final backup, stop the API listener."""
        logger.info("Bot shutting down…")
        try:
            await run_db(self.backups.write_snapshot, "shutdown")
        except OSError:
            logger.exception("Shutdown backup failed")
        await self._stop_api()
        await super().close()

    # -----------------------------------------------------------------------
    # In-process HTTP listener
    # -----------------------------------------------------------------------
    def _start_api(self, port: int) -> None:
        from tally.api.main import create_app

        app = create_app(self.tracker, self.backups, bot=self)
        config = uvicorn.Config(app, host="0.0.0.0", port=port, log_config=None)
        self._api_server = uvicorn.Server(config)
        self._api_task = asyncio.create_task(self._api_server.serve(), name="tally-api")
        logger.info("🌐 HTTP API listening on port %d", port)

    async def _stop_api(self) -> None:
        if self._api_server is None or self._api_task is None:
            return
        self._api_server.should_exit = True
        try:
            await asyncio.wait_for(self._api_task, timeout=5)
        except (asyncio.TimeoutError, asyncio.CancelledError):
            self._api_task.cancel()
        self._api_server = None
        self._api_task = None
