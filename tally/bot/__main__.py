"""
tally.bot.__main__ — Entry point for ``python -m tally.bot``
============================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings).
3. Load the JSON database (stale voice sessions are dropped).
4. Build the backup writer.
5. Create the TallyBot and hand it config + tracker + backups.
6. Start the bot (blocking — runs the asyncio event loop).
7. If anything fatal escapes, write a crash backup before exiting.

Run with::

    uv run python -m tally.bot
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv

from tally.bot.core import TallyBot
from tally.config import load_config
from tally.services.activity_service import ActivityService
from tally.services.backup_service import BackupService

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("tally")


def main() -> None:
    """Bootstrap and run the Tally bot."""

    # 1. Environment variables (secrets).
    load_dotenv()

    token = os.getenv("DISCORD_TOKEN")
    if not token or token == "your-discord-bot-token-here":
        logger.critical(
            "DISCORD_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )
        sys.exit(1)

    # 2. Soft configuration.
    cfg = load_config()
    logger.info("Config loaded — %s (data: %s)", cfg.bot_name, cfg.data_path)

    # 3. Database.
    activity = ActivityService.open(cfg.data_path)

    # 4. Backups.
    backups = BackupService(activity, cfg.backup_dir, keep=cfg.backup_keep)

    # 5. Bot.
    bot = TallyBot(cfg=cfg, tracker=activity, backups=backups)

    # 6. Run (blocks until Ctrl+C or SIGTERM).
    logger.info("Starting Tally bot…")
    try:
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")
    except Exception:
        # 7. Fatal error: keep a copy of the state before the process dies.
        logger.critical("Fatal error — writing crash backup", exc_info=True)
        backups.crash_snapshot()
        raise


if __name__ == "__main__":
    main()
