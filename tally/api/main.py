"""
tally.api.main — FastAPI application factory
=============================================

The bot serves this app in-process (see ``TallyBot._start_api``) so the
routes read the same live state the cogs write.

Routes:
- ``GET /api/health`` — liveness check for the process supervisor
- ``GET /api/health/bot`` — gateway readiness and tracker size
- ``/api/stats``, ``/api/leaderboard``, ``/api/summary`` — public reads
- ``/api/admin/*`` — JWT-protected export/import/adjust/backup, mounted
  only when ``JWT_SECRET`` is set
"""

from __future__ import annotations

import logging
import math
import os

from fastapi import FastAPI

from tally.api.deps import load_jwt_secret
from tally.api.routes.admin import router as admin_router
from tally.api.routes.public import router as public_router
from tally.services.activity_service import ActivityService
from tally.services.backup_service import BackupService

logger = logging.getLogger(__name__)


def create_app(
    activity: ActivityService,
    backups: BackupService | None = None,
    bot=None,
    enable_admin: bool | None = None,
) -> FastAPI:
    """Build the API around a live :class:`ActivityService`.

    Parameters
    ----------
    enable_admin:
        Mount the admin router.  Defaults to "``JWT_SECRET`` is set".
        When enabled, a missing or weak secret raises ``RuntimeError``.
    """
    app = FastAPI(title="Tally API", version="1.0.0")
    app.state.activity = activity
    app.state.backups = backups
    app.state.bot = bot
    app.state.jwt_secret = None

    if enable_admin is None:
        enable_admin = bool(os.getenv("JWT_SECRET"))

    app.include_router(public_router, prefix="/api")
    if enable_admin:
        app.state.jwt_secret = load_jwt_secret()
        app.include_router(admin_router, prefix="/api")
        logger.info("Admin API enabled")

    @app.get("/api/health")
    def health():
        return {"status": "ok"}

    @app.get("/api/health/bot")
    def bot_health():
        """Gateway readiness plus tracker counts."""
        summary = activity.query_totals()
        client = app.state.bot
        ready = bool(client is not None and client.is_ready())
        latency = client.latency if ready else None
        if latency is not None and not math.isfinite(latency):
            latency = None  # no heartbeat acknowledged yet
        return {
            "ready": ready,
            "latency_ms": round(latency * 1000) if latency is not None else None,
            "tracked_users": summary.total_users,
            "open_voice_sessions": activity.open_session_count(),
        }

    return app
