"""
tally.api.routes.admin — Admin data endpoints (JWT‑protected)
==============================================================
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, Field

from tally.api.deps import get_activity, get_backups, get_current_admin
from tally.constants import Metric
from tally.database.engine import run_db
from tally.errors import PersistenceError, ValidationError
from tally.services.activity_service import ActivityService
from tally.services.backup_service import BackupService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(get_current_admin)],
)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class AdjustRequest(BaseModel):
    identity: str
    username: str = ""
    field: Metric
    delta: int = Field(gt=0)


# ---------------------------------------------------------------------------
# Export / import
# ---------------------------------------------------------------------------
@router.get("/export")
def export_database(activity: ActivityService = Depends(get_activity)):
    stamp = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    return Response(
        content=activity.admin_export(),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="database-{stamp}.json"'},
    )


@router.post("/import")
async def import_database(request: Request, activity: ActivityService = Depends(get_activity)):
    """Replace users and voice sessions with the request body."""
    payload = await request.body()
    try:
        summary = await run_db(activity.admin_import, payload)
    except ValidationError as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc))
    except PersistenceError as exc:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, str(exc))
    return {
        "imported_users": summary.total_users,
        "total_messages": summary.total_messages,
        "total_voice_seconds": summary.total_voice_seconds,
    }


# ---------------------------------------------------------------------------
# Adjust
# ---------------------------------------------------------------------------
@router.post("/adjust")
def adjust_user(body: AdjustRequest, activity: ActivityService = Depends(get_activity)):
    try:
        result = activity.admin_adjust(body.identity, body.username, body.field, body.delta)
    except PersistenceError as exc:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, str(exc))
    return {"before": result.before, "after": result.after}


# ---------------------------------------------------------------------------
# Backup
# ---------------------------------------------------------------------------
@router.post("/backup")
def trigger_backup(backups: BackupService | None = Depends(get_backups)):
    if backups is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Backups are not configured")
    try:
        path = backups.write_snapshot("api")
    except OSError as exc:
        logger.exception("API-triggered backup failed")
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, str(exc))
    return {"file": path.name}
