"""
tally.api.routes.public — Read-only public endpoints
=====================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from tally.api.deps import get_activity
from tally.constants import DEFAULT_LEADERBOARD_SIZE, Metric, format_voice_time
from tally.database.models import UserRecord
from tally.services.activity_service import ActivityService

router = APIRouter(tags=["public"])


def _user_dict(identity: str, record: UserRecord) -> dict:
    return {
        "id": identity,
        "username": record.username,
        "message_count": record.message_count,
        "voice_time": record.voice_time,
        "voice_time_display": format_voice_time(record.voice_time),
        "last_message": record.last_message,
    }


# ---------------------------------------------------------------------------
# GET /stats/{identity}
# ---------------------------------------------------------------------------
@router.get("/stats/{identity}")
def get_stats(identity: str, activity: ActivityService = Depends(get_activity)):
    """One user's counters; unknown users get zeros."""
    return _user_dict(identity, activity.query_stats(identity))


# ---------------------------------------------------------------------------
# GET /leaderboard
# ---------------------------------------------------------------------------
@router.get("/leaderboard")
def get_leaderboard(
    metric: Metric = Query(Metric.MESSAGES),
    limit: int = Query(DEFAULT_LEADERBOARD_SIZE, ge=1, le=100),
    activity: ActivityService = Depends(get_activity),
):
    rows = activity.query_leaderboard(metric, limit)
    return {
        "metric": metric.value,
        "entries": [
            {"rank": rank, **_user_dict(identity, record)}
            for rank, (identity, record) in enumerate(rows, 1)
        ],
    }


# ---------------------------------------------------------------------------
# GET /summary
# ---------------------------------------------------------------------------
@router.get("/summary")
def get_summary(activity: ActivityService = Depends(get_activity)):
    summary = activity.query_totals()
    return {
        "total_users": summary.total_users,
        "total_messages": summary.total_messages,
        "total_voice_seconds": summary.total_voice_seconds,
        "total_voice_display": format_voice_time(summary.total_voice_seconds),
    }
