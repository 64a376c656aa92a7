"""
tally.engine.ranking — Leaderboards & Totals
============================================

Pure functions over ``Store.users``.  No side effects, no persistence.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from tally.constants import DEFAULT_LEADERBOARD_SIZE, METRIC_FIELDS, Metric
from tally.database.models import UserRecord

__all__ = ["ActivityTotals", "top_n", "totals"]


@dataclass(frozen=True, slots=True)
class ActivityTotals:
    """Summary counts across every tracked user."""

    total_users: int
    total_messages: int
    total_voice_seconds: int


def top_n(
    users: Mapping[str, UserRecord],
    metric: Metric | str = Metric.MESSAGES,
    limit: int = DEFAULT_LEADERBOARD_SIZE,
) -> list[tuple[str, UserRecord]]:
    """Top *limit* ``(identity, record)`` pairs, highest *metric* first.

    ``sorted`` is stable (also with ``reverse=True``), so users with equal
    values keep their insertion order, i.e. whoever was tracked first ranks
    first.
    """
    if limit <= 0:
        return []
    attr = METRIC_FIELDS[Metric(metric)]
    ranked = sorted(users.items(), key=lambda item: getattr(item[1], attr), reverse=True)
    return ranked[:limit]


def totals(users: Mapping[str, UserRecord]) -> ActivityTotals:
    return ActivityTotals(
        total_users=len(users),
        total_messages=sum(u.message_count for u in users.values()),
        total_voice_seconds=sum(u.voice_time for u in users.values()),
    )
