"""
tally.constants — Shared Constants & Helpers
=============================================

Single source of truth for presentation constants and the time formatting
used by leaderboards, exports, and logs.  Import from here instead of
duplicating in cogs, services, and the API.
"""

from __future__ import annotations

import enum


class Metric(enum.StrEnum):
    """Counters a leaderboard or an admin adjustment can target."""
    MESSAGES = "messages"
    VOICE = "voice"


# UserRecord attribute backing each metric
METRIC_FIELDS: dict[Metric, str] = {
    Metric.MESSAGES: "message_count",
    Metric.VOICE: "voice_time",
}

METRIC_LABELS: dict[Metric, str] = {
    Metric.MESSAGES: "Messages",
    Metric.VOICE: "VC",
}

RANK_BADGES: list[str] = ["\U0001f947", "\U0001f948", "\U0001f949"]  # 🥇🥈🥉

DEFAULT_LEADERBOARD_SIZE = 10


# ---------------------------------------------------------------------------
# Time formatting
# ---------------------------------------------------------------------------
def format_voice_time(seconds: int) -> str:
    """Render a voice duration for leaderboards and logs.

    * one hour or more → ``"1h 0m"`` (seconds dropped)
    * one minute or more → ``"59m 59s"``
    * otherwise → ``"59s"``
    """
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_hours(seconds: int) -> str:
    """Voice time as decimal hours with one digit (``5400`` → ``"1.5h"``)."""
    return f"{max(0, int(seconds)) / 3600:.1f}h"
