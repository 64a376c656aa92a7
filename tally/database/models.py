"""
tally.database.models — Tracked State Schema
=============================================

Typed shapes for the JSON document Tally persists.

Records:
- UserRecord    — cumulative counters for one member (keyed by identity)
- VoiceSession  — an open voice interval (join timestamp + label)
- Store         — the root aggregate: ``users`` + ``voiceSessions``

Wire format (``Store.to_dict``)::

    {
      "users": {"<id>": {"username": "...", "message_count": 3,
                         "voice_time": 120, "last_message": "2024-...Z"}},
      "voiceSessions": {"<id>": {"joinTime": 1718000000000, "username": "..."}}
    }

``Store.from_dict`` is also the migration step for legacy documents:
missing ``voiceSessions`` and missing per-user fields get defaults, and
unknown keys are dropped.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


def _counter(value: Any, name: str) -> int:
    """Coerce a stored counter: absent → 0, otherwise a non-negative int."""
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")
    return value


# ---------------------------------------------------------------------------
# UserRecord
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class UserRecord:
    """Cumulative activity for one identity."""

    username: str = ""
    message_count: int = 0
    voice_time: int = 0  # seconds
    last_message: str | None = None  # ISO-8601, advisory only

    def to_dict(self) -> dict[str, Any]:
        return {
            "username": self.username,
            "message_count": self.message_count,
            "voice_time": self.voice_time,
            "last_message": self.last_message,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> UserRecord:
        if not isinstance(raw, Mapping):
            raise ValueError("user entry must be an object")
        last = raw.get("last_message")
        return cls(
            username=str(raw.get("username") or ""),
            message_count=_counter(raw.get("message_count"), "message_count"),
            voice_time=_counter(raw.get("voice_time"), "voice_time"),
            last_message=str(last) if last is not None else None,
        )


# ---------------------------------------------------------------------------
# VoiceSession
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class VoiceSession:
    """An open voice interval.  Never meaningful across a restart."""

    join_time: int  # epoch milliseconds
    username: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"joinTime": self.join_time, "username": self.username}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> VoiceSession:
        if not isinstance(raw, Mapping):
            raise ValueError("voice session entry must be an object")
        join_time = raw.get("joinTime")
        if isinstance(join_time, bool) or not isinstance(join_time, (int, float)):
            raise ValueError("joinTime must be epoch milliseconds")
        return cls(join_time=int(join_time), username=str(raw.get("username") or ""))


# ---------------------------------------------------------------------------
# Store — the root aggregate
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class Store:
    """All tracked state.  Owned by :class:`ActivityService`."""

    users: dict[str, UserRecord] = field(default_factory=dict)
    voice_sessions: dict[str, VoiceSession] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "users": {uid: rec.to_dict() for uid, rec in self.users.items()},
            "voiceSessions": {
                uid: sess.to_dict() for uid, sess in self.voice_sessions.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Any, *, strict: bool = True) -> Store:
        """Build a Store from a decoded JSON document.

        With ``strict=True`` any malformed entry raises :class:`ValueError`.
        With ``strict=False`` malformed entries are logged and skipped, so a
        single bad record doesn't discard everything else on startup.  A
        missing or non-object ``users`` raises in both modes.
        """
        if not isinstance(data, Mapping):
            raise ValueError("top-level document must be an object")
        raw_users = data.get("users")
        if not isinstance(raw_users, Mapping):
            raise ValueError("'users' must be present and be an object")
        raw_sessions = data.get("voiceSessions") or {}
        if not isinstance(raw_sessions, Mapping):
            raise ValueError("'voiceSessions' must be an object")

        store = cls()
        for uid, raw in raw_users.items():
            try:
                store.users[str(uid)] = UserRecord.from_dict(raw)
            except ValueError as exc:
                if strict:
                    raise ValueError(f"user {uid}: {exc}") from exc
                logger.error("Skipping malformed user record %s: %s", uid, exc)

        for uid, raw in raw_sessions.items():
            try:
                store.voice_sessions[str(uid)] = VoiceSession.from_dict(raw)
            except ValueError as exc:
                if strict:
                    raise ValueError(f"voice session {uid}: {exc}") from exc
                logger.error("Skipping malformed voice session %s: %s", uid, exc)

        return store
