"""
tally.engine.voice — Voice Session State Machine
================================================

Per identity there are two states::

    Absent ──join──▶ Active ──leave──▶ Absent
                      │  ▲
                      └──┘ switch (no change)

* **join** opens a session at ``now``.  Nothing is credited yet.
* **leave** credits ``floor((now - joined) / 1s)`` to ``voice_time`` and
  closes the session.  A leave without a session is a logged no-op:
  without a join timestamp there is nothing to credit.
* **switch** (channel A → channel B) keeps the session running untouched.

Sessions never outlive the process.  Anything found in a freshly loaded
store is stale and dropped by :func:`discard_stale_sessions`; members
already in voice at startup are re-opened by :func:`prime_sessions`.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable
from datetime import datetime

from tally.constants import format_voice_time
from tally.database.models import Store, VoiceSession
from tally.engine.ledger import ensure_user

logger = logging.getLogger(__name__)


class VoiceTransition(enum.StrEnum):
    """What a presence update means for the tracker."""
    JOIN = "join"
    LEAVE = "leave"
    SWITCH = "switch"
    NONE = "none"  # same channel (mute/deafen/stream toggles) or no channel at all


def classify_transition(previous_channel: object | None, new_channel: object | None) -> VoiceTransition:
    """Decompose a (before, after) channel pair into a transition."""
    if previous_channel is None and new_channel is not None:
        return VoiceTransition.JOIN
    if previous_channel is not None and new_channel is None:
        return VoiceTransition.LEAVE
    if previous_channel is not None and new_channel is not None and previous_channel != new_channel:
        return VoiceTransition.SWITCH
    return VoiceTransition.NONE


def join(store: Store, identity: str, display_name: str, now_ms: int) -> VoiceSession:
    """Open a session for *identity*.

    An already-open session means a leave was missed; it is replaced
    without crediting, since its real end is unknown.
    """
    stale = store.voice_sessions.get(identity)
    if stale is not None:
        logger.warning(
            "%s joined voice with a session already open since %d — replacing it",
            display_name, stale.join_time,
        )
    session = VoiceSession(join_time=now_ms, username=display_name)
    store.voice_sessions[identity] = session
    logger.info("\U0001f3a4 %s joined VC", display_name)
    return session


def leave(
    store: Store,
    identity: str,
    display_name: str,
    now_ms: int,
    now: datetime | None = None,
) -> int | None:
    """Close the session for *identity* and credit its duration.

    Returns the credited seconds, or ``None`` if no session was open.
    *now* stamps ``last_message`` on a record created here.
    """
    session = store.voice_sessions.pop(identity, None)
    if session is None:
        logger.warning(
            "Orphaned voice leave for %s (%s): no open session, nothing credited",
            display_name, identity,
        )
        return None

    duration = max(0, (now_ms - session.join_time) // 1000)
    record = ensure_user(store, identity, display_name, now)
    record.voice_time += duration
    record.username = display_name
    logger.info("\U0001f507 %s left VC (time: %s)", display_name, format_voice_time(duration))
    return duration


def switch(store: Store, identity: str, display_name: str) -> None:
    """Channel change: the open session continues uninterrupted."""
    logger.debug(
        "\U0001f504 %s switched VC channel (session open: %s)",
        display_name, identity in store.voice_sessions,
    )


def discard_stale_sessions(store: Store) -> int:
    """Drop every session in a freshly loaded store; return how many."""
    count = len(store.voice_sessions)
    if count:
        logger.warning(
            "Discarding %d voice session(s) left open by the previous run "
            "(downtime is not credited)", count,
        )
        store.voice_sessions.clear()
    return count


def prime_sessions(store: Store, members: Iterable[tuple[str, str]], now_ms: int) -> int:
    """Open sessions for ``(identity, display_name)`` pairs already in voice.

    Existing sessions are left alone.  Returns the number opened.
    """
    opened = 0
    for identity, display_name in members:
        if identity in store.voice_sessions:
            continue
        store.voice_sessions[identity] = VoiceSession(join_time=now_ms, username=display_name)
        opened += 1
    if opened:
        logger.info("Primed %d voice session(s) for members already in voice", opened)
    return opened
