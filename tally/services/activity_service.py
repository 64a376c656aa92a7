"""
tally.services.activity_service — Tracker Operations
=====================================================

The one object that owns the live :class:`Store`.  Cogs, the API, and the
backup task talk to the tracking engine only through
:class:`ActivityService`.

Every mutating operation follows the same pattern:
  1. Take the lock
  2. Apply the change through ``engine.ledger`` / ``engine.voice``
  3. Rewrite the JSON document (``JsonStore.save``)
  4. Release the lock

Cogs call these methods through ``run_db()`` (a worker thread), so the lock
is what keeps two events from interleaving.  Reads also take the lock and
return detached copies, so a caller never sees a half-applied write.

If a save fails, :class:`PersistenceError` propagates to the caller.  The
in-memory change is kept; it stays authoritative for this process and is
written out by the next successful save.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from pathlib import Path

from tally.constants import DEFAULT_LEADERBOARD_SIZE, Metric
from tally.database.engine import JsonStore, dumps, parse_import
from tally.database.models import Store, UserRecord
from tally.engine import ledger, voice
from tally.engine.ledger import Adjustment
from tally.engine.ranking import ActivityTotals, top_n, totals
from tally.engine.voice import VoiceTransition, classify_transition
from tally.errors import PersistenceError

logger = logging.getLogger(__name__)


class ActivityService:
    """Locked, persisted access to the tracked state.

    Parameters
    ----------
    backend:
        Durable store the state is written to after every mutation.
    store:
        Initial state.  Use :meth:`open` to load it from *backend*.
    clock:
        Returns the current time in epoch seconds.  Injected for tests.
    """

    def __init__(
        self,
        backend: JsonStore,
        store: Store | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.backend = backend
        self._store = store if store is not None else Store()
        self._clock = clock
        self._lock = threading.RLock()

    @classmethod
    def open(cls, path: str | Path, clock: Callable[[], float] = time.time) -> ActivityService:
        """Load the store at *path* and drop voice sessions from the last run."""
        backend = JsonStore(path)
        store = backend.load()
        service = cls(backend, store, clock=clock)
        if voice.discard_stale_sessions(store):
            try:
                service._persist()
            except PersistenceError:
                logger.error(
                    "Could not save the store after dropping stale voice sessions; "
                    "continuing with the in-memory state",
                )
        return service

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), UTC)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _persist(self) -> None:
        self.backend.save(self._store)

    # -------------------------------------------------------------------
    # Event ingestion
    # -------------------------------------------------------------------
    def on_message(self, identity: str, display_name: str) -> int:
        """Count a message; returns the user's new message total."""
        with self._lock:
            count = ledger.record_message(self._store, identity, display_name, self._now())
            self._persist()
            return count

    def on_voice_presence_change(
        self,
        identity: str,
        display_name: str,
        previous_channel: object | None,
        new_channel: object | None,
    ) -> int | None:
        """Feed a voice-state update into the session state machine.

        Returns the seconds credited when a session closes, else ``None``.
        """
        transition = classify_transition(previous_channel, new_channel)
        with self._lock:
            if transition is VoiceTransition.JOIN:
                voice.join(self._store, identity, display_name, self._now_ms())
                self._persist()
                return None
            if transition is VoiceTransition.LEAVE:
                credited = voice.leave(
                    self._store, identity, display_name, self._now_ms(), self._now(),
                )
                if credited is not None:
                    self._persist()
                return credited
            if transition is VoiceTransition.SWITCH:
                voice.switch(self._store, identity, display_name)
            return None

    def prime_voice_sessions(self, members: Iterable[tuple[str, str]]) -> int:
        """Open sessions for members found in voice when the bot connects."""
        with self._lock:
            opened = voice.prime_sessions(self._store, members, self._now_ms())
            if opened:
                self._persist()
            return opened

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def query_stats(self, identity: str) -> UserRecord:
        with self._lock:
            return ledger.get_snapshot(self._store, identity)

    def query_leaderboard(
        self,
        metric: Metric | str = Metric.MESSAGES,
        limit: int = DEFAULT_LEADERBOARD_SIZE,
    ) -> list[tuple[str, UserRecord]]:
        with self._lock:
            return [
                (identity, dataclasses.replace(record))
                for identity, record in top_n(self._store.users, metric, limit)
            ]

    def query_totals(self) -> ActivityTotals:
        with self._lock:
            return totals(self._store.users)

    def open_session_count(self) -> int:
        with self._lock:
            return len(self._store.voice_sessions)

    # -------------------------------------------------------------------
    # Admin
    # -------------------------------------------------------------------
    def admin_adjust(
        self,
        identity: str,
        display_name: str,
        field: Metric | str,
        delta: int,
    ) -> Adjustment:
        """Add a positive *delta* to a user's messages or voice seconds."""
        with self._lock:
            result = ledger.adjust(
                self._store, identity, display_name, Metric(field), delta, self._now(),
            )
            self._persist()
        logger.info(
            "Admin adjust %s (%s) %s: %d → %d",
            display_name, identity, field, result.before, result.after,
        )
        return result

    def admin_export(self) -> bytes:
        with self._lock:
            return dumps(self._store)

    def admin_import(self, payload: bytes | str) -> ActivityTotals:
        """Replace all users with *payload*.

        Voice sessions in the payload are dropped: their join times predate
        the import and would credit the gap.  Sessions open in this process
        describe live presence and are kept.

        Raises :class:`~tally.errors.ValidationError` before touching the
        live store if the payload is malformed.
        """
        incoming = parse_import(payload)
        with self._lock:
            self._store.users = incoming.users
            self._persist()
            summary = totals(self._store.users)
        logger.info(
            "Database imported — %d user(s), %d imported voice session(s) dropped",
            summary.total_users, len(incoming.voice_sessions),
        )
        return summary

    def snapshot_for_backup(self) -> bytes:
        """Serialized state for the backup scheduler."""
        return self.admin_export()
