"""
tally.engine.ledger — User Activity Ledger
==========================================

Pure mutations over :class:`~tally.database.models.Store.users`.  Nothing
here touches the disk; :class:`~tally.services.activity_service.ActivityService`
persists after each call.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import UTC, datetime

from tally.constants import METRIC_FIELDS, Metric
from tally.database.models import Store, UserRecord

__all__ = ["Adjustment", "adjust", "ensure_user", "get_snapshot", "iso_now", "record_message"]


@dataclass(frozen=True, slots=True)
class Adjustment:
    """Counter value before and after an admin adjustment."""

    before: int
    after: int


def iso_now(now: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    now = now or datetime.now(UTC)
    return now.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def ensure_user(store: Store, identity: str, display_name: str, now: datetime | None = None) -> UserRecord:
    """Return the record for *identity*, creating a zeroed one if needed."""
    record = store.users.get(identity)
    if record is None:
        record = UserRecord(username=display_name, last_message=iso_now(now))
        store.users[identity] = record
    return record


def record_message(store: Store, identity: str, display_name: str, now: datetime | None = None) -> int:
    """Count one message and return the new total."""
    record = ensure_user(store, identity, display_name, now)
    record.message_count += 1
    record.username = display_name
    record.last_message = iso_now(now)
    return record.message_count


def get_snapshot(store: Store, identity: str) -> UserRecord:
    """Detached copy of a record, or a zero record if *identity* is unknown.

    Read-only: never creates a record.
    """
    record = store.users.get(identity)
    if record is None:
        return UserRecord()
    return dataclasses.replace(record)


def adjust(
    store: Store,
    identity: str,
    display_name: str,
    field: Metric,
    delta: int,
    now: datetime | None = None,
) -> Adjustment:
    """Add *delta* to the selected counter.

    Only increments are supported: corrections (decrements) go through
    export → edit → import.
    """
    if isinstance(delta, bool) or not isinstance(delta, int) or delta <= 0:
        raise ValueError(f"delta must be a positive integer, got {delta!r}")

    attr = METRIC_FIELDS[Metric(field)]
    record = ensure_user(store, identity, display_name, now)
    before = getattr(record, attr)
    setattr(record, attr, before + delta)
    record.username = display_name
    return Adjustment(before=before, after=before + delta)
