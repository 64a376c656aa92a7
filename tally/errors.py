"""
tally.errors — Error Taxonomy
==============================

Every failure the tracking engine can report.  None of them is fatal to
the process:

* :class:`LoadError` — the durable file is missing or unreadable at
  startup.  The store falls back to an empty document and keeps running.
* :class:`ValidationError` — an import payload was rejected.  The live
  store is left untouched.
* :class:`PersistenceError` — a write to disk failed.  In-memory state is
  still authoritative for this process but is not durable yet.

Orphaned voice leaves (a leave with no matching join) are not errors at
all; they are logged at WARNING by :mod:`tally.engine.voice`.
"""

from __future__ import annotations


class TallyError(Exception):
    """Base class for all Tally errors."""


class LoadError(TallyError):
    """The durable store could not be read; an empty store was used instead."""


class ValidationError(TallyError):
    """An import payload does not have the expected shape."""


class PersistenceError(TallyError):
    """Writing the durable store failed."""
