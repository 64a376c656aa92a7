"""
tally.database.engine — JSON Store & Async Helper
==================================================

**Why this file exists:**
All tracked state lives in one JSON document (``data/database.json`` by
default).  It is read once at startup and rewritten in full after every
mutation.  Two rules hold for that file:

1. **Startup never fails because of it.**  A missing or corrupt file
   yields an empty :class:`Store`; the problem is logged and kept on
   :attr:`JsonStore.last_load_error`.  A corrupt file, or one whose malformed
   records were skipped, is copied aside as ``<name>.corrupt`` before
   anything overwrites it.
2. **No partial writes.**  Saves go to a temp file in the same directory,
   are fsynced, then ``os.replace``-d over the target.  Readers see either
   the previous document or the new one.

Discord runs on an ``asyncio`` event loop, and disk writes are blocking, so
cogs call into the tracker through :func:`run_db`, which ships the sync
call to a worker thread.

Usage::

    from tally.database.engine import JsonStore, run_db

    backend = JsonStore("data/database.json")
    store = backend.load()
    backend.save(store)

    # Inside an async Cog method:
    count = await run_db(self.bot.tracker.on_message, user_id, name)
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import ParamSpec, TypeVar

from tally.database.models import Store
from tally.errors import LoadError, PersistenceError, ValidationError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

DEFAULT_DATA_PATH = "data/database.json"


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------
def dumps(store: Store) -> bytes:
    """Serialize *store* to the durable (and export) form."""
    return json.dumps(store.to_dict(), indent=2, ensure_ascii=False).encode("utf-8")


def parse_import(payload: bytes | str) -> Store:
    """Parse a candidate durable document for import.

    Raises
    ------
    ValidationError
        If the payload is not JSON, has no ``users`` object, or contains a
        malformed record.  Extra top-level keys are ignored.
    """
    try:
        data = json.loads(payload)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValidationError(f"Import is not valid JSON: {exc}") from exc

    try:
        return Store.from_dict(data, strict=True)
    except ValueError as exc:
        raise ValidationError(f"Invalid import file: {exc}") from exc


def atomic_write(path: Path, payload: bytes) -> None:
    """Replace *path* with *payload* so no partial file is ever visible."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(payload)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


# ---------------------------------------------------------------------------
# Durable store
# ---------------------------------------------------------------------------
class JsonStore:
    """Loads and saves the whole :class:`Store` as one JSON file.

    Parameters
    ----------
    path:
        Location of the durable document.  Parent directories are created
        on first save.
    """

    def __init__(self, path: str | Path = DEFAULT_DATA_PATH) -> None:
        self.path = Path(path)
        self.last_load_error: LoadError | None = None

    def load(self) -> Store:
        """Read the durable document, falling back to an empty Store."""
        self.last_load_error = None

        if not self.path.exists():
            self.last_load_error = LoadError(f"{self.path} does not exist")
            logger.info("No database at %s — starting with an empty store", self.path)
            return Store()

        try:
            raw = self.path.read_text(encoding="utf-8")
            store = self._decode(json.loads(raw))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValueError) as exc:
            self.last_load_error = LoadError(f"Could not load {self.path}: {exc}")
            logger.error(
                "Error loading database %s, creating a new one: %s",
                self.path, exc, exc_info=True,
            )
            self._preserve_corrupt_file()
            return Store()

        logger.info(
            "Database loaded — %d user(s), %d saved voice session(s)",
            len(store.users), len(store.voice_sessions),
        )
        return store

    def save(self, store: Store) -> None:
        """Rewrite the durable document with *store*.

        Raises
        ------
        PersistenceError
            If the file could not be written.  The previous version is
            left in place.
        """
        try:
            atomic_write(self.path, dumps(store))
        except OSError as exc:
            logger.error("Failed to save database to %s", self.path, exc_info=True)
            raise PersistenceError(f"Could not write {self.path}: {exc}") from exc
        logger.debug("Saved %d user(s) to %s", len(store.users), self.path)

    def _decode(self, data) -> Store:
        """Build the Store, skipping malformed records if there are any.

        Skipped records only exist in the file on disk, which the next save
        overwrites, so the original is copied aside first.
        """
        try:
            return Store.from_dict(data, strict=True)
        except ValueError as exc:
            store = Store.from_dict(data, strict=False)  # shape errors raise again
            self.last_load_error = LoadError(f"{self.path} has malformed records: {exc}")
            logger.warning("Database %s loaded partially: %s", self.path, exc)
            self._preserve_corrupt_file()
            return store

    def _preserve_corrupt_file(self) -> None:
        """Keep a copy of an unreadable file so the next save can't destroy it."""
        target = self.path.with_name(self.path.name + ".corrupt")
        try:
            shutil.copy(self.path, target)
            logger.warning("Copied unreadable database to %s", target)
        except OSError as exc:
            logger.warning("Could not preserve unreadable database: %s", exc)


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** store operation on a background thread.

    Every tracker call from a Cog goes through this wrapper so a slow disk
    never stalls the gateway connection::

        stats = await run_db(self.bot.tracker.query_stats, str(user.id))
    """
    return await asyncio.to_thread(func, *args, **kwargs)
