"""
tally.services.backup_service — Database Snapshots
===================================================

Writes timestamped copies of the tracked state to ``backup_dir`` for
recovery outside the live ``database.json``.

Snapshots are taken:
    - periodically by the ``tasks`` cog (``backup_interval_minutes``),
    - on demand via ``/backup`` or ``POST /api/admin/backup``,
    - on crashes: ``TallyBot.on_error`` and the ``__main__`` entry point
      call :meth:`BackupService.crash_snapshot`.

Only the newest ``keep`` snapshots are retained; older files are pruned
after every write.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from tally.database.engine import atomic_write
from tally.services.activity_service import ActivityService

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "tally-backup-"
_REASON_RE = re.compile(r"[^a-z0-9_-]+")


class BackupService:
    """Snapshot writer with count-based retention.

    Parameters
    ----------
    activity:
        Source of the serialized state.
    backup_dir:
        Directory the snapshots are written to (created on demand).
    keep:
        How many snapshots to retain.  ``0`` disables pruning.
    """

    def __init__(
        self,
        activity: ActivityService,
        backup_dir: str | Path = "backups",
        keep: int = 20,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.activity = activity
        self.backup_dir = Path(backup_dir)
        self.keep = keep
        self._clock = clock
        self.last_backup_path: Path | None = None

    def write_snapshot(self, reason: str = "scheduled") -> Path:
        """Write one snapshot and prune old ones.  Returns the new file.

        Raises :class:`OSError` if the snapshot could not be written.
        """
        payload = self.activity.snapshot_for_backup()
        slug = _REASON_RE.sub("-", reason.lower()).strip("-") or "manual"
        stamp = self._clock().strftime("%Y%m%dT%H%M%S%fZ")
        path = self.backup_dir / f"{BACKUP_PREFIX}{stamp}-{slug}.json"

        atomic_write(path, payload)
        self.last_backup_path = path
        logger.info("Backup written → %s (%d bytes, reason=%s)", path, len(payload), slug)

        self.prune()
        return path

    def crash_snapshot(self) -> Path | None:
        """Best-effort snapshot while handling a crash.

        Never raises: a failing backup must not mask the original error.
        """
        try:
            return self.write_snapshot("crash")
        except Exception:
            logger.exception("Crash backup failed")
            return None

    def list_snapshots(self) -> list[Path]:
        """Existing snapshots, oldest first."""
        if not self.backup_dir.exists():
            return []
        return sorted(self.backup_dir.glob(f"{BACKUP_PREFIX}*.json"))

    def prune(self) -> int:
        """Delete all but the newest ``keep`` snapshots; return how many."""
        if self.keep <= 0:
            return 0
        snapshots = self.list_snapshots()
        stale = snapshots[:-self.keep] if len(snapshots) > self.keep else []
        for path in stale:
            try:
                path.unlink()
            except OSError as exc:
                logger.warning("Could not delete old backup %s: %s", path, exc)
        if stale:
            logger.info("Backup retention: pruned %d old snapshot(s)", len(stale))
        return len(stale)
