"""
tests/test_backup.py — Backup Snapshot Tests
=============================================
"""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest

from tally.services.activity_service import ActivityService
from tally.services.backup_service import BACKUP_PREFIX, BackupService


class SteppingClock:
    """Returns a later datetime on every call."""

    def __init__(self) -> None:
        self.current = datetime(2024, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def stepping_backups(activity: ActivityService, tmp_path) -> BackupService:
    return BackupService(activity, tmp_path / "backups", keep=3, clock=SteppingClock())


class TestWriteSnapshot:
    def test_snapshot_matches_export(self, activity, stepping_backups):
        activity.on_message("1", "ann")
        path = stepping_backups.write_snapshot()
        assert json.loads(path.read_bytes()) == json.loads(activity.admin_export())
        assert stepping_backups.last_backup_path == path

    def test_filename_has_timestamp_and_reason(self, stepping_backups):
        path = stepping_backups.write_snapshot("Manual Run!")
        assert path.name == f"{BACKUP_PREFIX}20240101T000001000000Z-manual-run.json"

    def test_creates_backup_dir(self, stepping_backups):
        assert not stepping_backups.backup_dir.exists()
        stepping_backups.write_snapshot()
        assert stepping_backups.backup_dir.is_dir()

    def test_write_failure_raises(self, stepping_backups):
        with patch("tally.database.engine.os.replace", side_effect=OSError("no space")):
            with pytest.raises(OSError):
                stepping_backups.write_snapshot()
        assert stepping_backups.list_snapshots() == []


class TestRetention:
    def test_keeps_newest(self, stepping_backups):
        paths = [stepping_backups.write_snapshot() for _ in range(5)]
        assert stepping_backups.list_snapshots() == paths[-3:]

    def test_keep_zero_disables_pruning(self, activity, tmp_path):
        backups = BackupService(activity, tmp_path / "b", keep=0, clock=SteppingClock())
        for _ in range(4):
            backups.write_snapshot()
        assert len(backups.list_snapshots()) == 4
        assert backups.prune() == 0

    def test_other_files_ignored(self, stepping_backups):
        stepping_backups.backup_dir.mkdir(parents=True)
        (stepping_backups.backup_dir / "notes.txt").write_text("keep me")
        for _ in range(5):
            stepping_backups.write_snapshot()
        assert (stepping_backups.backup_dir / "notes.txt").exists()

    def test_list_without_dir(self, stepping_backups):
        assert stepping_backups.list_snapshots() == []


class TestCrashSnapshot:
    def test_writes_crash_file(self, stepping_backups):
        path = stepping_backups.crash_snapshot()
        assert path is not None
        assert path.name.endswith("-crash.json")

    def test_never_raises(self, stepping_backups, caplog):
        with patch.object(stepping_backups, "write_snapshot", side_effect=OSError("boom")):
            assert stepping_backups.crash_snapshot() is None
        assert "Crash backup failed" in caplog.text
