"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs so the admin router
# is mounted by create_app().
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from pathlib import Path  # noqa: E402

import pytest  # noqa: E402

from tally.database.engine import JsonStore  # noqa: E402
from tally.services.activity_service import ActivityService  # noqa: E402
from tally.services.backup_service import BackupService  # noqa: E402


class FakeClock:
    """Controllable epoch-seconds clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def data_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "database.json"


@pytest.fixture
def activity(data_path: Path, clock: FakeClock) -> ActivityService:
    """A service backed by a JSON file in a temp directory."""
    return ActivityService(JsonStore(data_path), clock=clock)


@pytest.fixture
def backups(activity: ActivityService, tmp_path: Path) -> BackupService:
    return BackupService(activity, tmp_path / "backups", keep=3)


@pytest.fixture
def admin_token():
    """Generate a valid admin JWT for use in API integration tests."""
    return make_admin_token()


def make_admin_token(sub: str = "99999", is_admin: bool = True) -> str:
    """Create a JWT.  Usable as both a fixture and a factory function."""
    import jwt

    from tally.api.deps import JWT_ALGORITHM

    return jwt.encode(
        {"sub": sub, "username": "FixtureAdmin", "is_admin": is_admin},
        os.environ["JWT_SECRET"],
        algorithm=JWT_ALGORITHM,
    )


@pytest.fixture
def client(activity: ActivityService, backups: BackupService):
    """FastAPI TestClient around a fresh tracker."""
    from fastapi.testclient import TestClient

    from tally.api.main import create_app

    app = create_app(activity, backups, enable_admin=True)
    return TestClient(app, raise_server_exceptions=False)
