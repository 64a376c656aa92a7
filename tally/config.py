"""
tally.config — YAML Configuration Loader
=========================================

**Why this file exists:**
This module reads ``config.yaml`` for the soft settings of a deployment
(file locations, backup cadence, admin role, leaderboard size, API port).
Secrets — the Discord token and the API's ``JWT_SECRET`` — stay in ``.env``.

Usage::

    from tally.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.data_path)         # "data/database.json"
    print(cfg.leaderboard_size)  # 10
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from tally.constants import DEFAULT_LEADERBOARD_SIZE
from tally.database.engine import DEFAULT_DATA_PATH


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TallyConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    bot_name: str = "Tally"
    bot_prefix: str = "!"

    # Storage
    data_path: str = DEFAULT_DATA_PATH

    # Backups
    backup_dir: str = "backups"
    backup_interval_minutes: int = 360
    backup_keep: int = 20
    backup_channel_id: int | None = None  # Also upload periodic snapshots here

    # Commands
    admin_role_id: int | None = None  # None → Administrator permission required
    leaderboard_size: int = DEFAULT_LEADERBOARD_SIZE

    # HTTP (health + read API); None disables the listener
    api_port: int | None = None


def _optional_int(value) -> int | None:
    return int(value) if value not in (None, "") else None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> TallyConfig:
    """Read *path* and return a :class:`TallyConfig` instance.

    Every key is optional; omitted keys keep their defaults.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If the file is not a YAML mapping or a value has the wrong type.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    if not isinstance(raw, dict):
        raise ValueError(f"{config_path} must contain a YAML mapping")

    defaults = TallyConfig()
    interval = int(raw.get("backup_interval_minutes", defaults.backup_interval_minutes))
    if interval <= 0:
        raise ValueError("backup_interval_minutes must be positive")
    size = int(raw.get("leaderboard_size", defaults.leaderboard_size))
    if not 1 <= size <= 25:
        raise ValueError("leaderboard_size must be between 1 and 25")  # embed field cap

    return TallyConfig(
        bot_name=str(raw.get("bot_name", defaults.bot_name)),
        bot_prefix=str(raw.get("bot_prefix", defaults.bot_prefix)),
        data_path=str(raw.get("data_path", defaults.data_path)),
        backup_dir=str(raw.get("backup_dir", defaults.backup_dir)),
        backup_interval_minutes=interval,
        backup_keep=int(raw.get("backup_keep", defaults.backup_keep)),
        backup_channel_id=_optional_int(raw.get("backup_channel_id")),
        admin_role_id=_optional_int(raw.get("admin_role_id")),
        leaderboard_size=size,
        api_port=_optional_int(raw.get("api_port")),
    )
