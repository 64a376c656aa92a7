"""
Tally — Message & Voice Activity Tracker for Discord
=====================================================
Counts messages and time spent in voice channels per member, ranks members
on leaderboards, and keeps its whole state in a single JSON document that
admins can export, import, adjust, and back up.

Package layout::

    tally/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Metric enum, rank badges, time formatting
    ├── errors.py          # LoadError / ValidationError / PersistenceError
    ├── database/
    │   ├── engine.py      # JSON store (atomic writes) + async helper
    │   └── models.py      # UserRecord, VoiceSession, Store
    ├── engine/
    │   ├── ledger.py      # Message counters + admin adjustments
    │   ├── voice.py       # Voice session state machine
    │   └── ranking.py     # Leaderboards + totals
    ├── services/
    │   ├── activity_service.py  # Locked, persisted operations for cogs/API
    │   ├── backup_service.py    # Timestamped snapshots + retention
    │   └── embeds.py            # Discord embed builders
    ├── bot/
    │   ├── core.py        # Bot subclass, cog loader, crash backups
    │   └── cogs/
    │       ├── social.py  # on_message → message counter
    │       ├── voice.py   # on_voice_state_update → voice sessions
    │       ├── meta.py    # /stats, /leaderboard, /summary
    │       ├── admin.py   # /add, /export, /import, /backup
    │       └── tasks.py   # Periodic backup loop
    └── api/
        ├── main.py        # FastAPI app (health + read API)
        └── routes/        # Public + admin REST endpoints
"""

__version__ = "0.1.0"
