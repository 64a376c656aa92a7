"""
tests/test_cogs.py — Cog Handler Tests
=======================================

Drives the cog callbacks with lightweight Discord stand-ins and a real
tracker, so each test checks both the reply and the stored state.
"""

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from tally.bot.cogs.admin import MAX_IMPORT_BYTES, Admin
from tally.bot.cogs.meta import Meta
from tally.bot.cogs.social import Social
from tally.bot.cogs.tasks import PeriodicTasks
from tally.bot.cogs.voice import Voice
from tally.config import TallyConfig
from tally.constants import Metric


# Helper to run async tests without pytest-asyncio
def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _make_bot(activity, backups=None, **cfg) -> MagicMock:
    """Create a lightweight mock TallyBot."""
    bot = MagicMock()
    bot.cfg = TallyConfig(**cfg)
    bot.tracker = activity
    bot.backups = backups
    return bot


def _member(uid: int = 1, name: str = "ann", *, bot: bool = False) -> SimpleNamespace:
    return SimpleNamespace(
        id=uid,
        name=name,
        bot=bot,
        display_avatar=SimpleNamespace(url="https://cdn.example/avatar.png"),
    )


def _voice_state(channel_id: int | None) -> SimpleNamespace:
    channel = None if channel_id is None else SimpleNamespace(id=channel_id, name=f"vc-{channel_id}")
    return SimpleNamespace(channel=channel)


def _make_ctx(author=None) -> MagicMock:
    ctx = MagicMock()
    ctx.author = author or _member(99, "caller")
    ctx.send = AsyncMock()
    return ctx


def _make_interaction(user_name: str = "mod") -> MagicMock:
    interaction = MagicMock()
    interaction.user.name = user_name
    interaction.response.send_message = AsyncMock()
    interaction.response.defer = AsyncMock()
    interaction.followup.send = AsyncMock()
    return interaction


# ===========================================================================
# Social
# ===========================================================================
class TestSocialCog:
    def test_counts_messages(self, activity):
        cog = Social(_make_bot(activity))
        message = SimpleNamespace(author=_member())
        run_async(cog.on_message(message))
        run_async(cog.on_message(message))
        assert activity.query_stats("1").message_count == 2
        assert activity.query_stats("1").username == "ann"

    def test_ignores_bots(self, activity):
        cog = Social(_make_bot(activity))
        run_async(cog.on_message(SimpleNamespace(author=_member(7, "robot", bot=True))))
        assert activity.query_totals().total_users == 0

    def test_tracker_error_is_logged_not_raised(self, caplog):
        tracker = MagicMock()
        tracker.on_message.side_effect = RuntimeError("boom")
        cog = Social(_make_bot(tracker))
        run_async(cog.on_message(SimpleNamespace(author=_member())))
        assert "Error updating message counter" in caplog.text


# ===========================================================================
# Voice
# ===========================================================================
class TestVoiceCog:
    def test_join_then_leave_credits_time(self, activity, clock):
        cog = Voice(_make_bot(activity))
        member = _member()
        run_async(cog.on_voice_state_update(member, _voice_state(None), _voice_state(10)))
        assert activity.open_session_count() == 1

        clock.advance(95)
        run_async(cog.on_voice_state_update(member, _voice_state(10), _voice_state(None)))
        assert activity.query_stats("1").voice_time == 95
        assert activity.open_session_count() == 0

    def test_move_between_channels_keeps_session(self, activity, clock):
        cog = Voice(_make_bot(activity))
        member = _member()
        run_async(cog.on_voice_state_update(member, _voice_state(None), _voice_state(10)))
        clock.advance(40)
        run_async(cog.on_voice_state_update(member, _voice_state(10), _voice_state(11)))
        clock.advance(20)
        run_async(cog.on_voice_state_update(member, _voice_state(11), _voice_state(None)))
        assert activity.query_stats("1").voice_time == 60

    def test_ignores_bots(self, activity):
        cog = Voice(_make_bot(activity))
        robot = _member(7, "robot", bot=True)
        run_async(cog.on_voice_state_update(robot, _voice_state(None), _voice_state(10)))
        assert activity.open_session_count() == 0


# ===========================================================================
# Meta
# ===========================================================================
class TestMetaCog:
    def test_stats_defaults_to_author(self, activity):
        activity.on_message("99", "caller")
        cog = Meta(_make_bot(activity))
        ctx = _make_ctx()
        run_async(Meta.stats.callback(cog, ctx, None))
        embed = ctx.send.await_args.kwargs["embed"]
        assert embed.title == "\U0001f4ca caller stats"
        assert "Messages: **1**" in embed.description
        assert "VC: **0.0h**" in embed.description

    def test_stats_for_other_member(self, activity):
        activity.admin_adjust("1", "ann", Metric.VOICE, 5400)
        cog = Meta(_make_bot(activity))
        ctx = _make_ctx()
        run_async(Meta.stats.callback(cog, ctx, _member()))
        embed = ctx.send.await_args.kwargs["embed"]
        assert "VC: **1.5h**" in embed.description
        assert embed.footer.text == "Requested by: caller"

    def test_leaderboard_empty(self, activity):
        cog = Meta(_make_bot(activity))
        ctx = _make_ctx()
        run_async(Meta.leaderboard.callback(cog, ctx, "messages"))
        ctx.send.assert_awaited_once_with("No data")

    def test_leaderboard_uses_configured_size(self, activity):
        for uid in range(1, 6):
            activity.on_message(str(uid), f"user{uid}")
        cog = Meta(_make_bot(activity, leaderboard_size=3))
        ctx = _make_ctx()
        run_async(Meta.leaderboard.callback(cog, ctx, "messages"))
        embed = ctx.send.await_args.kwargs["embed"]
        assert len(embed.fields) == 3

    def test_leaderboard_voice(self, activity):
        activity.admin_adjust("1", "ann", Metric.VOICE, 60)
        activity.admin_adjust("2", "bob", Metric.VOICE, 3600)
        cog = Meta(_make_bot(activity))
        ctx = _make_ctx()
        run_async(Meta.leaderboard.callback(cog, ctx, "voice"))
        embed = ctx.send.await_args.kwargs["embed"]
        assert embed.title == "\U0001f3c6 Top 2 - VC"
        assert embed.fields[0].name.endswith("bob")
        assert embed.fields[0].value == "1h 0m"

    def test_leaderboard_rejects_unknown_type(self, activity):
        cog = Meta(_make_bot(activity))
        ctx = _make_ctx()
        run_async(Meta.leaderboard.callback(cog, ctx, "xp"))
        assert ctx.send.await_args.kwargs["ephemeral"] is True

    def test_summary(self, activity):
        activity.on_message("1", "ann")
        cog = Meta(_make_bot(activity))
        ctx = _make_ctx()
        run_async(Meta.summary.callback(cog, ctx))
        embed = ctx.send.await_args.kwargs["embed"]
        assert embed.fields[0].value == "1"


# ===========================================================================
# Admin
# ===========================================================================
class TestAdminCheck:
    def _check(self, *, role_id, roles, administrator=False) -> bool:
        interaction = SimpleNamespace(
            client=SimpleNamespace(cfg=TallyConfig(admin_role_id=role_id)),
            user=SimpleNamespace(
                roles=[SimpleNamespace(id=r) for r in roles],
                guild_permissions=SimpleNamespace(administrator=administrator),
            ),
        )
        return run_async(Admin.add.checks[0](interaction))

    def test_configured_role_grants(self):
        assert self._check(role_id=5, roles=[1, 5]) is True

    def test_configured_role_missing(self):
        assert self._check(role_id=5, roles=[1], administrator=True) is False

    def test_administrator_without_role_configured(self):
        assert self._check(role_id=None, roles=[], administrator=True) is True
        assert self._check(role_id=None, roles=[], administrator=False) is False


class TestAdminCog:
    def test_add_voice(self, activity):
        cog = Admin(_make_bot(activity))
        interaction = _make_interaction()
        run_async(Admin.add.callback(cog, interaction, _member(), "voice", 120))
        assert activity.query_stats("1").voice_time == 120
        embed = interaction.response.send_message.await_args.kwargs["embed"]
        assert embed.footer.text == "Adjusted by mod"
        assert "0s → **2m 0s**" in embed.description

    def test_add_rejects_non_positive(self, activity):
        cog = Admin(_make_bot(activity))
        interaction = _make_interaction()
        run_async(Admin.add.callback(cog, interaction, _member(), "messages", 0))
        assert activity.query_totals().total_users == 0
        assert "positive" in interaction.response.send_message.await_args.args[0]

    def test_export_sends_file(self, activity):
        activity.on_message("1", "ann")
        cog = Admin(_make_bot(activity))
        interaction = _make_interaction()
        run_async(Admin.export.callback(cog, interaction))
        kwargs = interaction.response.send_message.await_args.kwargs
        assert isinstance(kwargs["file"], discord.File)
        assert kwargs["file"].filename.startswith("database-")
        assert kwargs["ephemeral"] is True

    def test_import_replaces_database(self, activity):
        activity.on_message("old", "gone")
        payload = json.dumps({"users": {"1": {"username": "ann", "message_count": 4}}}).encode()
        attachment = SimpleNamespace(filename="db.json", size=len(payload), read=AsyncMock(return_value=payload))
        cog = Admin(_make_bot(activity))
        interaction = _make_interaction()
        run_async(Admin.import_.callback(cog, interaction, attachment))
        interaction.response.defer.assert_awaited_once()
        assert "Imported 1 user(s)" in interaction.followup.send.await_args.args[0]
        assert activity.query_stats("old").message_count == 0
        assert activity.query_stats("1").message_count == 4

    def test_import_invalid_keeps_state(self, activity):
        activity.on_message("1", "ann")
        attachment = SimpleNamespace(filename="db.json", size=2, read=AsyncMock(return_value=b"{}"))
        cog = Admin(_make_bot(activity))
        interaction = _make_interaction()
        run_async(Admin.import_.callback(cog, interaction, attachment))
        assert "Import rejected" in interaction.followup.send.await_args.args[0]
        assert activity.query_stats("1").message_count == 1

    @pytest.mark.parametrize("filename,size", [
        ("db.txt", 10),
        ("db.json", MAX_IMPORT_BYTES + 1),
    ])
    def test_import_rejects_before_download(self, activity, filename, size):
        attachment = SimpleNamespace(filename=filename, size=size, read=AsyncMock())
        cog = Admin(_make_bot(activity))
        interaction = _make_interaction()
        run_async(Admin.import_.callback(cog, interaction, attachment))
        attachment.read.assert_not_awaited()
        interaction.response.defer.assert_not_awaited()

    def test_backup(self, activity, backups):
        cog = Admin(_make_bot(activity, backups))
        interaction = _make_interaction()
        run_async(Admin.backup.callback(cog, interaction))
        assert len(backups.list_snapshots()) == 1
        assert "-manual.json" in interaction.response.send_message.await_args.args[0]


# ===========================================================================
# Periodic tasks
# ===========================================================================
class TestBackupTask:
    def test_writes_snapshot_locally(self, activity, backups):
        cog = PeriodicTasks(_make_bot(activity, backups))
        run_async(PeriodicTasks.backup_loop.coro(cog))
        assert backups.list_snapshots()[0].name.endswith("-scheduled.json")

    def test_uploads_to_channel(self, activity, backups):
        bot = _make_bot(activity, backups, backup_channel_id=77)
        channel = MagicMock()
        channel.send = AsyncMock()
        bot.get_channel.return_value = channel
        cog = PeriodicTasks(bot)
        run_async(PeriodicTasks.backup_loop.coro(cog))
        bot.get_channel.assert_called_once_with(77)
        assert isinstance(channel.send.await_args.kwargs["file"], discord.File)

    def test_missing_channel_keeps_local_copy(self, activity, backups, caplog):
        bot = _make_bot(activity, backups, backup_channel_id=77)
        bot.get_channel.return_value = None
        cog = PeriodicTasks(bot)
        run_async(PeriodicTasks.backup_loop.coro(cog))
        assert len(backups.list_snapshots()) == 1
        assert "not found" in caplog.text
