"""
tally.services.embeds — Discord embed builders
===============================================

All embed construction lives here so cogs only need to supply data — no
layout concerns.
"""

from __future__ import annotations

from datetime import UTC, datetime

import discord

from tally.constants import METRIC_LABELS, RANK_BADGES, Metric, format_hours, format_voice_time
from tally.database.models import UserRecord
from tally.engine.ledger import Adjustment
from tally.engine.ranking import ActivityTotals

STATS_COLOR = discord.Color(0x0099FF)
LEADERBOARD_COLOR = discord.Color(0xFFD700)


def format_metric(metric: Metric, value: int) -> str:
    """Leaderboard value: ``"12 messages"`` or a voice duration."""
    if metric is Metric.MESSAGES:
        return f"{value} messages"
    return format_voice_time(value)


def build_stats_embed(
    display_name: str,
    avatar_url: str | None,
    stats: UserRecord,
    requested_by: str,
) -> discord.Embed:
    """``/stats`` card: message count and voice hours."""
    embed = discord.Embed(
        title=f"\U0001f4ca {display_name} stats",
        description=(
            f"Messages: **{stats.message_count}**\n"
            f"VC: **{format_hours(stats.voice_time)}**"
        ),
        color=STATS_COLOR,
        timestamp=datetime.now(UTC),
    )
    if avatar_url:
        embed.set_thumbnail(url=avatar_url)
    embed.set_footer(text=f"Requested by: {requested_by}")
    return embed


def build_leaderboard_embed(
    metric: Metric,
    rows: list[tuple[str, UserRecord]],
) -> discord.Embed:
    """Top-N leaderboard with medals for the first three places."""
    embed = discord.Embed(
        title=f"\U0001f3c6 Top {len(rows)} - {METRIC_LABELS[metric]}",
        color=LEADERBOARD_COLOR,
        timestamp=datetime.now(UTC),
    )
    for i, (_identity, record) in enumerate(rows, 1):
        medal = RANK_BADGES[i - 1] if i <= len(RANK_BADGES) else f"{i}."
        value = record.message_count if metric is Metric.MESSAGES else record.voice_time
        embed.add_field(
            name=f"{medal} {record.username or 'Unknown'}",
            value=format_metric(metric, value),
            inline=False,
        )
    return embed


def build_summary_embed(summary: ActivityTotals, title: str = "Server activity") -> discord.Embed:
    embed = discord.Embed(
        title=f"\U0001f4c8 {title}",
        color=STATS_COLOR,
        timestamp=datetime.now(UTC),
    )
    embed.add_field(name="Tracked users", value=str(summary.total_users), inline=True)
    embed.add_field(name="Messages", value=str(summary.total_messages), inline=True)
    embed.add_field(
        name="Voice time",
        value=format_voice_time(summary.total_voice_seconds),
        inline=True,
    )
    return embed


def build_adjust_embed(
    display_name: str,
    metric: Metric,
    delta: int,
    result: Adjustment,
    admin_name: str,
) -> discord.Embed:
    """Audit card for ``/add``: before → after values."""
    if metric is Metric.MESSAGES:
        before, after, added = str(result.before), str(result.after), str(delta)
    else:
        before = format_voice_time(result.before)
        after = format_voice_time(result.after)
        added = format_voice_time(delta)
    embed = discord.Embed(
        title="✅ Stats updated",
        description=(
            f"**{display_name}** — {METRIC_LABELS[metric]}\n"
            f"Added: **+{added}**\n"
            f"{before} → **{after}**"
        ),
        color=discord.Color.green(),
    )
    embed.set_footer(text=f"Adjusted by {admin_name}")
    return embed
