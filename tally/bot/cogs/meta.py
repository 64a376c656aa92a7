"""
tally.bot.cogs.meta — Stats & Leaderboard Commands
===================================================

Hybrid commands for members:
- /stats — message count and voice hours for you or another member
- /leaderboard — top members by messages or voice time
- /summary — totals across everyone tracked
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from tally.constants import Metric
from tally.database.engine import run_db
from tally.services.embeds import (
    build_leaderboard_embed,
    build_stats_embed,
    build_summary_embed,
)

if TYPE_CHECKING:
    from tally.bot.core import TallyBot


class Meta(commands.Cog, name="Meta"):
    """Read-only views of the tracked activity."""

    def __init__(self, bot: TallyBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # /stats
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="stats",
        description="Check your stats!",
    )
    @app_commands.describe(user="User to check stats for")
    async def stats(self, ctx: commands.Context, user: discord.Member | None = None) -> None:
        target = user or ctx.author
        stats = await run_db(self.bot.tracker.query_stats, str(target.id))
        embed = build_stats_embed(
            display_name=target.name,
            avatar_url=target.display_avatar.url,
            stats=stats,
            requested_by=ctx.author.name,
        )
        await ctx.send(embed=embed)

    # -------------------------------------------------------------------
    # /leaderboard
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="leaderboard",
        description="Check the leaderboards!",
    )
    @app_commands.describe(type="Leaderboard type")
    @app_commands.choices(type=[
        app_commands.Choice(name="Messages", value=Metric.MESSAGES.value),
        app_commands.Choice(name="VC", value=Metric.VOICE.value),
    ])
    async def leaderboard(self, ctx: commands.Context, type: str = Metric.MESSAGES.value) -> None:
        try:
            metric = Metric(type)
        except ValueError:
            await ctx.send("❌ Leaderboard type must be `messages` or `voice`.", ephemeral=True)
            return

        rows = await run_db(
            self.bot.tracker.query_leaderboard, metric, self.bot.cfg.leaderboard_size,
        )
        if not rows:
            await ctx.send("No data")
            return

        await ctx.send(embed=build_leaderboard_embed(metric, rows))

    # -------------------------------------------------------------------
    # /summary
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="summary",
        description="Totals across everyone being tracked.",
    )
    async def summary(self, ctx: commands.Context) -> None:
        totals = await run_db(self.bot.tracker.query_totals)
        embed = build_summary_embed(totals, title=f"{self.bot.cfg.bot_name} activity")
        await ctx.send(embed=embed)


async def setup(bot: TallyBot) -> None:
    await bot.add_cog(Meta(bot))
