"""
tally.bot.cogs.admin — Admin Slash Commands
============================================

Discord slash commands for server admins:
- /add — add messages or voice seconds to a member
- /export — download the whole database as JSON
- /import — replace the whole database with an uploaded JSON file
- /backup — write a backup snapshot right now

All commands require the configured ``admin_role_id`` role, or the
Administrator permission when no role is configured.  Replies are
ephemeral.
"""

from __future__ import annotations

import io
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from tally.constants import Metric
from tally.database.engine import run_db
from tally.errors import PersistenceError, ValidationError
from tally.services.embeds import build_adjust_embed

if TYPE_CHECKING:
    from tally.bot.core import TallyBot

logger = logging.getLogger(__name__)

# Largest import file accepted (bytes)
MAX_IMPORT_BYTES = 8 * 1024 * 1024


def is_admin():
    """Decorator that checks for the configured admin role (or Administrator)."""
    async def predicate(interaction: discord.Interaction) -> bool:
        bot: TallyBot = interaction.client  # type: ignore[assignment]
        user = interaction.user
        if not user or not hasattr(user, "roles"):
            return False
        admin_role_id = bot.cfg.admin_role_id
        if admin_role_id is not None:
            return any(role.id == admin_role_id for role in user.roles)
        return user.guild_permissions.administrator
    return app_commands.check(predicate)


class Admin(commands.Cog, name="Admin"):
    """Data management commands for Tally."""

    def __init__(self, bot: TallyBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # /add
    # -------------------------------------------------------------------
    @app_commands.command(name="add", description="Add messages or voice time to a member.")
    @app_commands.describe(
        user="The member to adjust",
        type="Which counter to increase",
        amount="Messages to add, or seconds of voice time",
    )
    @app_commands.choices(type=[
        app_commands.Choice(name="Messages", value=Metric.MESSAGES.value),
        app_commands.Choice(name="VC (seconds)", value=Metric.VOICE.value),
    ])
    @is_admin()
    async def add(
        self,
        interaction: discord.Interaction,
        user: discord.Member,
        type: str,
        amount: int,
    ) -> None:
        if amount <= 0:
            await interaction.response.send_message(
                "❌ Amount must be a positive number.", ephemeral=True,
            )
            return

        metric = Metric(type)
        result = await run_db(
            self.bot.tracker.admin_adjust,
            str(user.id),
            user.name,
            metric,
            amount,
        )
        embed = build_adjust_embed(
            display_name=user.name,
            metric=metric,
            delta=amount,
            result=result,
            admin_name=interaction.user.name,
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    # -------------------------------------------------------------------
    # /export
    # -------------------------------------------------------------------
    @app_commands.command(name="export", description="Download the database as a JSON file.")
    @is_admin()
    async def export(self, interaction: discord.Interaction) -> None:
        payload = await run_db(self.bot.tracker.admin_export)
        stamp = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
        file = discord.File(io.BytesIO(payload), filename=f"database-{stamp}.json")
        totals = await run_db(self.bot.tracker.query_totals)
        await interaction.response.send_message(
            f"\U0001f4e6 Export of {totals.total_users} user(s).",
            file=file,
            ephemeral=True,
        )
        logger.info("Database exported by %s (%d bytes)", interaction.user.name, len(payload))

    # -------------------------------------------------------------------
    # /import
    # -------------------------------------------------------------------
    @app_commands.command(
        name="import",
        description="Replace the database with an uploaded JSON export.",
    )
    @app_commands.describe(file="A .json file produced by /export")
    @is_admin()
    async def import_(self, interaction: discord.Interaction, file: discord.Attachment) -> None:
        if not file.filename.lower().endswith(".json"):
            await interaction.response.send_message(
                "❌ Please upload a `.json` file.", ephemeral=True,
            )
            return
        if file.size > MAX_IMPORT_BYTES:
            await interaction.response.send_message(
                f"❌ File too large (max {MAX_IMPORT_BYTES // 1024 // 1024} MB).",
                ephemeral=True,
            )
            return

        # Downloading can take a while; acknowledge first.
        await interaction.response.defer(ephemeral=True, thinking=True)

        try:
            payload = await file.read()
            totals = await run_db(self.bot.tracker.admin_import, payload)
        except ValidationError as exc:
            await interaction.followup.send(f"❌ Import rejected: {exc}", ephemeral=True)
            return
        except PersistenceError as exc:
            await interaction.followup.send(
                f"⚠️ Import applied but could not be saved to disk: {exc}",
                ephemeral=True,
            )
            return
        except discord.HTTPException as exc:
            await interaction.followup.send(f"❌ Could not download the file: {exc}", ephemeral=True)
            return

        logger.info("Database imported by %s from %s", interaction.user.name, file.filename)
        await interaction.followup.send(
            f"✅ Imported {totals.total_users} user(s) "
            f"({totals.total_messages} messages).",
            ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /backup
    # -------------------------------------------------------------------
    @app_commands.command(name="backup", description="Write a backup snapshot now.")
    @is_admin()
    async def backup(self, interaction: discord.Interaction) -> None:
        try:
            path = await run_db(self.bot.backups.write_snapshot, "manual")
        except OSError as exc:
            logger.exception("Manual backup failed")
            await interaction.response.send_message(f"❌ Backup failed: {exc}", ephemeral=True)
            return
        await interaction.response.send_message(f"\U0001f4be Backup written: `{path.name}`", ephemeral=True)

    # -------------------------------------------------------------------
    # Error handling
    # -------------------------------------------------------------------
    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        if isinstance(error, app_commands.CheckFailure):
            message = "\U0001f512 You need admin rights to use this command."
        elif isinstance(error, app_commands.CommandInvokeError) and isinstance(
            error.original, PersistenceError
        ):
            logger.error("Admin command %s could not persist", interaction.command, exc_info=error.original)
            message = f"⚠️ Change applied but could not be saved to disk: {error.original}"
        else:
            raise error

        if interaction.response.is_done():
            await interaction.followup.send(message, ephemeral=True)
        else:
            await interaction.response.send_message(message, ephemeral=True)


async def setup(bot: TallyBot) -> None:
    await bot.add_cog(Admin(bot))
