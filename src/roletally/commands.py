"""Discord slash commands for activity reports.

``/social_activity`` counts messages from holders of the tracked role in
the channel or thread it is used in, or across the whole server when an
operator asks for ``server_wide``. The reply carries a ranked table of the
top members and the full ranking as a CSV attachment.
"""

from __future__ import annotations

import io
from typing import TYPE_CHECKING, Optional

import discord
from discord import app_commands
from discord.ext import commands

from roletally.activity import ActivityRequest
from roletally.errors import ActivityError
from roletally.gateway import source_from_channel
from roletally.logging import get_logger
from roletally.models import ActivityReport, ScopeKind
from roletally.report import csv_filename, render_csv, render_header, render_table
from roletally.sources import ReportScope

if TYPE_CHECKING:
    from roletally.bot import ActivityBot

log = get_logger("commands")

GENERIC_FAILURE = (
    "Something went wrong while counting. Make sure I can read this channel's history."
)
MESSAGE_LIMIT = 2000


class ActivityCommands(commands.Cog):
    """Slash commands for role activity reports."""

    def __init__(self, bot: ActivityBot) -> None:
        """Initialize the commands cog.

        Args:
            bot: The ActivityBot instance.
        """
        self.bot = bot
        self.config = bot.config

    def is_operator(self, interaction: discord.Interaction) -> bool:
        """Check if user is an operator.

        Operators are identified by:
        1. User ID in the configured operator user_ids list
        2. Having the configured operator role_id (if set)
        """
        operators_config = self.config.discord.operators

        if str(interaction.user.id) in operators_config.user_ids:
            return True

        if operators_config.role_id and interaction.guild:
            member = interaction.user
            if isinstance(member, discord.Member):
                user_role_ids = {str(r.id) for r in member.roles}
                if operators_config.role_id in user_role_ids:
                    return True

        return False

    @app_commands.command(name="ping", description="Health check - responds with pong")
    async def ping(self, interaction: discord.Interaction) -> None:
        """Confirm the bot is alive without touching any history."""
        await interaction.response.send_message("pong", ephemeral=True)
        log.info("ping_command", user=str(interaction.user))

    @app_commands.command(
        name="social_activity",
        description="Show message counts for members with the tracked role in THIS channel.",
    )
    @app_commands.describe(
        days="How many days back to count (1-90)",
        top="How many users to display (1-50)",
        ephemeral="Show only to you (default: false)",
        server_wide="Count every text channel and thread in the server (operators only)",
    )
    async def social_activity(
        self,
        interaction: discord.Interaction,
        days: Optional[app_commands.Range[int, 1, 90]] = None,
        top: Optional[app_commands.Range[int, 1, 50]] = None,
        ephemeral: bool = False,
        server_wide: bool = False,
    ) -> None:
        """Run an activity report and reply with a table and CSV."""
        await self.handle_social_activity(
            interaction,
            days=days,
            top=top,
            ephemeral=ephemeral,
            server_wide=server_wide,
        )

    async def handle_social_activity(
        self,
        interaction: discord.Interaction,
        days: int | None = None,
        top: int | None = None,
        ephemeral: bool = False,
        server_wide: bool = False,
    ) -> None:
        """Body of ``/social_activity``, separated from the decorator for tests."""
        activity = self.config.activity

        if interaction.guild is None:
            await interaction.response.send_message(
                "This command must be used in a text channel or thread within a server.",
                ephemeral=True,
            )
            return

        if server_wide and not self.is_operator(interaction):
            await interaction.response.send_message(
                "Server-wide counts are restricted to operators.",
                ephemeral=True,
            )
            log.info(
                "command_rejected",
                command="social_activity",
                user=str(interaction.user),
                reason="not_operator",
            )
            return

        group_id = str(interaction.guild.id)
        if server_wide:
            scope = ReportScope.broad(group_id, include_threads=activity.include_threads)
            location = "the server"
        else:
            try:
                origin = source_from_channel(interaction.channel)
            except ActivityError as e:
                await interaction.response.send_message(e.user_message, ephemeral=True)
                return
            scope = ReportScope.single(origin)
            location = origin.location

        await interaction.response.defer(ephemeral=ephemeral)

        request = ActivityRequest(
            group_id=group_id,
            scope=scope,
            lookback_days=days or activity.default_days,
            display_limit=top or activity.default_top,
        )

        try:
            report = await self.bot.service.run_activity_report(request)
        except ActivityError as e:
            log.warning("social_activity_failed", group_id=group_id, error=str(e))
            await interaction.followup.send(e.user_message, ephemeral=True)
            return
        except Exception:
            log.error("social_activity_error", group_id=group_id, exc_info=True)
            await interaction.followup.send(GENERIC_FAILURE, ephemeral=True)
            return

        if report.target_count == 0:
            await interaction.followup.send(
                f"No members found with the {self.config.role.role_name} role.",
                ephemeral=ephemeral,
            )
            return

        await interaction.followup.send(
            self.format_report(report, location),
            file=self.export_file(report),
            ephemeral=ephemeral,
        )
        log.info(
            "social_activity_command",
            user=str(interaction.user),
            scope=scope.kind.value,
            scope_id=scope.scope_id,
            days=report.lookback_days,
            rows=len(report.full_rows),
        )

    def format_report(self, report: ActivityReport, location: str) -> str:
        """Heading plus the top-N table."""
        activity = self.config.activity
        budget = (
            activity.max_fetch
            if report.scope_kind == ScopeKind.SINGLE
            else activity.max_messages_per_channel
        )
        rows = list(report.summary_rows)

        while True:
            header = render_header(
                self.config.role.role_name,
                location,
                report.lookback_days,
                shown=len(rows),
                max_scanned=budget,
                failed_sources=report.failed_source_count,
            )
            content = f"{header}\n{render_table(rows)}"
            # Long tags can push 50 rows past Discord's message limit
            if len(content) <= MESSAGE_LIMIT or len(rows) <= 1:
                return content
            rows.pop()

    def export_file(self, report: ActivityReport) -> discord.File:
        """Full ranking as a CSV attachment."""
        csv_text = render_csv(
            report.full_rows,
            include_source=report.scope_kind == ScopeKind.SINGLE,
        )
        return discord.File(
            io.BytesIO(csv_text.encode("utf-8")),
            filename=csv_filename(report.scope_id, report.lookback_days),
        )
