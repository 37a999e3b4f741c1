"""Discord session for roletally.

One long-lived ``ActivityBot`` connection drives everything. It is handed
explicitly to the directory adapters and the activity service; nothing
reaches for a module-level client.

Two ways to run it:

- ``run_bot`` keeps the connection open and serves the slash commands.
- ``run_batch`` logs in, produces one server-wide CSV report, and exits.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING, TextIO

import discord
from discord.ext import commands

from roletally.activity import ActivityService
from roletally.gateway import DiscordChannelDirectory, DiscordMemberDirectory
from roletally.logging import get_logger
from roletally.report import render_csv

if TYPE_CHECKING:
    from roletally.config import Config

log = get_logger("bot")


class ActivityBot(commands.Bot):
    """Discord bot that counts role holders' messages on request.

    Uses commands.Bot instead of discord.Client to support slash commands
    via cogs.

    Attributes:
        config: Application configuration.
        service: Activity service bound to this connection.
    """

    def __init__(self, config: Config, load_commands: bool = True) -> None:
        """Initialize the bot with required intents.

        Args:
            config: Application configuration.
            load_commands: Load and sync slash commands on startup. Batch
                runs turn this off.
        """
        intents = discord.Intents.default()
        intents.members = True  # Role membership and member tags
        intents.guild_messages = True  # History reads

        # commands.Bot requires a command_prefix even though we use slash commands
        super().__init__(command_prefix="!", intents=intents)
        self.config = config
        self.load_commands = load_commands
        self._shutdown_requested = False

        self.service = ActivityService(
            DiscordMemberDirectory(self),
            DiscordChannelDirectory(self),
            config,
        )

    async def setup_hook(self) -> None:
        """Load the activity commands cog and sync slash commands."""
        if not self.load_commands:
            return

        from roletally.commands import ActivityCommands

        await self.add_cog(ActivityCommands(self))
        log.info("cog_loaded", cog="ActivityCommands")

        await self.tree.sync()
        log.info("commands_synced")

    async def on_ready(self) -> None:
        """Called when connected to Discord."""
        log.info(
            "discord_ready",
            user=str(self.user),
            guilds=len(self.guilds),
            channels=sum(len(g.text_channels) for g in self.guilds),
        )

    async def on_disconnect(self) -> None:
        """discord.py reconnects on its own; this is only logged."""
        log.warning("discord_disconnected")

    async def on_resumed(self) -> None:
        log.info("discord_resumed")

    async def graceful_shutdown(self) -> None:
        """Disconnect from Discord.

        Reports in flight are abandoned; nothing is persisted between runs.
        """
        log.info("shutdown_initiated")
        self._shutdown_requested = True

        await self.close()
        await asyncio.sleep(0)  # Allow pending aiohttp callbacks to finalize
        log.info("shutdown_complete")


def setup_signal_handlers(bot: ActivityBot, loop: asyncio.AbstractEventLoop) -> None:
    """Setup graceful shutdown handlers for SIGINT and SIGTERM.

    Args:
        bot: The ActivityBot instance to shut down.
        loop: The event loop to add signal handlers to.
    """

    def handle_signal(sig: signal.Signals) -> None:
        log.info("signal_received", signal=sig.name)
        loop.create_task(bot.graceful_shutdown())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))

    log.debug("signal_handlers_registered", signals=["SIGINT", "SIGTERM"])


async def run_bot(config: Config) -> None:
    """Run the interactive bot until shutdown.

    Args:
        config: Application configuration with discord_token.
    """
    bot = ActivityBot(config)
    loop = asyncio.get_running_loop()
    setup_signal_handlers(bot, loop)

    try:
        log.info("bot_starting")
        await bot.start(config.discord_token)  # type: ignore[arg-type]
    except asyncio.CancelledError:
        log.debug("bot_cancelled")
    finally:
        if not bot.is_closed():
            await bot.close()


async def run_batch(
    config: Config,
    out: TextIO,
    lookback_days: int | None = None,
    include_threads: bool | None = None,
) -> int:
    """Log in, write one server-wide CSV report to ``out``, disconnect.

    The export has no source column since it spans every channel.

    Args:
        config: Configuration with ``discord.guild_id`` set.
        out: Text stream receiving the CSV.
        lookback_days: Window length; defaults to ``activity.default_days``.
        include_threads: Override ``activity.include_threads``.

    Returns:
        Number of rows written (excluding the header).

    Raises:
        ValueError: If no guild id is configured.
        RoleNotFound, MembershipUnavailable: From membership resolution.
    """
    group_id = config.discord.guild_id
    if not group_id:
        raise ValueError("discord.guild_id is not configured (set GUILD_ID)")

    bot = ActivityBot(config, load_commands=False)
    runner = asyncio.create_task(bot.start(config.discord_token))  # type: ignore[arg-type]

    try:
        ready = asyncio.create_task(bot.wait_until_ready())
        done, _ = await asyncio.wait({runner, ready}, return_when=asyncio.FIRST_COMPLETED)
        if runner in done:
            ready.cancel()
            runner.result()  # Raises discord.LoginFailure and friends
            raise RuntimeError("Discord connection closed before becoming ready")

        rows = await bot.service.run_batch_report(
            group_id,
            lookback_days=lookback_days,
            include_threads=include_threads,
        )
        if not rows:
            log.warning("batch_no_members", group_id=group_id)
        out.write(render_csv(rows, include_source=False) + "\n")
        out.flush()
        log.info("batch_written", group_id=group_id, rows=len(rows))
        return len(rows)
    finally:
        if not bot.is_closed():
            await bot.close()
        runner.cancel()
        try:
            await runner
        except (asyncio.CancelledError, discord.DiscordException):
            pass
