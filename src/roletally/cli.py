"""Command-line interface for roletally."""

import asyncio
import sys
from pathlib import Path

import click

from roletally import __version__
from roletally.config import Config
from roletally.errors import ActivityError
from roletally.logging import get_logger, setup_logging

log = get_logger("cli")


@click.group()
@click.option(
    "-c",
    "--config-file",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to configuration file.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Set logging level (overrides config).",
)
@click.option(
    "--log-json/--no-log-json",
    default=None,
    help="Output logs as JSON or human-readable format (overrides config).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: Path | None,
    log_level: str | None,
    log_json: bool | None,
) -> None:
    """roletally - message activity reports for a Discord role.

    Counts how many messages each holder of a role posted over the last
    N days, per channel on request or across a whole server.
    """
    ctx.ensure_object(dict)

    config = Config.load_or_default(config_file)
    ctx.obj["config"] = config
    ctx.obj["config_file"] = config_file

    # CLI overrides config
    effective_log_level = log_level or config.log_level
    effective_log_json = log_json if log_json is not None else config.log_json

    setup_logging(json_output=effective_log_json, level=effective_log_level)


@cli.command()
def version() -> None:
    """Print version information."""
    click.echo(f"roletally {__version__}")


def _require_token(config: Config) -> None:
    if not config.discord_token:
        click.echo("Error: DISCORD_TOKEN environment variable not set", err=True)
        click.echo("Set DISCORD_TOKEN to your bot token to connect to Discord.", err=True)
        raise SystemExit(1)


@cli.command()
@click.pass_context
def bot(ctx: click.Context) -> None:
    """Start the Discord bot and serve /social_activity.

    Connects to Discord, registers the slash commands and answers report
    requests until stopped. Use Ctrl+C or send SIGTERM to shut down.

    Requires DISCORD_TOKEN environment variable to be set.
    """
    from roletally.bot import run_bot

    config = ctx.obj["config"]
    _require_token(config)

    log.info("bot_command_invoked")

    try:
        asyncio.run(run_bot(config))
    except KeyboardInterrupt:
        log.info("shutdown_requested_keyboard")
    except Exception as e:
        log.error("bot_failed", error=str(e))
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)


@cli.command()
@click.option("--days", type=click.IntRange(min=1), default=None, help="Days to look back.")
@click.option("--guild-id", default=None, help="Server to report on (overrides config).")
@click.option("--role-id", default=None, help="Role id to count (overrides config).")
@click.option("--role-name", default=None, help="Role name to count (replaces any configured role id).")
@click.option(
    "--threads/--no-threads",
    default=None,
    help="Include active and archived threads (default from config).",
)
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, writable=True, path_type=Path),
    default=None,
    help="Write the CSV here instead of stdout.",
)
@click.pass_context
def report(
    ctx: click.Context,
    days: int | None,
    guild_id: str | None,
    role_id: str | None,
    role_name: str | None,
    threads: bool | None,
    output: Path | None,
) -> None:
    """Write a server-wide activity CSV and exit.

    Scans every readable text channel (and, unless --no-threads, its active
    threads and the first page of archived public threads), then prints
    user_id,user_tag,message_count,days_lookback for every role holder.

    Requires DISCORD_TOKEN environment variable to be set.
    """
    from roletally.bot import run_batch

    config: Config = ctx.obj["config"]
    _require_token(config)

    updates = {}
    if guild_id:
        updates["discord"] = config.discord.model_copy(update={"guild_id": guild_id})
    if role_id or role_name:
        role_updates = {}
        if role_id:
            role_updates["role_id"] = role_id
        if role_name:
            role_updates["role_name"] = role_name
            if not role_id:
                # An explicit name replaces any configured id
                role_updates["role_id"] = None
        updates["role"] = config.role.model_copy(update=role_updates)
    if updates:
        config = config.model_copy(update=updates)

    if not config.discord.guild_id:
        click.echo("Error: no server configured; pass --guild-id or set GUILD_ID", err=True)
        raise SystemExit(1)

    log.info(
        "report_command_invoked",
        guild_id=config.discord.guild_id,
        days=days or config.activity.default_days,
    )

    async def run() -> int:
        if output is None:
            return await run_batch(config, sys.stdout, days, threads)
        with open(output, "w", encoding="utf-8", newline="") as f:
            return await run_batch(config, f, days, threads)

    try:
        rows = asyncio.run(run())
    except KeyboardInterrupt:
        log.info("report_interrupted")
        raise SystemExit(130)
    except ActivityError as e:
        log.error("report_failed", error=str(e))
        click.echo(f"Error: {e.user_message}", err=True)
        raise SystemExit(1)
    except Exception as e:
        log.error("report_failed", error=str(e))
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    if output is not None:
        click.echo(f"Wrote {rows} rows to {output}", err=True)


@cli.group()
def config() -> None:
    """Configuration management commands."""
    pass


@config.command(name="check")
@click.option(
    "-c",
    "--config-file",
    type=click.Path(exists=True, path_type=Path),
    default="config.yaml",
    help="Path to configuration file.",
)
def config_check(config_file: Path) -> None:
    """Validate configuration file."""
    try:
        cfg = Config.load(config_file)
        click.echo(f"Configuration valid: {config_file}")
        click.echo(f"  Log level: {cfg.log_level}")
        click.echo(f"  Server: {cfg.discord.guild_id or 'not configured'}")
        if cfg.role.role_id:
            click.echo(f"  Role: id {cfg.role.role_id}")
        else:
            click.echo(f"  Role: name \"{cfg.role.role_name}\"")
        click.echo(f"  Default lookback: {cfg.activity.default_days} days")
        click.echo(
            f"  Scan budget: {cfg.activity.max_fetch} (channel command), "
            f"{cfg.activity.max_messages_per_channel} per channel / "
            f"{cfg.activity.thread_budget} per thread (server-wide)"
        )
        click.echo(f"  Threads: {'included' if cfg.activity.include_threads else 'skipped'}")
        if cfg.discord.operators.user_ids or cfg.discord.operators.role_id:
            click.echo(f"  Operators: {len(cfg.discord.operators.user_ids)} user(s)"
                       + (", 1 role" if cfg.discord.operators.role_id else ""))

    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    except Exception as e:
        click.echo(f"Configuration error: {e}", err=True)
        raise SystemExit(1)
