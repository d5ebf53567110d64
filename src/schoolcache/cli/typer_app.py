"""
schoolcache Typer CLI Application

Maintenance commands for the portal's file cache: inspect statistics,
purge expired entries, clear everything, invalidate tags and look at a
single entry.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, List, Optional

import typer

from schoolcache.cli.cache_handler import (
    cleanup_command,
    clear_command,
    get_command,
    invalidate_command,
    stats_command,
)
from schoolcache.cli.common.context import CliContext, LogLevel, set_cli_context
from schoolcache.cli.common.options import (
    cache_dir_option,
    config_option,
    json_output_option,
    log_level_option,
    version_option,
)
from schoolcache.shared.constants import CLICommands, CLIDefaults
from schoolcache.shared.logging import setup_structured_logger

# Version information
__version__ = CLIDefaults.VERSION


def version_callback(value: bool) -> None:
    """Print version information and exit."""
    if value:
        typer.echo(f"{CLIDefaults.APP_NAME} {__version__}")
        raise typer.Exit


def main_callback(
    config: Path | None,
    cache_dir: Path | None,
    log_level: LogLevel | None,
    json_output: bool,
) -> None:
    """
    Build the CLI context and configure logging.

    Args:
        config: TOML configuration file
        cache_dir: Cache directory override
        log_level: Logging level override
        json_output: Whether to output in JSON format
    """
    context = CliContext(
        config_path=config,
        cache_dir=cache_dir,
        log_level=log_level,
        json_output=json_output,
    )
    set_cli_context(context)

    settings = context.resolve_settings()
    context.settings = settings

    setup_structured_logger(
        level=settings.logging.level,
        log_file=settings.logging.file,
        use_rich_console=settings.logging.rich_console and not json_output,
        console_output=settings.logging.console_output,
        max_bytes=settings.logging.max_bytes,
        backup_count=settings.logging.backup_count,
    )


app = typer.Typer(
    name=CLIDefaults.APP_NAME,
    help=CLIDefaults.APP_DESCRIPTION,
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True,
    invoke_without_command=True,
)


@app.callback()
def main(
    config: Annotated[Optional[Path], config_option] = None,
    cache_dir: Annotated[Optional[Path], cache_dir_option] = None,
    log_level: Annotated[Optional[LogLevel], log_level_option] = None,
    json_output: Annotated[bool, json_output_option] = False,
    version: Annotated[
        bool,
        version_option,
    ] = False,
) -> None:
    """Main CLI callback with error handling."""
    if version:
        version_callback(value=True)

    try:
        main_callback(config, cache_dir, log_level, json_output)
    except Exception as e:
        from schoolcache.cli.common.error_handler import handle_cli_error

        exit_code = handle_cli_error(e, "main-callback", json_output=json_output)
        raise typer.Exit(exit_code) from e


@app.command(CLICommands.STATS)
def stats_command_typer() -> None:
    """
    Show cache statistics.

    Reports the number of entry files, their total size, how many are
    expired or unreadable and the persisted hit counts.

    Examples:
        schoolcache stats
        schoolcache --json stats
    """
    stats_command()


@app.command(CLICommands.CLEAR)
def clear_command_typer(
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Do not ask for confirmation.",
    ),
) -> None:
    """
    Remove every cache entry and tag record.

    Examples:
        schoolcache clear --yes
    """
    clear_command(yes=yes)


@app.command(CLICommands.CLEANUP)
def cleanup_command_typer() -> None:
    """
    Remove expired and unreadable cache entries.

    Suitable for a cron job.

    Examples:
        schoolcache --cache-dir /var/www/portal/cache cleanup
    """
    cleanup_command()


@app.command(CLICommands.INVALIDATE)
def invalidate_command_typer(
    tags: List[str] = typer.Argument(
        ...,
        help="Tags to invalidate, e.g. table_students academic_year_2024-2025.",
    ),
) -> None:
    """
    Delete every entry registered under the given tags.

    Examples:
        schoolcache invalidate table_students
        schoolcache invalidate table_classes table_fee_payments
    """
    invalidate_command(tags)


@app.command(CLICommands.GET)
def get_command_typer(
    key: str = typer.Argument(..., help="Cache key to show."),
) -> None:
    """
    Show a live cache entry and its metadata.

    Reading through this command does not increment the hit counter.

    Examples:
        schoolcache get system_settings
    """
    get_command(key)


def run() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    run()
