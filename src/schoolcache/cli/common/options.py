"""
Reusable Typer Options Module

Options shared by the main callback: configuration file, cache directory
override, log level and JSON output. Use them as ``Annotated`` metadata:

    config: Annotated[Optional[Path], config_option] = None
"""

from __future__ import annotations

import typer

# Configuration file option
config_option = typer.Option(
    "--config",
    "-c",
    exists=True,
    dir_okay=False,
    readable=True,
    help="TOML configuration file. Environment variables (SCHOOLCACHE_*) override it.",
)

# Cache directory override
cache_dir_option = typer.Option(
    "--cache-dir",
    file_okay=False,
    help="Cache directory to operate on instead of the configured one.",
)

# Log level option - enum-based with case-insensitive choices
log_level_option = typer.Option(
    "--log-level",
    case_sensitive=False,
    help="Set the logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL). Default: configured level.",
)

# JSON output option - flag-based
json_output_option = typer.Option(
    "--json",
    help="Enable machine-readable JSON output instead of human-readable format.",
)

# Version option - for main app only
version_option = typer.Option(
    "--version",
    "-V",
    help="Show version information and exit.",
    is_eager=True,
)
