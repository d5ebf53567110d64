"""Cache maintenance command handlers.

Each handler builds a ``CacheManager`` from the resolved settings, runs one
operation and prints the result as a rich table/line or as the JSON
envelope.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from schoolcache.cli.common.context import get_cli_context
from schoolcache.cli.common.error_handler import handle_cli_error
from schoolcache.cli.json_formatter import format_json_output
from schoolcache.services.cache_manager import CacheManager
from schoolcache.shared.constants import CLICommands, CLIDefaults

logger = logging.getLogger(__name__)


def _build_manager() -> CacheManager:
    context = get_cli_context()
    settings = context.settings or context.resolve_settings()
    return CacheManager.from_settings(settings)


def _emit_json(command: str, data: Any) -> None:
    sys.stdout.buffer.write(format_json_output(success=True, command=command, data=data))
    sys.stdout.buffer.write(b"\n")
    sys.stdout.buffer.flush()


def _fail(error: Exception, command: str) -> None:
    exit_code = handle_cli_error(error, command, json_output=get_cli_context().json_output)
    raise typer.Exit(exit_code) from error


def stats_command() -> None:
    """Print cache statistics."""
    try:
        manager = _build_manager()
        stats = manager.get_stats()
    except Exception as e:  # noqa: BLE001
        _fail(e, CLICommands.STATS)
        return

    if get_cli_context().json_output:
        data = stats.model_dump()
        data["directory"] = str(manager.store.cache_dir)
        data["enabled"] = manager.settings.enabled
        _emit_json(CLICommands.STATS, data)
        return

    table = Table(title="Cache statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")
    table.add_row("Directory", str(manager.store.cache_dir))
    table.add_row("Enabled", "yes" if manager.settings.enabled else "no")
    table.add_row("Files", str(stats.total_files))
    table.add_row("Size (MB)", f"{stats.total_size_mb:.2f}")
    table.add_row("Expired", str(stats.expired_files))
    table.add_row("Total hits", str(stats.total_hits))
    table.add_row("Hits per entry", f"{stats.hit_rate:.2f}")
    Console().print(table)


def clear_command(*, yes: bool) -> None:
    """Remove every cache entry."""
    context = get_cli_context()
    if not yes and not context.json_output:
        typer.confirm("Remove every cache entry?", abort=True)

    try:
        removed = _build_manager().clear()
    except Exception as e:  # noqa: BLE001
        _fail(e, CLICommands.CLEAR)
        return

    if context.json_output:
        _emit_json(CLICommands.CLEAR, {"removed": removed})
    else:
        Console().print(f"[green]Removed {removed} cache entries[/green]")


def cleanup_command() -> None:
    """Remove expired entries."""
    try:
        purged = _build_manager().cleanup_and_report()
    except Exception as e:  # noqa: BLE001
        _fail(e, CLICommands.CLEANUP)
        return

    if get_cli_context().json_output:
        _emit_json(CLICommands.CLEANUP, {"purged": purged})
    else:
        Console().print(f"[green]Purged {purged} expired cache entries[/green]")


def invalidate_command(tags: list[str]) -> None:
    """Invalidate every entry registered under the given tags."""
    try:
        manager = _build_manager()
        counts = {tag: manager.invalidate_tag(tag) for tag in dict.fromkeys(tags)}
    except Exception as e:  # noqa: BLE001
        _fail(e, CLICommands.INVALIDATE)
        return

    if get_cli_context().json_output:
        _emit_json(CLICommands.INVALIDATE, {"tags": counts, "total": sum(counts.values())})
        return

    console = Console()
    for tag, count in counts.items():
        console.print(f"[green]{tag}[/green]: {count} keys invalidated")


def get_command(key: str) -> None:
    """Show a live entry without counting a hit."""
    try:
        entry = _build_manager().store.get_entry(key)
    except Exception as e:  # noqa: BLE001
        _fail(e, CLICommands.GET)
        return

    json_output = get_cli_context().json_output
    if entry is None:
        if json_output:
            sys.stdout.buffer.write(
                format_json_output(
                    success=False,
                    command=CLICommands.GET,
                    errors=[f"No live cache entry for key '{key}'"],
                ),
            )
            sys.stdout.buffer.write(b"\n")
        else:
            sys.stderr.write(f"No live cache entry for key '{key}'\n")
        raise typer.Exit(CLIDefaults.EXIT_ERROR)

    if json_output:
        _emit_json(CLICommands.GET, entry.model_dump(mode="json"))
        return

    console = Console()
    console.print(f"[cyan]key[/cyan]:        {entry.key}")
    console.print(f"[cyan]created_at[/cyan]: {entry.created_at.isoformat()}")
    console.print(f"[cyan]expires_at[/cyan]: {entry.expires_at.isoformat()}")
    console.print(f"[cyan]hit_count[/cyan]:  {entry.hit_count}")
    console.print_json(data=entry.value)
