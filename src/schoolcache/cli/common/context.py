"""
Per-invocation CLI state.

The main callback records the global options (config file, cache directory
override, output mode, log level) and the settings resolved from them.
Commands read that state back with ``get_cli_context``.
"""

from __future__ import annotations

import contextvars
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from schoolcache.config import Settings, load_settings


class LogLevel(str, Enum):
    """Accepted values of ``--log-level``."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class CliContext(BaseModel):
    """
    Global options of one ``schoolcache`` invocation.

    Attributes:
        config_path: TOML configuration file, if any
        cache_dir: Overrides ``cache.directory`` from the configuration
        json_output: Print the JSON envelope instead of tables
        log_level: Overrides ``logging.level``; None keeps the configured level
        settings: Configuration resolved by the main callback
    """

    config_path: Path | None = Field(default=None, description="TOML configuration file")
    cache_dir: Path | None = Field(default=None, description="Cache directory override")
    json_output: bool = Field(default=False, description="Print the JSON envelope")
    log_level: LogLevel | None = Field(default=None, description="Logging level override")
    settings: Settings | None = Field(default=None, description="Resolved configuration")

    def resolve_settings(self) -> Settings:
        """Load configuration and apply the command-line overrides."""
        settings = load_settings(self.config_path)
        if self.cache_dir is not None:
            settings.cache = settings.cache.model_copy(update={"directory": self.cache_dir})
        if self.log_level is not None:
            settings.logging = settings.logging.model_copy(update={"level": self.log_level.value})
        return settings


_current_context: contextvars.ContextVar[CliContext | None] = contextvars.ContextVar(
    "schoolcache_cli_context",
    default=None,
)


def get_cli_context() -> CliContext:
    """
    Return the context recorded by the main callback.

    Raises:
        RuntimeError: If no command line has been parsed yet
    """
    context = _current_context.get()
    if context is None:
        raise RuntimeError("No CLI context: commands must run through the schoolcache app callback.")
    return context


def set_cli_context(context: CliContext) -> None:
    _current_context.set(context)


def clear_cli_context() -> None:
    _current_context.set(None)
