"""Logging configuration model."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from schoolcache.shared.constants import Logging

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class LoggingSettings(BaseModel):
    """Logging configuration.

    This class manages logging behavior including level, file output
    and console output settings.
    """

    level: str = Field(default=Logging.DEFAULT_LEVEL, description="Logging level")
    file: str | None = Field(default=None, description="Rotating JSON log file path")
    max_bytes: int = Field(
        default=Logging.MAX_BYTES,
        gt=0,
        description="Maximum log file size in bytes",
    )
    backup_count: int = Field(
        default=Logging.BACKUP_COUNT,
        ge=0,
        description="Number of backup log files to keep",
    )
    console_output: bool = Field(default=True, description="Enable console logging")
    rich_console: bool = Field(
        default=True,
        description="Use rich console output instead of JSON lines",
    )

    @field_validator("level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LEVELS:
            msg = f"level must be one of {', '.join(_LEVELS)}"
            raise ValueError(msg)
        return level


__all__ = ["LoggingSettings"]
