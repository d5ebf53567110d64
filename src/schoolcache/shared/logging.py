"""
Structured logging for schoolcache.

This module provides helpers that write structured log records, including
error context, so that cache faults that are absorbed locally still leave
a trace an operator can follow.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

from schoolcache.shared.constants import Logging
from schoolcache.shared.errors import ErrorCode, ErrorContext, SchoolCacheError


class StructuredFormatter(logging.Formatter):
    """
    Formatter that renders every record as a single JSON object.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format a log record as JSON.

        Args:
            record: Log record

        Returns:
            JSON string for the record
        """
        log_entry = {
            "timestamp": datetime.fromtimestamp(
                record.created,
                tz=timezone.utc,
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in ("error_code", "context", "operation", "duration_ms", "result_info"):
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


def _create_rich_console() -> Console:
    """
    Create a rich Console with the log level colour theme.
    """
    custom_theme = Theme(
        {
            "logging.level.debug": "cyan",
            "logging.level.info": "green",
            "logging.level.warning": "yellow",
            "logging.level.error": "red bold",
            "logging.level.critical": "red bold reverse",
            "log.time": "dim cyan",
            "log.message": "white",
            "log.path": "dim blue",
        }
    )
    return Console(theme=custom_theme, stderr=True)


def setup_structured_logger(
    name: str = Logging.ROOT_LOGGER,
    level: str = "INFO",
    log_file: str | Path | None = None,
    *,
    use_rich_console: bool = True,
    console_output: bool = True,
    max_bytes: int = Logging.MAX_BYTES,
    backup_count: int = Logging.BACKUP_COUNT,
) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        name: Logger name (default: "schoolcache")
        level: Log level name (default: "INFO")
        log_file: Optional path of a rotating JSON log file
        use_rich_console: Use rich console output instead of JSON lines
        console_output: Attach a console handler at all
        max_bytes: Rotation size of the log file
        backup_count: Number of rotated log files to keep

    Returns:
        The configured logger
    """
    logger = logging.getLogger(name)

    # Reconfiguring replaces the previous handlers
    if logger.handlers:
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()

    log_level = getattr(logging, level.upper())
    logger.setLevel(log_level)

    if console_output:
        handler: logging.Handler
        if use_rich_console:
            handler = RichHandler(
                console=_create_rich_console(),
                show_time=True,
                show_level=True,
                show_path=False,
                markup=False,
                rich_tracebacks=True,
                log_time_format="[%H:%M:%S]",
            )
        else:
            handler = logging.StreamHandler()
            handler.setFormatter(StructuredFormatter())
        handler.setLevel(log_level)
        logger.addHandler(handler)

    # The file is always JSON
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=str(log_path),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(StructuredFormatter())
        logger.addHandler(file_handler)

    logger.propagate = False

    return logger


def _context_to_dict(context: dict[str, Any] | ErrorContext | None) -> dict[str, Any]:
    if context is None:
        return {}
    if isinstance(context, ErrorContext):
        return context.safe_dict()
    return dict(context)


def log_operation_error(
    logger: logging.Logger,
    error: SchoolCacheError,
    operation: str | None = None,
    context: dict[str, Any] | ErrorContext | None = None,
    level: int = logging.ERROR,
) -> None:
    """
    Log a SchoolCacheError with its structured context.

    Args:
        logger: Logger instance
        error: The error to record
        operation: Operation name (defaults to the error context's)
        context: Extra context merged over the error's own
        level: Log level; absorbed cache faults are logged as warnings
    """
    context_dict: dict[str, Any] = {}
    if error.context:
        context_dict.update(error.context.safe_dict())
    context_dict.update(_context_to_dict(context))

    logger.log(
        level,
        error.message,
        extra={
            "error_code": error.code.name,
            "context": context_dict,
            "operation": operation or error.context.operation,
        },
        exc_info=error.original_error is not None and logger.isEnabledFor(logging.DEBUG),
    )


def log_operation_success(
    logger: logging.Logger,
    operation: str,
    duration_ms: float,
    result_info: dict[str, Any] | None = None,
    context: dict[str, Any] | ErrorContext | None = None,
) -> None:
    """
    Record a successful operation at debug level.

    Args:
        logger: Logger instance
        operation: Operation name
        duration_ms: Elapsed time in milliseconds
        result_info: Result summary
        context: Context information
    """
    logger.debug(
        "Operation '%s' completed successfully",
        operation,
        extra={
            "operation": operation,
            "duration_ms": duration_ms,
            "result_info": result_info or {},
            "context": _context_to_dict(context),
        },
    )


def log_operation_start(
    logger: logging.Logger,
    operation: str,
    context: dict[str, Any] | None = None,
) -> None:
    """
    Record the start of an operation at debug level.
    """
    logger.debug(
        "Starting operation '%s'",
        operation,
        extra={
            "operation": operation,
            "context": context or {},
        },
    )


def log_slow_operation(
    logger: logging.Logger,
    operation: str,
    duration_ms: float,
    threshold_ms: float,
    context: dict[str, Any] | None = None,
) -> None:
    """
    Record an operation that took longer than its threshold.

    Args:
        logger: Logger instance
        operation: Operation name
        duration_ms: Elapsed time in milliseconds
        threshold_ms: Threshold that was exceeded
        context: Context information, e.g. the query and its parameters
    """
    slow_context = {"threshold_ms": threshold_ms}
    if context:
        slow_context.update(context)

    logger.warning(
        "Slow operation '%s' took %.1f ms",
        operation,
        duration_ms,
        extra={
            "error_code": ErrorCode.SLOW_OPERATION.name,
            "operation": operation,
            "duration_ms": duration_ms,
            "context": slow_context,
        },
    )
