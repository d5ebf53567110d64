"""
Turns exceptions escaping a command into an exit code.

The exception is wrapped in a ``CliError``, logged once and reported on
stderr (or as a JSON envelope on stdout when ``--json`` is active).
"""

from __future__ import annotations

import logging
import sys
from typing import Any

from schoolcache.cli.json_formatter import format_json_output
from schoolcache.shared.errors import (
    ApplicationError,
    CliError,
    DomainError,
    ErrorCode,
    InfrastructureError,
    SchoolCacheError,
    create_cli_error,
)

logger = logging.getLogger(__name__)

# Checked in order; CliError never reaches this table
_MESSAGE_PREFIXES: tuple[tuple[type[BaseException], str], ...] = (
    (ApplicationError, "Configuration error"),
    (InfrastructureError, "Cache storage error"),
    (DomainError, "Invalid input"),
    (OSError, "File system error"),
)

INTERRUPTED_EXIT_CODE = 130


def _to_cli_error(error: BaseException, command: str) -> CliError:
    if isinstance(error, CliError):
        return error

    if isinstance(error, KeyboardInterrupt):
        return create_cli_error(
            "Command interrupted by user",
            command=command,
            exit_code=INTERRUPTED_EXIT_CODE,
        )

    detail = error.message if isinstance(error, SchoolCacheError) else str(error)
    original = error if isinstance(error, Exception) else None
    for kind, prefix in _MESSAGE_PREFIXES:
        if isinstance(error, kind):
            return create_cli_error(f"{prefix}: {detail}", command=command, original_error=original)

    cli_error = create_cli_error(f"Unexpected error: {detail}", command=command, original_error=original)
    cli_error.code = ErrorCode.CLI_UNEXPECTED_ERROR
    return cli_error


def handle_cli_error(
    error: BaseException,
    command: str,
    *,
    json_output: bool = False,
) -> int:
    """Log and report ``error`` raised by ``command``.

    Args:
        error: What the command raised
        command: Command name, used in the log record and the JSON envelope
        json_output: Report as a JSON envelope on stdout instead of stderr text

    Returns:
        The process exit code to use.
    """
    cli_error = _to_cli_error(error, command)
    context: dict[str, Any] = {
        "command": command,
        "error_type": type(error).__name__,
    }
    if isinstance(error, SchoolCacheError):
        context["cause_code"] = error.code.value

    if isinstance(error, KeyboardInterrupt):
        logger.warning("%s interrupted", command, extra={"context": context})
    else:
        logger.error(
            "Command %s failed: %s",
            command,
            cli_error.message,
            exc_info=error,
            extra={"error_code": cli_error.code.value, "context": context},
        )

    if json_output:
        envelope = format_json_output(
            success=False,
            command=command,
            errors=[cli_error.message],
            data={
                "error_code": cli_error.code.value,
                "exit_code": cli_error.exit_code,
                **context,
            },
        )
        sys.stdout.buffer.write(envelope + b"\n")
        sys.stdout.buffer.flush()
    else:
        sys.stderr.write(f"Error: {cli_error.message}\n")

    return cli_error.exit_code
