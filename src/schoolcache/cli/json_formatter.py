"""
The ``--json`` output envelope.

Every command, successful or not, prints one object::

    {"command": ..., "data": ..., "errors": [...], "success": ..., "timestamp": ...}

Keys are sorted and indented so the output diffs cleanly in cron logs.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import orjson

_DUMP_OPTIONS = orjson.OPT_SORT_KEYS | orjson.OPT_INDENT_2 | orjson.OPT_NON_STR_KEYS


def _envelope(success: bool, command: str, data: Any, errors: list[str]) -> dict[str, Any]:
    return {
        "success": success and not errors,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "command": command,
        "data": data,
        "errors": errors,
    }


def format_json_output(
    success: bool,
    command: str,
    data: Any | None = None,
    errors: list[str] | None = None,
) -> bytes:
    """
    Encode a command result as the JSON envelope.

    ``success`` is forced to False when ``errors`` is non-empty. Values orjson
    cannot encode natively (paths, decimals) are written with ``str``; if the
    payload still cannot be encoded, an error envelope without data is
    returned instead.

    Example:
        >>> print(format_json_output(True, "cleanup", {"purged": 3}).decode())
        {
          "command": "cleanup",
          "data": {
            "purged": 3
          },
          "errors": [],
          "success": true,
          "timestamp": "2024-09-01T08:00:00.000000+00:00"
        }
    """
    try:
        return orjson.dumps(
            _envelope(success, command, data, list(errors or [])),
            default=str,
            option=_DUMP_OPTIONS,
        )
    except (TypeError, ValueError) as e:
        fallback = _envelope(False, command, None, [f"JSON serialization failed: {e!s}"])
        return orjson.dumps(fallback, option=_DUMP_OPTIONS)
