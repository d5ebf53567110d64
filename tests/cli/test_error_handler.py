"""
Tests for CLI error reporting and the JSON envelope.
"""

from __future__ import annotations

import json
from pathlib import Path

from schoolcache.cli.common.error_handler import handle_cli_error
from schoolcache.cli.json_formatter import format_json_output
from schoolcache.shared.errors import (
    ErrorCode,
    InfrastructureError,
    create_cli_error,
    create_config_error,
    create_validation_error,
)


class TestFormatJsonOutput:
    """Test the output envelope."""

    def test_success_envelope(self):
        payload = json.loads(format_json_output(True, "cleanup", {"purged": 3}))

        assert payload["success"] is True
        assert payload["command"] == "cleanup"
        assert payload["data"] == {"purged": 3}
        assert payload["errors"] == []
        assert "timestamp" in payload

    def test_errors_force_failure(self):
        payload = json.loads(format_json_output(True, "get", errors=["missing"]))

        assert payload["success"] is False
        assert payload["errors"] == ["missing"]

    def test_non_native_values_use_str(self):
        payload = json.loads(format_json_output(True, "stats", {"directory": Path("/var/cache")}))

        assert payload["data"]["directory"] == "/var/cache"

    def test_keys_are_sorted(self):
        text = format_json_output(True, "stats", {"b": 1, "a": 2}).decode()

        assert text.index('"a"') < text.index('"b"')


class TestHandleCliError:
    """Test exception to exit code mapping."""

    def test_config_error_text(self, capsys):
        error = create_config_error("bad file", code=ErrorCode.CONFIG_INVALID)

        exit_code = handle_cli_error(error, "stats")

        assert exit_code == 1
        assert capsys.readouterr().err == "Error: Configuration error: bad file\n"

    def test_storage_error_json(self, capsys):
        error = InfrastructureError(ErrorCode.DIRECTORY_CREATION_FAILED, "read-only disk")

        exit_code = handle_cli_error(error, "clear", json_output=True)

        payload = json.loads(capsys.readouterr().out)
        assert exit_code == 1
        assert payload["success"] is False
        assert payload["errors"] == ["Cache storage error: read-only disk"]
        assert payload["data"]["cause_code"] == "DIRECTORY_CREATION_FAILED"
        assert payload["data"]["error_code"] == "CLI_COMMAND_FAILED"

    def test_validation_error(self, capsys):
        handle_cli_error(create_validation_error("empty key", field="key"), "get")

        assert "Invalid input: empty key" in capsys.readouterr().err

    def test_cli_error_keeps_exit_code(self, capsys):
        error = create_cli_error("no such tag", command="invalidate", exit_code=2)

        assert handle_cli_error(error, "invalidate") == 2
        assert "no such tag" in capsys.readouterr().err

    def test_keyboard_interrupt(self, capsys):
        assert handle_cli_error(KeyboardInterrupt(), "cleanup") == 130
        assert "interrupted" in capsys.readouterr().err

    def test_unexpected_error(self, capsys):
        exit_code = handle_cli_error(RuntimeError("boom"), "stats", json_output=True)

        payload = json.loads(capsys.readouterr().out)
        assert exit_code == 1
        assert payload["data"]["error_code"] == "CLI_UNEXPECTED_ERROR"
        assert payload["errors"] == ["Unexpected error: boom"]
