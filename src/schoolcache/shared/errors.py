"""Structured errors for the school portal cache.

Every failure carries an ``ErrorCode`` and an ``ErrorContext`` describing
the cache key, file or command involved, so it can be written to the
structured log as-is.

Three families are raised:

- ``DomainError``: the caller broke the cache contract (empty key,
  negative TTL).
- ``InfrastructureError``: the disk or the database failed. The cache store
  logs these and reports a miss or ``False`` instead of raising.
- ``ApplicationError``: configuration problems, with ``CliError`` adding the
  command name and exit code for the command line.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Union

# Values allowed in ErrorContext.additional_data after coercion
PrimitiveContextValue = Union[str, int, float, bool]

# Removed from safe_dict() unless the caller asks otherwise
SAFE_DICT_MASK_KEYS: tuple[str, ...] = ("user_id",)


class ErrorCode(str, Enum):
    """Every error code used by schoolcache, grouped by the layer raising it."""

    # Cache store and tag index
    CACHE_ERROR = "CACHE_ERROR"
    CACHE_READ_FAILED = "CACHE_READ_FAILED"
    CACHE_WRITE_FAILED = "CACHE_WRITE_FAILED"
    CACHE_CORRUPTED = "CACHE_CORRUPTED"
    CACHE_SERIALIZATION_ERROR = "CACHE_SERIALIZATION_ERROR"
    TAG_INDEX_ERROR = "TAG_INDEX_ERROR"
    FILE_DELETE_ERROR = "FILE_DELETE_ERROR"
    DIRECTORY_CREATION_FAILED = "DIRECTORY_CREATION_FAILED"

    # Caller mistakes
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Database
    QUERY_FAILED = "QUERY_FAILED"
    BATCH_INSERT_FAILED = "BATCH_INSERT_FAILED"
    SETTINGS_LOAD_FAILED = "SETTINGS_LOAD_FAILED"
    SETTINGS_SAVE_FAILED = "SETTINGS_SAVE_FAILED"

    # Configuration
    CONFIG_ERROR = "CONFIG_ERROR"
    CONFIG_MISSING = "CONFIG_MISSING"
    CONFIG_INVALID = "CONFIG_INVALID"

    # Warnings logged with a code but never raised
    SLOW_OPERATION = "SLOW_OPERATION"

    # Command line
    CLI_COMMAND_FAILED = "CLI_COMMAND_FAILED"
    CLI_UNEXPECTED_ERROR = "CLI_UNEXPECTED_ERROR"


_COERCERS: tuple[tuple[type, Callable[[Any], PrimitiveContextValue]], ...] = (
    (Enum, lambda v: v.value),
    (bool, lambda v: v),
    (str, lambda v: v),
    (int, lambda v: v),
    (float, lambda v: v),
    (Path, str),
    (Decimal, float),
    (type(None), lambda _v: "None"),
)


def _coerce_value(name: str, value: Any) -> PrimitiveContextValue:
    for kind, convert in _COERCERS:
        if isinstance(value, kind):
            return convert(value)
    raise TypeError(
        f"additional_data[{name!r}] is a {type(value).__name__}; "
        "use str, int, float, bool, Path, Enum or Decimal",
    )


@dataclass(frozen=True)
class ErrorContext:
    """Where an error happened.

    ``additional_data`` is coerced to primitives on construction (paths to
    strings, enums to their values, decimals to floats) so a context can
    always be dumped into a JSON log line.

    Attributes:
        file_path: Cache or config file involved, if any
        operation: Operation name such as ``cache_get`` or ``cache_evict``
        user_id: Portal user, masked by ``safe_dict``
        additional_data: Primitive-valued details (key, tag, SQL, ...)
    """

    file_path: str | None = None
    operation: str | None = None
    user_id: str | None = None
    additional_data: dict[str, PrimitiveContextValue] | None = None

    def __post_init__(self) -> None:
        if self.additional_data is None:
            return
        if not isinstance(self.additional_data, dict):
            raise TypeError(
                f"additional_data must be dict, got {type(self.additional_data).__name__}",
            )
        coerced = {name: _coerce_value(name, value) for name, value in self.additional_data.items()}
        object.__setattr__(self, "additional_data", coerced)

    def safe_dict(self, *, mask_keys: tuple[str, ...] | None = None) -> dict[str, Any]:
        """Return the context for logging, without the masked fields.

        ``additional_data`` is always present, empty when unset or masked.

        Example:
            >>> ErrorContext(user_id="12", file_path="/c").safe_dict()
            {'file_path': '/c', 'additional_data': {}}
        """
        masked = SAFE_DICT_MASK_KEYS if mask_keys is None else mask_keys

        data: dict[str, Any] = {
            name: value
            for name, value in (
                ("file_path", self.file_path),
                ("operation", self.operation),
                ("user_id", self.user_id),
            )
            if value is not None and name not in masked
        }
        keep_extra = self.additional_data is not None and "additional_data" not in masked
        data["additional_data"] = self.additional_data if keep_extra else {}
        return data


class SchoolCacheError(Exception):
    """Base class of every schoolcache error.

    Args:
        code: What went wrong
        message: Human-readable description
        context: Where it went wrong
        original_error: The exception being wrapped, if any
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        context: ErrorContext | None = None,
        original_error: Exception | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.context = context or ErrorContext()
        self.original_error = original_error
        super().__init__(f"{code.value}: {message}")

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Log-safe representation with the context masked."""
        return {
            "code": self.code.value,
            "message": self.message,
            "context": self.context.safe_dict(),
            "original_error": str(self.original_error) if self.original_error else None,
        }


class DomainError(SchoolCacheError):
    """The caller broke the cache contract."""


class InfrastructureError(SchoolCacheError):
    """Disk or database failure."""


class ApplicationError(SchoolCacheError):
    """Configuration or wiring problem."""


class CliError(ApplicationError):
    """A command failed; carries the command name and process exit code."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        context: ErrorContext | None = None,
        original_error: Exception | None = None,
        command: str | None = None,
        exit_code: int = 1,
    ):
        super().__init__(code, message, context, original_error)
        self.command = command
        self.exit_code = exit_code


def _context(operation: str | None, **details: Any) -> ErrorContext:
    data = {name: value for name, value in details.items() if value}
    return ErrorContext(operation=operation, additional_data=data or None)


def create_validation_error(
    message: str,
    field: str | None = None,
    operation: str | None = None,
    original_error: Exception | None = None,
) -> DomainError:
    """DomainError for a bad argument such as an empty key."""
    return DomainError(
        ErrorCode.VALIDATION_ERROR,
        message,
        _context(operation, field=field),
        original_error,
    )


def create_config_error(
    message: str,
    code: ErrorCode = ErrorCode.CONFIG_ERROR,
    config_key: str | None = None,
    operation: str | None = None,
    original_error: Exception | None = None,
) -> ApplicationError:
    """ApplicationError for missing or invalid configuration."""
    return ApplicationError(
        code,
        message,
        _context(operation, config_key=config_key),
        original_error,
    )


def create_cache_io_error(
    code: ErrorCode,
    message: str,
    key: str,
    file_path: Path | str | None = None,
    operation: str | None = None,
    original_error: Exception | None = None,
) -> InfrastructureError:
    """InfrastructureError for a failed read, write or unlink of a cache file."""
    context = ErrorContext(
        file_path=str(file_path) if file_path is not None else None,
        operation=operation,
        additional_data={"key": key},
    )
    return InfrastructureError(code, message, context, original_error)


def create_cli_error(
    message: str,
    command: str | None = None,
    original_error: Exception | None = None,
    exit_code: int = 1,
) -> CliError:
    """CliError with the failing command recorded in the context."""
    return CliError(
        ErrorCode.CLI_COMMAND_FAILED,
        message,
        _context("cli", command=command),
        original_error,
        command,
        exit_code,
    )
