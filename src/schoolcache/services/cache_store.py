"""File-based cache store.

This module provides the key/value store behind every cache in the portal.
Each entry lives in its own JSON file, serialized with orjson, under a shard
directory chosen from the key's SHA-256 so that no single directory grows
without bound. Entries carry an absolute expiry and a persisted hit counter.

The store is an optimization layer: unreadable, corrupted or expired entries
are deleted and reported as misses, and I/O failures are logged and turned
into ``False``/``default`` return values rather than raised.
"""

from __future__ import annotations

import logging
import os
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from schoolcache.config.models.cache_settings import CacheSettings
from schoolcache.shared.cache_utils import key_hash, safe_key
from schoolcache.shared.constants import Cache
from schoolcache.shared.errors import (
    ErrorCode,
    ErrorContext,
    InfrastructureError,
    create_cache_io_error,
    create_validation_error,
)
from schoolcache.shared.logging import log_operation_error, log_operation_success

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def write_atomic(path: Path, payload: bytes) -> None:
    """Write ``payload`` to ``path`` through a temp file and ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}{Cache.TMP_SUFFIX}")
    try:
        with open(tmp_path, "wb") as f:
            f.write(payload)
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


def _json_default(value: Any) -> Any:
    """Encode the extra types database drivers hand back."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (set, frozenset)):
        return list(value)
    if isinstance(value, bytes):
        return value.decode("utf-8")
    raise TypeError(f"Type is not JSON serializable: {type(value).__name__}")


class CacheEntry(BaseModel):
    """Schema for a stored cache entry.

    Attributes:
        key: The original cache key, checked on read.
        value: The cached payload (rows, scalars, booleans, rendered HTML).
        created_at: UTC timestamp of the write.
        expires_at: UTC timestamp after which the entry is logically absent.
        hit_count: Number of successful reads, informational only.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "key": "students_page_1",
                "value": [{"id": 1, "first_name": "Amina"}],
                "created_at": "2024-09-01T08:00:00+00:00",
                "expires_at": "2024-09-01T08:05:00+00:00",
                "hit_count": 3,
            },
        },
    )

    key: str = Field(..., min_length=1, description="Original cache key")
    value: Any = Field(default=None, description="The cached payload")
    created_at: datetime = Field(..., description="When the entry was written")
    expires_at: datetime = Field(..., description="When the entry expires")
    hit_count: int = Field(default=0, ge=0, description="Successful reads")

    @field_validator("created_at", "expires_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class CacheStats(BaseModel):
    """Snapshot of the on-disk cache plus this process's counters."""

    total_files: int = 0
    total_size: int = 0
    total_size_mb: float = 0.0
    expired_files: int = 0
    total_hits: int = 0
    hit_rate: float = 0.0
    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    evictions: int = 0


class FileCacheStore:
    """Sharded file cache with TTL, hit counters and size-bounded eviction.

    Args:
        settings: Cache configuration (directory, TTLs, size bound).
        clock: Returns the current time as an aware datetime. Injected so
            that expiry can be tested without sleeping.
    """

    def __init__(
        self,
        settings: CacheSettings,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings
        self.cache_dir = Path(settings.directory)
        self._clock = clock or utc_now
        self._counters = {
            "hits": 0,
            "misses": 0,
            "sets": 0,
            "deletes": 0,
            "evictions": 0,
        }

        self._ensure_cache_directory()

    @property
    def enabled(self) -> bool:
        return self.settings.enabled

    def now(self) -> datetime:
        return self._clock()

    def _ensure_cache_directory(self) -> None:
        """Create the cache root and deny web access to it.

        Raises:
            InfrastructureError: If the directory cannot be created.
        """
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            htaccess = self.cache_dir / Cache.HTACCESS_FILE
            if not htaccess.exists():
                htaccess.write_text(Cache.HTACCESS_CONTENT, encoding="utf-8")
        except OSError as e:
            error = InfrastructureError(
                code=ErrorCode.DIRECTORY_CREATION_FAILED,
                message=f"Failed to initialize cache directory: {self.cache_dir}",
                context=ErrorContext(
                    operation="initialize_cache",
                    file_path=str(self.cache_dir),
                ),
                original_error=e,
            )
            log_operation_error(logger=logger, error=error)
            raise error from e

        logger.debug("Initialized file cache in %s", self.cache_dir)

    def _entry_path(self, key: str) -> Path:
        """Return the file that holds ``key``.

        Raises:
            DomainError: If the key is empty.
        """
        if not key:
            raise create_validation_error(
                "Cache key must be a non-empty string",
                field="key",
                operation="entry_path",
            )

        digest = key_hash(key)
        shard = digest[: self.settings.shard_length]
        return self.cache_dir / shard / f"{safe_key(key)}_{digest}{Cache.ENTRY_SUFFIX}"

    def entry_files(self) -> list[Path]:
        """All entry files across every shard, in path order."""
        return sorted(self.cache_dir.glob(f"*/*{Cache.ENTRY_SUFFIX}"))

    def total_size(self) -> int:
        total = 0
        for path in self.entry_files():
            try:
                total += path.stat().st_size
            except FileNotFoundError:
                continue
        return total

    # ------------------------------------------------------------------
    # File primitives
    # ------------------------------------------------------------------

    def _serialize(self, entry: CacheEntry) -> bytes:
        return orjson.dumps(
            entry.model_dump(),
            default=_json_default,
            option=orjson.OPT_NON_STR_KEYS,
        )

    def _read_file(self, path: Path) -> CacheEntry | None:
        """Parse an entry file.

        Returns None when the file is missing. Raises OSError for read
        failures and ValueError (JSON or validation) for corrupted content.
        """
        try:
            with open(path, "rb") as f:
                raw = f.read()
        except FileNotFoundError:
            return None
        return CacheEntry.model_validate(orjson.loads(raw))

    def _remove_file(self, path: Path) -> bool:
        """Unlink an entry file.

        Returns:
            True if a file was removed, False if it was already gone.

        Raises:
            OSError: If the unlink fails for any other reason.
        """
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        self._counters["deletes"] += 1
        return True

    def _discard(self, path: Path, key: str, operation: str) -> None:
        """Remove a bad or expired entry, logging instead of raising."""
        try:
            self._remove_file(path)
        except OSError as e:
            error = create_cache_io_error(
                ErrorCode.FILE_DELETE_ERROR,
                f"Failed to remove cache entry for key '{key}': {e!s}",
                key=key,
                file_path=path,
                operation=operation,
                original_error=e,
            )
            log_operation_error(logger=logger, error=error, level=logging.WARNING)

    def _load_live_entry(self, key: str, operation: str) -> tuple[Path, CacheEntry | None]:
        """Read the entry for ``key`` and apply every miss rule.

        Missing, unreadable, corrupted, foreign and expired entries all come
        back as None; anything but a missing file is deleted on the way.
        """
        path = self._entry_path(key)

        try:
            entry = self._read_file(path)
        except OSError as e:
            error = create_cache_io_error(
                ErrorCode.CACHE_READ_FAILED,
                f"Failed to read cache file for key '{key}': {e!s}",
                key=key,
                file_path=path,
                operation=operation,
                original_error=e,
            )
            log_operation_error(logger=logger, error=error, level=logging.WARNING)
            self._discard(path, key, operation)
            return path, None
        except (orjson.JSONDecodeError, ValidationError, ValueError) as e:
            error = create_cache_io_error(
                ErrorCode.CACHE_CORRUPTED,
                f"Cache file corrupted for key '{key}', removing it",
                key=key,
                file_path=path,
                operation=operation,
                original_error=e,
            )
            log_operation_error(logger=logger, error=error, level=logging.WARNING)
            self._discard(path, key, operation)
            return path, None

        if entry is None:
            return path, None

        if entry.key != key:
            logger.warning(
                "Cache file %s holds key '%s' instead of '%s', treating as miss",
                path,
                entry.key,
                key,
            )
            self._discard(path, key, operation)
            return path, None

        if entry.is_expired(self.now()):
            logger.debug("Cache entry expired for key '%s'", key)
            self._discard(path, key, operation)
            return path, None

        return path, entry

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Store ``value`` under ``key`` for ``ttl`` seconds.

        Args:
            key: Cache key.
            value: JSON-serializable payload. Tuples and sets come back as
                lists and non-string mapping keys come back as strings.
            ttl: Lifetime in seconds, ``settings.default_ttl`` when None.

        Returns:
            True if the entry was written, False if caching is disabled or
            the write failed.

        Raises:
            DomainError: If the key is empty or ttl is negative.
        """
        if not self.enabled:
            return False

        ttl = self.settings.default_ttl if ttl is None else ttl
        if ttl < 0:
            raise create_validation_error(
                f"TTL must be >= 0, got {ttl}",
                field="ttl",
                operation="cache_set",
            )

        path = self._entry_path(key)
        now = self.now()
        entry = CacheEntry(
            key=key,
            value=value,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl),
        )

        try:
            payload = self._serialize(entry)
        except (TypeError, ValueError) as e:
            error = create_cache_io_error(
                ErrorCode.CACHE_SERIALIZATION_ERROR,
                f"Failed to serialize cache data for key '{key}': {e!s}",
                key=key,
                operation="cache_set",
                original_error=e,
            )
            log_operation_error(logger=logger, error=error, level=logging.WARNING)
            return False

        try:
            write_atomic(path, payload)
        except OSError as e:
            error = create_cache_io_error(
                ErrorCode.CACHE_WRITE_FAILED,
                f"Failed to write cache file for key '{key}': {e!s}",
                key=key,
                file_path=path,
                operation="cache_set",
                original_error=e,
            )
            log_operation_error(logger=logger, error=error, level=logging.WARNING)
            return False

        self._counters["sets"] += 1
        log_operation_success(
            logger=logger,
            operation="cache_set",
            duration_ms=0,
            context={"key": key, "ttl": ttl, "size": len(payload)},
        )

        self.evict_if_needed()
        return True

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value for ``key`` or ``default``.

        A hit increments the entry's hit counter and persists it. Failing to
        persist the counter is logged; the value is still returned.
        """
        if not self.enabled:
            return default

        path, entry = self._load_live_entry(key, "cache_get")
        if entry is None:
            self._counters["misses"] += 1
            return default

        entry.hit_count += 1
        try:
            write_atomic(path, self._serialize(entry))
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Failed to update hit count for key '%s': %s", key, e)

        self._counters["hits"] += 1
        logger.debug("Cache hit for key '%s' (hits=%d)", key, entry.hit_count)
        return entry.value

    def has(self, key: str) -> bool:
        """Whether ``key`` holds a live entry. Does not count as a hit."""
        if not self.enabled:
            return False

        _, entry = self._load_live_entry(key, "cache_has")
        return entry is not None

    def get_entry(self, key: str) -> CacheEntry | None:
        """Return the live entry with its metadata, without counting a hit."""
        _, entry = self._load_live_entry(key, "cache_inspect")
        return entry

    def delete(self, key: str) -> bool:
        """Remove ``key``.

        Returns:
            True if the entry was removed or did not exist, False if the
            unlink failed.
        """
        path = self._entry_path(key)
        try:
            self._remove_file(path)
        except OSError as e:
            error = create_cache_io_error(
                ErrorCode.FILE_DELETE_ERROR,
                f"Error deleting cache entry for key '{key}': {e!s}",
                key=key,
                file_path=path,
                operation="cache_delete",
                original_error=e,
            )
            log_operation_error(logger=logger, error=error, level=logging.WARNING)
            return False

        logger.debug("Deleted cache entry for key '%s'", key)
        return True

    def clear(self) -> int:
        """Remove every entry regardless of expiry, along with all tag records.

        Returns:
            Number of entries removed. Tag records are not counted.
        """
        deleted_count = 0
        for path in self.entry_files():
            try:
                if self._remove_file(path):
                    deleted_count += 1
            except OSError as e:
                logger.warning("Failed to remove cache file %s: %s", path, e)

        # Tag records would only point at deleted keys now
        for tag_file in (self.cache_dir / Cache.TAGS_DIR).glob(f"*{Cache.TAG_SUFFIX}"):
            try:
                tag_file.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Failed to remove tag record %s: %s", tag_file, e)

        logger.info("Cleared %d cache entries", deleted_count)
        return deleted_count

    def cleanup(self) -> int:
        """Remove expired and unreadable entries.

        Returns:
            Number of entries removed.
        """
        now = self.now()
        purged_count = 0

        for path in self.entry_files():
            try:
                entry = self._read_file(path)
                expired = entry is not None and entry.is_expired(now)
            except (OSError, ValueError):
                expired = True

            if not expired:
                continue

            try:
                if self._remove_file(path):
                    purged_count += 1
            except OSError as e:
                logger.warning("Failed to remove expired cache file %s: %s", path, e)

        logger.info("Purged %d expired cache entries", purged_count)
        return purged_count

    def evict_if_needed(self) -> int:
        """Evict the oldest entries once the cache outgrows its bound.

        When the summed size of all entry files exceeds
        ``settings.max_size_bytes``, entries are removed in ascending mtime
        order until the total is at most
        ``max_size_bytes * eviction_ratio``. Runs without a lock, so
        concurrent writers can briefly push the cache past the bound.

        Returns:
            Number of entries evicted.
        """
        candidates: list[tuple[float, Path, int]] = []
        total_size = 0
        for path in self.entry_files():
            try:
                stat = path.stat()
            except FileNotFoundError:
                continue
            candidates.append((stat.st_mtime, path, stat.st_size))
            total_size += stat.st_size

        if total_size <= self.settings.max_size_bytes:
            return 0

        target_size = self.settings.eviction_target_bytes
        candidates.sort(key=lambda item: item[0])

        evicted = 0
        for _mtime, path, size in candidates:
            if total_size <= target_size:
                break
            try:
                removed = self._remove_file(path)
            except OSError as e:
                logger.warning("Failed to evict cache file %s: %s", path, e)
                continue
            total_size -= size
            if removed:
                evicted += 1

        self._counters["evictions"] += evicted
        logger.info(
            "Evicted %d cache entries, %d bytes remain (limit %d)",
            evicted,
            total_size,
            self.settings.max_size_bytes,
            extra={
                "operation": "cache_evict",
                "result_info": {"evicted": evicted, "remaining_bytes": total_size},
            },
        )
        return evicted

    def get_stats(self) -> CacheStats:
        """Scan every entry and report totals plus this process's counters."""
        now = self.now()
        total_files = 0
        total_size = 0
        expired_files = 0
        total_hits = 0

        for path in self.entry_files():
            try:
                total_size += path.stat().st_size
            except FileNotFoundError:
                continue
            total_files += 1

            try:
                entry = self._read_file(path)
            except (OSError, ValueError):
                expired_files += 1
                continue
            if entry is None:
                continue

            total_hits += entry.hit_count
            if entry.is_expired(now):
                expired_files += 1

        return CacheStats(
            total_files=total_files,
            total_size=total_size,
            total_size_mb=round(total_size / 1024 / 1024, 2),
            expired_files=expired_files,
            total_hits=total_hits,
            hit_rate=round(total_hits / total_files, 2) if total_files else 0.0,
            **self._counters,
        )
