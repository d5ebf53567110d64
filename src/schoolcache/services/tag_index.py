"""Tag index for group invalidation.

A tag names a group of cache keys, typically every cached query that read a
given table. Each tag is one JSON array of keys under ``<cache_dir>/tags``.
Invalidating a tag deletes each listed key from the store and then drops the
tag record. Records may list keys whose entries are already gone; those are
skipped silently.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import orjson

from schoolcache.services.cache_store import FileCacheStore, write_atomic
from schoolcache.shared.cache_utils import key_hash, safe_key
from schoolcache.shared.constants import Cache
from schoolcache.shared.errors import (
    ErrorCode,
    ErrorContext,
    InfrastructureError,
    create_validation_error,
)
from schoolcache.shared.logging import log_operation_error

logger = logging.getLogger(__name__)


class TagIndex:
    """Maps tags to the cache keys written under them."""

    def __init__(self, store: FileCacheStore) -> None:
        self.store = store
        self.tags_dir = store.cache_dir / Cache.TAGS_DIR

    def _tag_path(self, tag: str) -> Path:
        if not tag:
            raise create_validation_error(
                "Tag must be a non-empty string",
                field="tag",
                operation="tag_path",
            )
        return self.tags_dir / f"{safe_key(tag)}_{key_hash(tag)}{Cache.TAG_SUFFIX}"

    def _log_tag_error(
        self,
        message: str,
        tag: str,
        path: Path,
        operation: str,
        error: Exception,
    ) -> None:
        tag_error = InfrastructureError(
            code=ErrorCode.TAG_INDEX_ERROR,
            message=message,
            context=ErrorContext(
                file_path=str(path),
                operation=operation,
                additional_data={"tag": tag},
            ),
            original_error=error,
        )
        log_operation_error(logger=logger, error=tag_error, level=logging.WARNING)

    def _read_keys(self, tag: str, path: Path, operation: str) -> list[str]:
        """Load a tag record; an unreadable record is removed and read as empty."""
        try:
            with open(path, "rb") as f:
                keys = orjson.loads(f.read())
        except FileNotFoundError:
            return []
        except (OSError, orjson.JSONDecodeError) as e:
            self._log_tag_error(
                f"Unreadable tag record for '{tag}', discarding it",
                tag,
                path,
                operation,
                e,
            )
            path.unlink(missing_ok=True)
            return []

        if not isinstance(keys, list):
            logger.warning("Tag record for '%s' is not a key list, discarding it", tag)
            path.unlink(missing_ok=True)
            return []

        return [key for key in keys if isinstance(key, str)]

    def keys_for(self, tag: str) -> list[str]:
        """Keys currently recorded under ``tag``, possibly stale."""
        return self._read_keys(tag, self._tag_path(tag), "tag_keys")

    def add_key(self, tag: str, key: str) -> bool:
        """Record ``key`` under ``tag``. Keys are kept unique, first one wins."""
        path = self._tag_path(tag)
        keys = self._read_keys(tag, path, "tag_add")
        if key in keys:
            return True

        keys.append(key)
        try:
            write_atomic(path, orjson.dumps(keys))
        except OSError as e:
            self._log_tag_error(
                f"Failed to update tag record for '{tag}'",
                tag,
                path,
                "tag_add",
                e,
            )
            return False
        return True

    def set_with_tags(
        self,
        key: str,
        value: Any,
        tags: Iterable[str],
        ttl: int | None = None,
    ) -> bool:
        """Store ``value`` and register ``key`` under every tag.

        Tags are only updated when the store accepted the write, so a failed
        or disabled write leaves the index untouched.

        Returns:
            The store's ``set`` result.
        """
        if not self.store.set(key, value, ttl):
            return False

        for tag in dict.fromkeys(tags):
            self.add_key(tag, key)

        return True

    def invalidate_tag(self, tag: str) -> int:
        """Delete every key recorded under ``tag`` and drop the record.

        Returns:
            Number of keys processed, 0 for an unknown tag.
        """
        path = self._tag_path(tag)
        keys = self._read_keys(tag, path, "tag_invalidate")
        if not keys and not path.exists():
            return 0

        for key in keys:
            self.store.delete(key)

        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            self._log_tag_error(
                f"Failed to remove tag record for '{tag}'",
                tag,
                path,
                "tag_invalidate",
                e,
            )

        logger.info(
            "Invalidated %d cache entries for tag '%s'",
            len(keys),
            tag,
            extra={"operation": "tag_invalidate", "context": {"tag": tag}},
        )
        return len(keys)

    def invalidate_tags(self, tags: Iterable[str]) -> int:
        return sum(self.invalidate_tag(tag) for tag in dict.fromkeys(tags))

    def clear(self) -> int:
        """Remove every tag record.

        Returns:
            Number of records removed.
        """
        removed = 0
        for path in self.tags_dir.glob(f"*{Cache.TAG_SUFFIX}"):
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("Failed to remove tag record %s: %s", path, e)
                continue
            removed += 1
        return removed
