"""Cache service object.

``CacheManager`` is built once when the application starts and handed to
whatever needs caching. It combines the file store and the tag index behind
one object and adds the read-through ``remember`` helper.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from schoolcache.config.models.cache_settings import CacheSettings
from schoolcache.config.models.settings import Settings
from schoolcache.services.cache_store import CacheStats, Clock, FileCacheStore
from schoolcache.services.tag_index import TagIndex
from schoolcache.shared.cache_utils import user_cache_key, user_tag
from schoolcache.shared.logging import log_slow_operation

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Distinguishes "not cached" from a cached None
_MISSING = object()


class CacheManager:
    """Facade over the file store and the tag index.

    Args:
        store: The entry store.
        tags: Tag index over the same store; created when omitted.

    Example:
        >>> manager = CacheManager.from_settings(Settings())
        >>> manager.remember("class_count", lambda: 12, ttl=60)
        12
    """

    def __init__(self, store: FileCacheStore, tags: TagIndex | None = None) -> None:
        self.store = store
        self.tags = tags or TagIndex(store)

    @classmethod
    def from_settings(
        cls,
        settings: Settings | CacheSettings,
        clock: Clock | None = None,
    ) -> CacheManager:
        cache_settings = settings.cache if isinstance(settings, Settings) else settings
        return cls(FileCacheStore(cache_settings, clock=clock))

    @property
    def settings(self) -> CacheSettings:
        return self.store.settings

    def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        return self.store.set(key, value, ttl)

    def get(self, key: str, default: Any = None) -> Any:
        return self.store.get(key, default)

    def has(self, key: str) -> bool:
        return self.store.has(key)

    def delete(self, key: str) -> bool:
        return self.store.delete(key)

    def clear(self) -> int:
        return self.store.clear()

    def cleanup(self) -> int:
        return self.store.cleanup()

    def get_stats(self) -> CacheStats:
        return self.store.get_stats()

    def set_with_tags(
        self,
        key: str,
        value: Any,
        tags: Iterable[str],
        ttl: int | None = None,
    ) -> bool:
        return self.tags.set_with_tags(key, value, tags, ttl)

    def invalidate_tag(self, tag: str) -> int:
        return self.tags.invalidate_tag(tag)

    def invalidate_tags(self, tags: Iterable[str]) -> int:
        return self.tags.invalidate_tags(tags)

    def remember(
        self,
        key: str,
        compute: Callable[[], T],
        ttl: int | None = None,
        tags: Iterable[str] | None = None,
        *,
        log_context: dict[str, Any] | None = None,
    ) -> T:
        """Return the cached value for ``key``, computing it on a miss.

        ``compute`` runs at most once per call and only on a miss. Whatever it
        raises propagates unchanged and nothing is stored. A cached None is a
        hit.

        Args:
            key: Cache key.
            compute: Zero-argument callable producing the value.
            ttl: Lifetime in seconds, the store default when None.
            tags: Tags to register the key under.
            log_context: Extra fields for the slow-compute warning.
        """
        cached = self.store.get(key, _MISSING)
        if cached is not _MISSING:
            return cached

        started = time.perf_counter()
        value = compute()
        elapsed = time.perf_counter() - started

        threshold = self.settings.slow_query_threshold
        if elapsed > threshold:
            context = {"key": key}
            if log_context:
                context.update(log_context)
            log_slow_operation(
                logger=logger,
                operation="cache_compute",
                duration_ms=elapsed * 1000,
                threshold_ms=threshold * 1000,
                context=context,
            )

        tag_list = list(tags) if tags else []
        if tag_list:
            self.tags.set_with_tags(key, value, tag_list, ttl)
        else:
            self.store.set(key, value, ttl)

        return value

    def cache_for_user(
        self,
        user_id: int | str,
        key: str,
        value: Any,
        ttl: int | None = None,
    ) -> bool:
        """Store a per-user value, tagged so ``invalidate_user`` can find it."""
        return self.tags.set_with_tags(
            user_cache_key(user_id, key),
            value,
            [user_tag(user_id)],
            ttl,
        )

    def get_for_user(self, user_id: int | str, key: str, default: Any = None) -> Any:
        return self.store.get(user_cache_key(user_id, key), default)

    def cleanup_and_report(self) -> int:
        """Purge expired entries and log what is left."""
        purged = self.store.cleanup()
        stats = self.store.get_stats()
        logger.info(
            "Cache cleanup: %d expired entries removed, %d files (%.2f MB) remain",
            purged,
            stats.total_files,
            stats.total_size_mb,
            extra={
                "operation": "cache_cleanup",
                "result_info": {
                    "purged": purged,
                    "total_files": stats.total_files,
                    "total_size": stats.total_size,
                },
            },
        )
        return purged
