"""Caching of rendered page fragments."""

from __future__ import annotations

import io
import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from schoolcache.services.cache_manager import CacheManager
from schoolcache.shared.cache_utils import fragment_cache_key
from schoolcache.shared.constants import Cache

logger = logging.getLogger(__name__)


class FragmentBuffer(io.StringIO):
    """Output buffer handed out by ``FragmentCache.capture``.

    ``hit`` is True when the buffer was pre-filled from the cache, in which
    case the block should skip rendering.
    """

    def __init__(self, initial_value: str = "", *, hit: bool = False) -> None:
        super().__init__()
        self.hit = hit
        if initial_value:
            self.write(initial_value)


class FragmentCache:
    """Stores rendered HTML strings under ``fragment_<key>``."""

    def __init__(self, manager: CacheManager, default_ttl: int = Cache.FRAGMENT_TTL) -> None:
        self.manager = manager
        self.default_ttl = default_ttl

    def fragment(self, key: str, render: Callable[[], str], ttl: int | None = None) -> str:
        """Return the cached fragment or render, store and return it."""
        return self.manager.remember(
            fragment_cache_key(key),
            render,
            self.default_ttl if ttl is None else ttl,
        )

    @contextmanager
    def capture(self, key: str, ttl: int | None = None) -> Iterator[FragmentBuffer]:
        """Capture whatever the block writes and cache it.

        Example:
            >>> with fragments.capture("class_list") as buf:
            ...     if not buf.hit:
            ...         buf.write(render_class_list())
            >>> html = buf.getvalue()

        Nothing is stored when the block raises.
        """
        cache_key = fragment_cache_key(key)
        cached = self.manager.get(cache_key)
        if isinstance(cached, str):
            yield FragmentBuffer(cached, hit=True)
            return

        started = time.perf_counter()
        buffer = FragmentBuffer()
        yield buffer

        content = buffer.getvalue()
        self.manager.set(cache_key, content, self.default_ttl if ttl is None else ttl)
        logger.debug(
            "Cached fragment '%s' (%d bytes) in %.4fs",
            key,
            len(content),
            time.perf_counter() - started,
        )
