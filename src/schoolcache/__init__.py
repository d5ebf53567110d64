"""
schoolcache - File cache for the school administration portal

Caches query results, rendered page fragments and system settings on disk
with TTL expiry, hit counters, tag-based invalidation and size-bounded
eviction.
"""

__version__ = "1.0.0"

from .config import Settings, load_settings
from .services import CacheManager, FileCacheStore, QueryCache, TagIndex

__all__ = [
    "CacheManager",
    "FileCacheStore",
    "QueryCache",
    "Settings",
    "TagIndex",
    "load_settings",
]
