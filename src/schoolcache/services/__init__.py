"""
schoolcache Services Module

The file cache store and everything built on top of it.
"""

from .cache_manager import CacheManager
from .cache_store import CacheEntry, CacheStats, FileCacheStore
from .config_cache import ConfigCache, SettingsRepository
from .fragment_cache import FragmentCache
from .performance import OperationStats, PerformanceMonitor
from .portal_queries import PortalQueries, warmup
from .query_cache import QueryCache
from .tag_index import TagIndex

__all__ = [
    "CacheEntry",
    "CacheManager",
    "CacheStats",
    "ConfigCache",
    "FileCacheStore",
    "FragmentCache",
    "OperationStats",
    "PerformanceMonitor",
    "PortalQueries",
    "QueryCache",
    "SettingsRepository",
    "TagIndex",
    "warmup",
]
