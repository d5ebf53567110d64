"""
Cache Configuration Constants

This module provides the cache defaults shared by the settings model, the
file store and the portal query helpers.
"""

# Base time units for TTL calculations
BASE_SECOND = 1
BASE_MINUTE = 60 * BASE_SECOND
BASE_HOUR = 60 * BASE_MINUTE
BASE_DAY = 24 * BASE_HOUR

BASE_FILE_SIZE = 1024 * 1024  # 1MB


class Cache:
    """File cache constants."""

    DEFAULT_TTL = BASE_HOUR
    QUERY_TTL = 10 * BASE_MINUTE
    FRAGMENT_TTL = BASE_HOUR
    SETTINGS_TTL = BASE_HOUR

    DEFAULT_DIR = "cache"
    MAX_SIZE_BYTES = 100 * BASE_FILE_SIZE
    EVICTION_RATIO = 0.8
    SHARD_LENGTH = 2
    SLOW_QUERY_THRESHOLD = 1.0  # seconds
    BATCH_INSERT_SIZE = 100

    ENTRY_SUFFIX = ".cache"
    TAG_SUFFIX = ".tag"
    TMP_SUFFIX = ".tmp"
    TAGS_DIR = "tags"
    MAX_SAFE_KEY_LENGTH = 64
    HTACCESS_FILE = ".htaccess"
    HTACCESS_CONTENT = "Deny from all\n"


class CacheKeys:
    """Key and tag prefixes."""

    QUERY_PREFIX = "query_"
    FRAGMENT_PREFIX = "fragment_"
    USER_PREFIX = "user_"
    TABLE_TAG_PREFIX = "table_"
    ACADEMIC_YEAR_TAG_PREFIX = "academic_year_"

    SYSTEM_SETTINGS = "system_settings"
    CACHE_WARMED_TODAY = "cache_warmed_today"


class PortalCacheTTL:
    """TTL values for the dashboard queries."""

    CLASSES = 30 * BASE_MINUTE
    STUDENT_STATS = 10 * BASE_MINUTE
    FEE_STATS = 5 * BASE_MINUTE
    WARMUP_GUARD = BASE_DAY

    RECENT_WINDOW_DAYS = 30


class Performance:
    """Performance monitor thresholds."""

    TIME_THRESHOLD = 1.0  # seconds
    MEMORY_THRESHOLD = 10 * BASE_FILE_SIZE


class PortalDefaults:
    """Fallbacks for the dashboard queries."""

    ACADEMIC_YEAR = "2024-2025"
    WARMUP_SETTINGS = ("school_name", "academic_year_current")
