"""Cached dashboard queries and the daily cache warm-up.

The date windows are computed here and bound as parameters, so the SQL
runs unchanged on SQLite and MySQL.
"""

from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import Any

from schoolcache.services.cache_manager import CacheManager
from schoolcache.services.cache_store import Clock, utc_now
from schoolcache.services.config_cache import ConfigCache
from schoolcache.services.query_cache import QueryCache
from schoolcache.shared.cache_utils import academic_year_tag, table_tag
from schoolcache.shared.constants import CacheKeys, PortalCacheTTL, PortalDefaults

logger = logging.getLogger(__name__)

CLASSES_SQL = (
    "SELECT * FROM classes WHERE is_active = 1 AND academic_year = ? "
    "ORDER BY class_name, section"
)

STUDENT_STATS_SQL = """
    SELECT
        COUNT(*) AS total_students,
        COUNT(CASE WHEN gender = 'male' THEN 1 END) AS male_students,
        COUNT(CASE WHEN gender = 'female' THEN 1 END) AS female_students,
        COUNT(CASE WHEN DATE(created_at) >= ? THEN 1 END) AS new_this_month
    FROM students
    WHERE is_active = 1 AND academic_year = ?
"""

FEE_STATS_SQL = """
    SELECT
        COALESCE(SUM(amount), 0) AS total_collected,
        COUNT(*) AS total_transactions,
        COALESCE(SUM(CASE WHEN payment_date >= ? THEN amount END), 0)
            AS monthly_collection
    FROM fee_payments
    WHERE academic_year = ?
"""


class PortalQueries:
    """Dashboard queries with their cache lifetimes and tags."""

    def __init__(self, query_cache: QueryCache, clock: Clock | None = None) -> None:
        self.query_cache = query_cache
        self._clock = clock or utc_now

    def _window_start(self) -> str:
        start = self._clock() - timedelta(days=PortalCacheTTL.RECENT_WINDOW_DAYS)
        return start.date().isoformat()

    def classes(self, academic_year: str = PortalDefaults.ACADEMIC_YEAR) -> list[dict[str, Any]]:
        """Active classes of a year, cached for 30 minutes."""
        return self.query_cache.query(
            CLASSES_SQL,
            (academic_year,),
            PortalCacheTTL.CLASSES,
            [table_tag("classes"), academic_year_tag(academic_year)],
        )

    def student_stats(self, academic_year: str = PortalDefaults.ACADEMIC_YEAR) -> dict[str, Any] | None:
        """Student head counts, cached for 10 minutes."""
        return self.query_cache.query_row(
            STUDENT_STATS_SQL,
            (self._window_start(), academic_year),
            PortalCacheTTL.STUDENT_STATS,
            [table_tag("students"), academic_year_tag(academic_year)],
        )

    def fee_stats(self, academic_year: str = PortalDefaults.ACADEMIC_YEAR) -> dict[str, Any] | None:
        """Fee collection totals, cached for 5 minutes."""
        return self.query_cache.query_row(
            FEE_STATS_SQL,
            (self._window_start(), academic_year),
            PortalCacheTTL.FEE_STATS,
            [table_tag("fee_payments"), academic_year_tag(academic_year)],
        )


def warmup(
    manager: CacheManager,
    queries: PortalQueries,
    config_cache: ConfigCache | None = None,
    academic_year: str = PortalDefaults.ACADEMIC_YEAR,
) -> bool:
    """Prime the dashboard caches once a day.

    Returns:
        True if the warm-up ran, False if it already ran within the last
        24 hours.
    """
    if manager.get(CacheKeys.CACHE_WARMED_TODAY):
        return False

    started = time.perf_counter()
    queries.classes(academic_year)
    queries.student_stats(academic_year)
    queries.fee_stats(academic_year)

    if config_cache is not None:
        for name in PortalDefaults.WARMUP_SETTINGS:
            config_cache.get(name)

    elapsed = time.perf_counter() - started
    manager.set(CacheKeys.CACHE_WARMED_TODAY, True, PortalCacheTTL.WARMUP_GUARD)
    logger.info(
        "Cache warmed up in %.3fs",
        elapsed,
        extra={"operation": "cache_warmup", "duration_ms": elapsed * 1000},
    )
    return True
