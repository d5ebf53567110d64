"""Settings of the file cache: where entries live, how long they last and
how large the directory may grow before eviction starts.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

from schoolcache.shared.constants import Cache


class CacheSettings(BaseModel):
    """Cache configuration.

    This class manages caching behavior including the cache directory,
    default TTLs, the size bound used by eviction and the slow query
    threshold.
    """

    enabled: bool = Field(default=True, description="Enable caching")
    directory: Path = Field(
        default=Path(Cache.DEFAULT_DIR),
        description="Root directory of the file cache",
    )
    default_ttl: int = Field(
        default=Cache.DEFAULT_TTL,
        ge=0,
        description="Default time-to-live in seconds",
    )
    query_ttl: int = Field(
        default=Cache.QUERY_TTL,
        ge=0,
        description="Time-to-live of cached query results in seconds",
    )
    max_size_bytes: int = Field(
        default=Cache.MAX_SIZE_BYTES,
        gt=0,
        description="Total entry size that triggers eviction",
    )
    eviction_ratio: float = Field(
        default=Cache.EVICTION_RATIO,
        gt=0,
        le=1,
        description="Eviction stops once usage falls to this share of max_size_bytes",
    )
    shard_length: int = Field(
        default=Cache.SHARD_LENGTH,
        ge=1,
        le=8,
        description="Number of hash characters used for shard directories",
    )
    slow_query_threshold: float = Field(
        default=Cache.SLOW_QUERY_THRESHOLD,
        ge=0,
        description="Computations slower than this many seconds are logged",
    )

    @property
    def eviction_target_bytes(self) -> float:
        return self.max_size_bytes * self.eviction_ratio


__all__ = ["CacheSettings"]
