"""
schoolcache Constants Module

Centralized constants so that defaults live in one place.
"""

from .cache import (
    BASE_DAY,
    BASE_HOUR,
    BASE_MINUTE,
    Cache,
    CacheKeys,
    Performance,
    PortalCacheTTL,
    PortalDefaults,
)
from .cli import CLICommands, CLIDefaults
from .logging import Logging

__all__ = [
    "BASE_DAY",
    "BASE_HOUR",
    "BASE_MINUTE",
    "CLICommands",
    "CLIDefaults",
    "Cache",
    "CacheKeys",
    "Logging",
    "Performance",
    "PortalCacheTTL",
    "PortalDefaults",
]
