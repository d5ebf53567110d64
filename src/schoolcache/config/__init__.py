"""schoolcache Configuration Module

This module provides unified access to configuration models and the
settings loader.
"""

from __future__ import annotations

from .loader import load_settings
from .models import CacheSettings, LoggingSettings, Settings

__all__ = [
    "CacheSettings",
    "LoggingSettings",
    "Settings",
    "load_settings",
]
