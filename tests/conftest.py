"""
Pytest configuration and shared fixtures for schoolcache tests.

Provides a temporary cache directory, a controllable clock so expiry can be
tested without sleeping, and an in-memory SQLite database with the portal
tables the query helpers read.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import tempfile
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from schoolcache.config import CacheSettings
from schoolcache.services.cache_manager import CacheManager
from schoolcache.services.cache_store import FileCacheStore


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep SCHOOLCACHE_* variables from the host out of the tests."""
    for name in list(os.environ):
        if name.startswith("SCHOOLCACHE_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as temp_path:
        yield Path(temp_path)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 9, 2, 8, 0, tzinfo=timezone.utc))


@pytest.fixture
def cache_settings(temp_dir: Path) -> CacheSettings:
    return CacheSettings(directory=temp_dir / "cache")


@pytest.fixture
def store(cache_settings: CacheSettings, clock: FakeClock) -> FileCacheStore:
    return FileCacheStore(cache_settings, clock=clock)


@pytest.fixture
def manager(store: FileCacheStore) -> CacheManager:
    return CacheManager(store)


@pytest.fixture
def portal_db() -> Generator[sqlite3.Connection, None, None]:
    """In-memory portal database with a few rows per table."""
    connection = sqlite3.connect(":memory:")
    connection.executescript(
        """
        CREATE TABLE classes (
            id INTEGER PRIMARY KEY,
            class_name TEXT,
            section TEXT,
            academic_year TEXT,
            is_active INTEGER
        );
        CREATE TABLE students (
            id INTEGER PRIMARY KEY,
            first_name TEXT,
            gender TEXT,
            academic_year TEXT,
            is_active INTEGER,
            created_at TEXT
        );
        CREATE TABLE fee_payments (
            id INTEGER PRIMARY KEY,
            student_id INTEGER,
            amount REAL,
            payment_date TEXT,
            academic_year TEXT
        );
        CREATE TABLE system_settings (
            setting_name TEXT PRIMARY KEY,
            setting_value TEXT,
            updated_by INTEGER
        );

        INSERT INTO classes VALUES
            (1, 'Grade 1', 'A', '2024-2025', 1),
            (2, 'Grade 1', 'B', '2024-2025', 1),
            (3, 'Grade 2', 'A', '2023-2024', 1),
            (4, 'Grade 3', 'A', '2024-2025', 0);
        INSERT INTO students VALUES
            (1, 'Amina', 'female', '2024-2025', 1, '2024-08-25 09:00:00'),
            (2, 'Kofi', 'male', '2024-2025', 1, '2024-05-01 09:00:00'),
            (3, 'Esi', 'female', '2024-2025', 1, '2024-08-30 10:00:00'),
            (4, 'Yaw', 'male', '2024-2025', 0, '2024-08-30 10:00:00');
        INSERT INTO fee_payments VALUES
            (1, 1, 150.0, '2024-08-20', '2024-2025'),
            (2, 2, 200.0, '2024-06-01', '2024-2025'),
            (3, 3, 50.0, '2024-09-01', '2024-2025');
        INSERT INTO system_settings VALUES
            ('school_name', 'Riverside Academy', 1),
            ('academic_year_current', '2024-2025', 1);
        """,
    )
    connection.commit()
    yield connection
    connection.close()


@pytest.fixture(autouse=True)
def _reset_package_logger() -> Generator[None, None, None]:
    """Undo handler setup done by CLI tests so caplog keeps working."""
    yield
    package_logger = logging.getLogger("schoolcache")
    for handler in list(package_logger.handlers):
        handler.close()
        package_logger.removeHandler(handler)
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)
