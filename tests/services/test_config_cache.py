"""Tests for the cached system settings."""

from __future__ import annotations

import logging
import sqlite3

import pytest

from schoolcache.services.config_cache import ConfigCache, SettingsRepository
from schoolcache.shared.constants import CacheKeys
from schoolcache.shared.errors import ErrorCode, InfrastructureError


class TestSettingsRepository:
    """Test the system_settings table access."""

    def test_load_all(self, portal_db):
        settings = SettingsRepository(portal_db).load_all()

        assert settings == {
            "school_name": "Riverside Academy",
            "academic_year_current": "2024-2025",
        }

    def test_upsert_inserts_and_updates(self, portal_db):
        repository = SettingsRepository(portal_db)

        repository.upsert("late_fee", "25", updated_by=3)
        repository.upsert("school_name", "Riverside College", updated_by=3)

        settings = repository.load_all()
        assert settings["late_fee"] == "25"
        assert settings["school_name"] == "Riverside College"

    def test_load_failure_raises(self):
        connection = sqlite3.connect(":memory:")

        with pytest.raises(InfrastructureError) as exc_info:
            SettingsRepository(connection).load_all()

        assert exc_info.value.code == ErrorCode.SETTINGS_LOAD_FAILED

    def test_upsert_failure_raises(self):
        connection = sqlite3.connect(":memory:")

        with pytest.raises(InfrastructureError) as exc_info:
            SettingsRepository(connection).upsert("a", "b")

        assert exc_info.value.code == ErrorCode.SETTINGS_SAVE_FAILED


class TestConfigCache:
    """Test the lazily loaded settings view."""

    def test_get_loads_once(self, manager, portal_db, mocker):
        repository = SettingsRepository(portal_db)
        load_all = mocker.spy(repository, "load_all")
        config = ConfigCache(manager, repository)

        assert config.get("school_name") == "Riverside Academy"
        assert config.get("missing", "default") == "default"
        assert load_all.call_count == 1

    def test_second_instance_reads_from_cache(self, manager, portal_db, mocker):
        ConfigCache(manager, SettingsRepository(portal_db)).get("school_name")
        repository = SettingsRepository(portal_db)
        load_all = mocker.spy(repository, "load_all")

        assert ConfigCache(manager, repository).get("school_name") == "Riverside Academy"
        load_all.assert_not_called()

    def test_set_updates_database_and_cache(self, manager, portal_db):
        config = ConfigCache(manager, SettingsRepository(portal_db))

        assert config.set("school_name", "Hilltop School", updated_by=1) is True

        assert config.get("school_name") == "Hilltop School"
        assert manager.get(CacheKeys.SYSTEM_SETTINGS)["school_name"] == "Hilltop School"
        assert SettingsRepository(portal_db).load_all()["school_name"] == "Hilltop School"

    def test_set_failure_returns_false(self, manager, portal_db, mocker):
        repository = SettingsRepository(portal_db)
        mocker.patch.object(
            repository,
            "upsert",
            side_effect=InfrastructureError(ErrorCode.SETTINGS_SAVE_FAILED, "locked"),
        )
        config = ConfigCache(manager, repository)

        assert config.set("school_name", "Hilltop School") is False
        assert config.get("school_name") == "Riverside Academy"

    def test_refresh_reloads_from_database(self, manager, portal_db):
        config = ConfigCache(manager, SettingsRepository(portal_db))
        config.get("school_name")
        portal_db.execute(
            "UPDATE system_settings SET setting_value = 'Changed' WHERE setting_name = 'school_name'",
        )

        assert config.get("school_name") == "Riverside Academy"
        config.refresh()
        assert config.get("school_name") == "Changed"

    def test_all_returns_a_copy(self, manager, portal_db):
        config = ConfigCache(manager, SettingsRepository(portal_db))

        snapshot = config.all()
        snapshot["school_name"] = "tampered"

        assert config.get("school_name") == "Riverside Academy"


class TestConfigCacheDatabaseOutage:
    """Test that an unreadable settings table never poisons the shared cache."""

    def test_failed_load_is_logged_and_not_cached(self, manager, caplog):
        broken = SettingsRepository(sqlite3.connect(":memory:"))

        with caplog.at_level(logging.WARNING, logger="schoolcache"):
            assert ConfigCache(manager, broken).get("school_name", "fallback") == "fallback"

        assert manager.has(CacheKeys.SYSTEM_SETTINGS) is False
        assert any(
            getattr(record, "error_code", None) == ErrorCode.SETTINGS_LOAD_FAILED.name
            for record in caplog.records
        )

    def test_recovers_once_database_is_back(self, manager, portal_db):
        broken = SettingsRepository(sqlite3.connect(":memory:"))
        ConfigCache(manager, broken).get("school_name")

        healthy = ConfigCache(manager, SettingsRepository(portal_db))

        assert healthy.get("school_name") == "Riverside Academy"
        assert manager.get(CacheKeys.SYSTEM_SETTINGS)["school_name"] == "Riverside Academy"

    def test_failed_load_is_not_retried_by_the_same_instance(self, manager, mocker):
        broken = SettingsRepository(sqlite3.connect(":memory:"))
        load_all = mocker.spy(broken, "load_all")
        config = ConfigCache(manager, broken)

        config.get("school_name")
        config.get("academic_year_current")

        assert load_all.call_count == 1

    def test_empty_table_is_not_cached(self, manager):
        connection = sqlite3.connect(":memory:")
        connection.execute(
            "CREATE TABLE system_settings "
            "(setting_name TEXT PRIMARY KEY, setting_value TEXT, updated_by INTEGER)",
        )

        assert ConfigCache(manager, SettingsRepository(connection)).all() == {}
        assert manager.has(CacheKeys.SYSTEM_SETTINGS) is False

    def test_set_after_failed_load_does_not_cache_partial_settings(self, manager, portal_db, mocker):
        repository = SettingsRepository(portal_db)
        mocker.patch.object(
            repository,
            "load_all",
            side_effect=InfrastructureError(ErrorCode.SETTINGS_LOAD_FAILED, "timeout"),
        )
        config = ConfigCache(manager, repository)

        assert config.set("late_fee", "25") is True

        assert config.get("late_fee") == "25"
        assert manager.has(CacheKeys.SYSTEM_SETTINGS) is False
        assert ConfigCache(manager, SettingsRepository(portal_db)).get("school_name") == "Riverside Academy"
