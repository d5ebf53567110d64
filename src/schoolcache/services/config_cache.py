"""Cached access to the ``system_settings`` table.

The whole table is loaded as one name/value dict, kept in memory for the
lifetime of the object and cached on disk for an hour, so most requests
never touch the database for settings.
"""

from __future__ import annotations

import logging
from typing import Any

from schoolcache.services.cache_manager import CacheManager
from schoolcache.shared.constants import Cache, CacheKeys
from schoolcache.shared.errors import ErrorCode, ErrorContext, InfrastructureError
from schoolcache.shared.logging import log_operation_error

logger = logging.getLogger(__name__)


class SettingsRepository:
    """Reads and writes ``system_settings`` rows over a DB-API connection.

    Expected schema::

        system_settings(setting_name TEXT PRIMARY KEY,
                        setting_value TEXT,
                        updated_by INTEGER)
    """

    LOAD_SQL = "SELECT setting_name, setting_value FROM system_settings"
    UPSERT_SQL = (
        "INSERT INTO system_settings (setting_name, setting_value, updated_by) "
        "VALUES (?, ?, ?) "
        "ON CONFLICT (setting_name) DO UPDATE SET "
        "setting_value = excluded.setting_value, updated_by = excluded.updated_by"
    )

    def __init__(self, connection: Any) -> None:
        self.connection = connection

    def load_all(self) -> dict[str, str]:
        """All settings as a name/value dict.

        Raises:
            InfrastructureError: If the table cannot be read.
        """
        try:
            cursor = self.connection.cursor()
            try:
                cursor.execute(self.LOAD_SQL)
                return {name: value for name, value in cursor.fetchall()}
            finally:
                cursor.close()
        except Exception as e:
            raise InfrastructureError(
                code=ErrorCode.SETTINGS_LOAD_FAILED,
                message=f"Failed to load system settings: {e!s}",
                context=ErrorContext(operation="settings_load"),
                original_error=e,
            ) from e

    def upsert(self, name: str, value: str, updated_by: int | None = None) -> None:
        """Insert or update one setting and commit.

        Raises:
            InfrastructureError: If the statement or the commit fails.
        """
        try:
            cursor = self.connection.cursor()
            try:
                cursor.execute(self.UPSERT_SQL, (name, value, updated_by))
            finally:
                cursor.close()
            self.connection.commit()
        except Exception as e:
            raise InfrastructureError(
                code=ErrorCode.SETTINGS_SAVE_FAILED,
                message=f"Failed to save setting '{name}': {e!s}",
                context=ErrorContext(
                    operation="settings_save",
                    additional_data={"setting_name": name},
                ),
                original_error=e,
            ) from e


class ConfigCache:
    """Lazily loaded, cached view of the system settings.

    Only a complete, non-empty load from the database is written to the
    shared cache. When the database cannot be read, this instance serves
    empty settings from memory and the next instance tries again.
    """

    def __init__(
        self,
        manager: CacheManager,
        repository: SettingsRepository,
        ttl: int = Cache.SETTINGS_TTL,
    ) -> None:
        self.manager = manager
        self.repository = repository
        self.ttl = ttl
        self._settings: dict[str, str] | None = None
        self._complete = False

    def _load(self) -> dict[str, str]:
        if self._settings is not None:
            return self._settings

        cached = self.manager.get(CacheKeys.SYSTEM_SETTINGS)
        if isinstance(cached, dict):
            self._settings = cached
            self._complete = True
            return self._settings

        try:
            self._settings = self.repository.load_all()
        except InfrastructureError as e:
            log_operation_error(logger=logger, error=e, level=logging.WARNING)
            self._settings = {}
            self._complete = False
            return self._settings

        self._complete = True
        if self._settings:
            self.manager.set(CacheKeys.SYSTEM_SETTINGS, self._settings, self.ttl)
        return self._settings

    def get(self, name: str, default: Any = None) -> Any:
        return self._load().get(name, default)

    def all(self) -> dict[str, str]:
        return dict(self._load())

    def set(self, name: str, value: str, updated_by: int | None = None) -> bool:
        """Persist a setting and refresh the cached copy.

        Returns:
            False if the database write failed, True otherwise.
        """
        try:
            self.repository.upsert(name, value, updated_by)
        except InfrastructureError as e:
            log_operation_error(logger=logger, error=e, level=logging.WARNING)
            return False

        settings = self._load()
        settings[name] = value
        if self._complete:
            self.manager.set(CacheKeys.SYSTEM_SETTINGS, settings, self.ttl)
        else:
            # A partial dict must not shadow the table for other processes
            self.manager.delete(CacheKeys.SYSTEM_SETTINGS)
        return True

    def refresh(self) -> None:
        """Forget the in-memory and cached copies and reload."""
        self._settings = None
        self._complete = False
        self.manager.delete(CacheKeys.SYSTEM_SETTINGS)
        self._load()
