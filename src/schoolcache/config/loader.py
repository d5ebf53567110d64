"""Settings loader.

Loads ``Settings`` from an optional TOML file plus environment variables and
turns every failure into an ``ApplicationError`` with a configuration code.
The loaded object is returned to the caller, which owns it and passes it on.
"""

from __future__ import annotations

import logging
from pathlib import Path

import toml
from pydantic import ValidationError

from schoolcache.config.models.settings import Settings
from schoolcache.shared.errors import ErrorCode, create_config_error

logger = logging.getLogger(__name__)


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings.

    Args:
        config_path: Optional TOML configuration file. When omitted only
            defaults and environment variables apply.

    Returns:
        Validated Settings instance.

    Raises:
        ApplicationError: CONFIG_MISSING if the file does not exist,
            CONFIG_INVALID if it cannot be parsed or fails validation.
    """
    try:
        if config_path is None:
            settings = Settings()
        else:
            settings = Settings.from_toml_file(config_path)
    except FileNotFoundError as e:
        raise create_config_error(
            f"Configuration file not found: {config_path}",
            code=ErrorCode.CONFIG_MISSING,
            config_key=str(config_path),
            operation="load_settings",
            original_error=e,
        ) from e
    except (toml.TomlDecodeError, ValidationError) as e:
        raise create_config_error(
            f"Invalid configuration: {e}",
            code=ErrorCode.CONFIG_INVALID,
            config_key=str(config_path) if config_path else None,
            operation="load_settings",
            original_error=e,
        ) from e

    logger.debug(
        "Settings loaded (cache_dir=%s, enabled=%s)",
        settings.cache.directory,
        settings.cache.enabled,
    )
    return settings
