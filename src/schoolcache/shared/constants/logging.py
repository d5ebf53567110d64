"""
Logging Configuration Constants
"""

from .cache import BASE_FILE_SIZE


class Logging:
    """Logging defaults."""

    ROOT_LOGGER = "schoolcache"
    DEFAULT_LEVEL = "INFO"
    MAX_BYTES = 10 * BASE_FILE_SIZE
    BACKUP_COUNT = 5
