"""
CLI Constants
"""


class CLIDefaults:
    """Default CLI values."""

    APP_NAME = "schoolcache"
    APP_DESCRIPTION = "Inspect and maintain the school portal file cache."
    VERSION = "1.0.0"
    EXIT_SUCCESS = 0
    EXIT_ERROR = 1
    ENV_PREFIX = "SCHOOLCACHE_"


class CLICommands:
    """Command names."""

    STATS = "stats"
    CLEAR = "clear"
    CLEANUP = "cleanup"
    INVALIDATE = "invalidate"
    GET = "get"
