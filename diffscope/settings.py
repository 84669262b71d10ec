"""Centralized environment configuration for diffscope.

All environment variables are read through this module using the DIFFSCOPE_
prefix for consistency.

Usage:
    from diffscope.settings import settings

    port = settings.port()
    if settings.strict_parse():
        ...
"""

from __future__ import annotations

import os


def _get(name: str, default: str = "") -> str:
    """Get an environment variable value."""
    return os.environ.get(name, "").strip() or default


def _get_bool(name: str, default: bool = False) -> bool:
    """Get a boolean environment variable."""
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    return value.lower() in ("1", "true", "yes")


def _get_int(name: str, default: int = 0) -> int:
    """Get an integer environment variable."""
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


class Settings:
    """Centralized settings for diffscope.

    Environment variables use the DIFFSCOPE_ prefix.
    """

    # -------------------------------------------------------------------------
    # Server Settings
    # -------------------------------------------------------------------------

    @staticmethod
    def host() -> str:
        """Host to bind the HTTP server to.

        Env: DIFFSCOPE_HOST (default: 127.0.0.1)
        """
        return _get("DIFFSCOPE_HOST", default="127.0.0.1")

    @staticmethod
    def port() -> int:
        """Port to bind the HTTP server to.

        Env: DIFFSCOPE_PORT (default: 4966)
        """
        return _get_int("DIFFSCOPE_PORT", default=4966)

    # -------------------------------------------------------------------------
    # Logging Settings
    # -------------------------------------------------------------------------

    @staticmethod
    def log_level() -> str:
        """Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).

        Env: DIFFSCOPE_LOG_LEVEL (default: INFO)
        """
        return _get("DIFFSCOPE_LOG_LEVEL", default="INFO").upper()

    @staticmethod
    def log_format() -> str:
        """Log format: "console" for dev-friendly, "json" for structured.

        Env: DIFFSCOPE_LOG_FORMAT (default: console)
        """
        return _get("DIFFSCOPE_LOG_FORMAT", default="console").lower()

    # -------------------------------------------------------------------------
    # Diff Settings
    # -------------------------------------------------------------------------

    @staticmethod
    def git_max_buffer_bytes() -> int:
        """Ceiling on stdout collected from a single git invocation.

        Commands producing more output are killed and reported as too large.

        Env: DIFFSCOPE_GIT_MAX_BUFFER_BYTES (default: 10 MiB)
        """
        return _get_int("DIFFSCOPE_GIT_MAX_BUFFER_BYTES", default=10 * 1024 * 1024)

    @staticmethod
    def generated_status_ttl_seconds() -> int:
        """Seconds a generated-file classification stays cached.

        Env: DIFFSCOPE_GENERATED_STATUS_TTL_SECONDS (default: 60)
        """
        return _get_int("DIFFSCOPE_GENERATED_STATUS_TTL_SECONDS", default=60)

    @staticmethod
    def strict_parse() -> bool:
        """Fail the whole parse when a file block has no resolvable path.

        When disabled such blocks are dropped and logged.

        Env: DIFFSCOPE_STRICT_PARSE (default: 0)
        """
        return _get_bool("DIFFSCOPE_STRICT_PARSE", default=False)

    # -------------------------------------------------------------------------
    # Watch Settings
    # -------------------------------------------------------------------------

    @staticmethod
    def watch_enabled() -> bool:
        """Watch the repository and push reload events to connected tabs.

        Env: DIFFSCOPE_WATCH (default: 1)
        """
        return _get_bool("DIFFSCOPE_WATCH", default=True)

    @staticmethod
    def debounce_ms() -> int:
        """Quiet period before a burst of file events triggers a reload.

        Env: DIFFSCOPE_DEBOUNCE_MS (default: 300)
        """
        return _get_int("DIFFSCOPE_DEBOUNCE_MS", default=300)


# Singleton instance for convenient imports
settings = Settings()
