"""Packager configuration, driven by the environment.

Reads from a ``.env`` file and ``NATIVEPACK_*`` environment variables.  The
values here are process-wide defaults; per-build settings live in the
parameter store and always win over them.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class PackagerSettings(BaseSettings):
    """Process-wide packager settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export NATIVEPACK_LOG_LEVEL=DEBUG
        export NATIVEPACK_RESOURCE_DIR=packaging/overrides
        export NATIVEPACK_TOOL_TIMEOUT_SECONDS=600

    Or via .env file::

        NATIVEPACK_VERBOSE=true
        NATIVEPACK_BUILD_ROOT=/tmp/nativepack-work
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="NATIVEPACK_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"
    verbose: bool = False
    # Keeps working directories like ``verbose`` without the extra logging
    debug: bool = False

    # Working locations
    build_root: Path | None = None
    resource_dir: Path | None = None

    # External tools
    tool_timeout_seconds: float | None = None  # None blocks until exit
    echo_tool_output: bool = False


# Module-level singleton: import as `from nativepack.config import settings`
settings = PackagerSettings()
