"""Host platform detection."""

from __future__ import annotations

import platform as _platform
import sys
from enum import Enum


class Platform(str, Enum):
    LINUX = "linux"
    WINDOWS = "windows"
    MAC = "mac"
    UNKNOWN = "unknown"

    @classmethod
    def current(cls) -> Platform:
        """Return the platform the packager is running on."""
        if sys.platform.startswith("linux"):
            return cls.LINUX
        if sys.platform in ("win32", "cygwin"):
            return cls.WINDOWS
        if sys.platform == "darwin":
            return cls.MAC
        return cls.UNKNOWN


def is_64bit() -> bool:
    return _platform.machine().lower() in ("amd64", "x86_64", "arm64", "aarch64")
