from __future__ import annotations

import sys
from enum import Enum


class Platform(str, Enum):
    WINDOWS = "windows"
    LINUX = "linux"
    MACOS = "macos"
    OTHER = "other"

    @staticmethod
    def current() -> "Platform":
        return Platform.from_sys_platform(sys.platform)

    @staticmethod
    def from_sys_platform(value: str) -> "Platform":
        if value.startswith("win") or value == "cygwin":
            return Platform.WINDOWS
        if value.startswith("linux"):
            return Platform.LINUX
        if value == "darwin":
            return Platform.MACOS
        return Platform.OTHER
