from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from ttslib.domain.vo.platform_id import Platform

MODULES_DIR_NAME = "TTSLib"
DEFAULT_LOG_DIR = "logs"
DEFAULT_SAMPLE_RATE = 22_050


def default_modules_root(platform: Platform | None = None) -> Path:
    """Per-user directory that holds one subdirectory per speaker module."""

    platform = platform or Platform.current()
    if platform is Platform.WINDOWS:
        appdata = os.getenv("APPDATA")
        base = Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
    else:
        xdg_data = os.getenv("XDG_DATA_HOME")
        base = Path(xdg_data) if xdg_data else Path.home() / ".local" / "share"
    return base / MODULES_DIR_NAME


@dataclass(frozen=True)
class AppConfig:
    modules_root: Path
    log_dir: Path = Path(DEFAULT_LOG_DIR)
    default_module: str | None = None
    sample_rate: int = DEFAULT_SAMPLE_RATE

    @staticmethod
    def from_env() -> "AppConfig":
        modules_dir = os.getenv("TTSLIB_MODULES_DIR")
        modules_root = Path(modules_dir).expanduser() if modules_dir else default_modules_root()

        log_dir = Path(os.getenv("TTSLIB_LOG_DIR") or DEFAULT_LOG_DIR)
        default_module = os.getenv("TTSLIB_MODULE") or None

        sample_rate_raw = os.getenv("TTSLIB_SAMPLE_RATE")
        sample_rate = DEFAULT_SAMPLE_RATE
        if sample_rate_raw:
            try:
                sample_rate = int(sample_rate_raw)
            except ValueError as exc:
                raise ValueError("TTSLIB_SAMPLE_RATE must be an integer (Hz).") from exc
            if sample_rate <= 0:
                raise ValueError("TTSLIB_SAMPLE_RATE must be positive.")

        return AppConfig(
            modules_root=modules_root,
            log_dir=log_dir,
            default_module=default_module,
            sample_rate=sample_rate,
        )
