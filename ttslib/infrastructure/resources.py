from __future__ import annotations

import ctypes
import shutil
from pathlib import Path
from typing import BinaryIO

from ttslib.application.errors import ResourceInstallError

Payload = bytes | BinaryIO


def install_payload(module_dir: Path, file_name: str, payload: Payload) -> Path:
    """Write a bundled payload into a module directory and return its path."""

    if payload is None:
        raise ResourceInstallError(f"No payload available for {file_name}.")

    target = Path(module_dir) / file_name
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(payload, (bytes, bytearray)):
            target.write_bytes(payload)
        else:
            with target.open("wb") as out:
                shutil.copyfileobj(payload, out)
    except OSError as exc:
        raise ResourceInstallError(f"Could not write {target}: {exc}") from exc

    return target


def install_native_library(
    module_dir: Path,
    file_name: str,
    payload: Payload,
    *,
    load: bool = True,
) -> Path:
    """Install a native library next to its module and register it with the loader.

    Data files (dictionaries, voice tables) pass ``load=False``.
    """

    target = install_payload(module_dir, file_name, payload)
    if not load:
        return target

    try:
        ctypes.CDLL(str(target))
    except OSError as exc:
        raise ResourceInstallError(f"Could not load native library {target}: {exc}") from exc

    return target
