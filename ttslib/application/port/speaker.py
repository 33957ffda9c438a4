from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from ttslib.application.lifecycle import SpeakerState
from ttslib.domain.vo.module_descriptor import ModuleDescriptor
from ttslib.domain.vo.voice import Gender


@runtime_checkable
class Speaker(Protocol):
    """Capability contract every speech-engine adapter implements.

    Every operation is total: failures come back as ``False`` or ``b""`` and
    nothing is raised to the caller. Synthesis and parameter setters require
    the ``READY`` state.
    """

    descriptor: ModuleDescriptor

    @property
    def state(self) -> SpeakerState: ...

    @property
    def is_ready(self) -> bool: ...

    @property
    def supported_languages(self) -> Mapping[str, str]:
        """Unified locale -> engine language code, as of this call."""
        ...

    def initialize(self) -> bool: ...

    def synthesize_bytes(self, text: str) -> bytes:
        """Raw 16-bit little-endian PCM for ``text``."""
        ...

    def synthesize_to_file(self, text: str, directory: str, file_name: str) -> bool: ...

    def synthesize_to_device(self, text: str) -> bool: ...

    def change_language(self, locale: str) -> bool: ...

    def set_volume(self, volume: float) -> bool: ...

    def set_gender(self, gender: Gender) -> bool: ...

    def set_speaking_rate(self, rate: int) -> bool: ...

    def set_pitch(self, pitch: int) -> bool: ...

    def set_age(self, age: int) -> bool: ...

    def set_accent(self, accent: str) -> bool: ...

    def teardown(self) -> bool: ...
