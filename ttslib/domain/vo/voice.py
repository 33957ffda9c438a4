from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


@dataclass(frozen=True)
class VoiceParameters:
    rate: int | None = None
    gender: Gender | None = None
    volume: float | None = None
    pitch: int | None = None
    age: int | None = None
    accent: str | None = None

    def replace(self, **changes) -> "VoiceParameters":
        return replace(self, **changes)
