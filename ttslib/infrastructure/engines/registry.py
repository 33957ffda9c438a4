from __future__ import annotations

from functools import partial

from ttslib.application.module_loader import BuiltinModule, SpeakerFactory
from ttslib.infrastructure.audio.player import AudioPlayer
from ttslib.utils.logger import Logger


def builtin_modules(
    *,
    logger: Logger,
    player: AudioPlayer,
    locale: str = "en-US",
) -> dict[str, BuiltinModule]:
    """In-tree adapters by name. Imports happen lazily so a missing engine
    dependency only breaks the module that needs it."""

    def espeak() -> list[SpeakerFactory]:
        from ttslib.infrastructure.engines.espeak import EspeakSpeaker

        return [partial(EspeakSpeaker, locale=locale, player=player, logger=logger)]

    def pyttsx3() -> list[SpeakerFactory]:
        from ttslib.infrastructure.engines.pyttsx3_speaker import Pyttsx3Speaker

        return [partial(Pyttsx3Speaker, logger=logger)]

    return {"espeak": espeak, "pyttsx3": pyttsx3}
