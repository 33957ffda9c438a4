from __future__ import annotations

import math
import tempfile
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType

import numpy as np
import pyttsx3
from scipy.io import wavfile

from ttslib.application.lifecycle import SpeakerLifecycle, SpeakerState, in_range, swap_engine_context, unsupported
from ttslib.audio.samples import to_pcm16_bytes
from ttslib.domain.vo.locale_tag import normalize_locale
from ttslib.domain.vo.module_descriptor import ModuleDescriptor
from ttslib.domain.vo.platform_id import Platform
from ttslib.domain.vo.voice import Gender, VoiceParameters
from ttslib.utils.logger import Logger

_EMPTY_LANGUAGES: Mapping[str, str] = MappingProxyType({})


class Pyttsx3Speaker:
    """Speaker backed by the platform speech service through pyttsx3.

    SAPI5 on Windows, NSSpeechSynthesizer on macOS and eSpeak on Linux. The
    language map is whatever voices are installed when it is read.
    """

    descriptor = ModuleDescriptor(
        name="pyttsx3",
        description="Platform speech service speaker (pyttsx3)",
        version="1.0.0.0",
        authors="ttslib contributors",
        link="https://github.com/nateshmbhat/pyttsx3",
        supported_platforms=frozenset({Platform.WINDOWS, Platform.MACOS, Platform.LINUX}),
    )

    def __init__(self, *, driver_name: str | None = None, logger: Logger | None = None):
        self.driver_name = driver_name
        self.logger = logger or Logger()

        self._lifecycle = SpeakerLifecycle()
        self._engine = None
        self._parameters = VoiceParameters()

    @property
    def state(self) -> SpeakerState:
        return self._lifecycle.state

    @property
    def is_ready(self) -> bool:
        return self._lifecycle.is_ready and self._engine is not None

    @property
    def parameters(self) -> VoiceParameters:
        return self._parameters

    @property
    def supported_languages(self) -> Mapping[str, str]:
        if self._engine is None:
            return _EMPTY_LANGUAGES

        languages: dict[str, str] = {}
        for voice in self._voices():
            for locale in _voice_locales(voice):
                # First installed voice for a locale wins.
                languages.setdefault(locale, voice.id)
        return MappingProxyType(languages)

    def initialize(self) -> bool:
        if not self._lifecycle.can_initialize():
            return False

        try:
            engine = pyttsx3.init(self.driver_name)
        except Exception as exc:
            self.logger.warning(f"pyttsx3: could not start speech engine: {exc}")
            return False

        self._engine = engine
        self._parameters = VoiceParameters(
            rate=engine.getProperty("rate"),
            volume=engine.getProperty("volume"),
        )
        return self._lifecycle.mark_ready()

    def synthesize_bytes(self, text: str) -> bytes:
        if not self.is_ready:
            return b""

        try:
            with tempfile.TemporaryDirectory(prefix="ttslib-pyttsx3-") as tmp_dir:
                wav_path = Path(tmp_dir) / "speech.wav"
                self._engine.save_to_file(text, str(wav_path))
                self._engine.runAndWait()
                _, data = wavfile.read(wav_path)
        except Exception as exc:
            self.logger.error(f"pyttsx3: synthesis failed: {exc}")
            return b""

        if data.ndim > 1:
            data = data[:, 0]
        if data.dtype == np.int16:
            return data.astype("<i2").tobytes()
        return to_pcm16_bytes(data)

    def synthesize_to_file(self, text: str, directory: str, file_name: str) -> bool:
        if not self.is_ready:
            return False

        combined_path = Path(directory) / file_name
        try:
            self._engine.save_to_file(text, str(combined_path))
            self._engine.runAndWait()
        except Exception as exc:
            self.logger.error(f"pyttsx3: could not write {combined_path}: {exc}")
            return False
        return True

    def synthesize_to_device(self, text: str) -> bool:
        if not self.is_ready:
            return False

        try:
            self._engine.say(text)
            self._engine.runAndWait()
        except Exception as exc:
            self.logger.error(f"pyttsx3: playback failed: {exc}")
            return False
        return True

    def change_language(self, locale: str) -> bool:
        if not self.is_ready:
            return False

        try:
            target = normalize_locale(locale)
        except ValueError:
            return False

        voice_id = self.supported_languages.get(target)
        if voice_id is None:
            self.logger.info(f"pyttsx3: no installed voice for {target}.")
            return False

        previous = self._engine.getProperty("voice")
        result = swap_engine_context(previous, lambda: voice_id, verify=self._select_voice)
        if not result:
            self.logger.warning(f"pyttsx3: could not switch to {target}: {result.error}")
            self._select_voice(previous)
            return False

        # Some drivers reset rate and volume when the voice changes.
        self._restore_parameters()
        return True

    def set_volume(self, volume: float) -> bool:
        if not self.is_ready or not in_range(volume, 0.0, 1.0):
            return False
        if not self._set_property("volume", float(volume)):
            return False
        self._parameters = self._parameters.replace(volume=float(volume))
        return True

    def set_gender(self, gender: Gender) -> bool:
        if not self.is_ready:
            return False

        for voice in self._voices():
            if _voice_gender(voice) is gender and self._select_voice(voice.id):
                self._parameters = self._parameters.replace(gender=gender)
                self._restore_parameters()
                return True
        return False

    def set_speaking_rate(self, rate: int) -> bool:
        if not self.is_ready or not in_range(rate, 1, math.inf):
            return False
        if not self._set_property("rate", int(rate)):
            return False
        self._parameters = self._parameters.replace(rate=int(rate))
        return True

    def set_pitch(self, pitch: int) -> bool:
        return unsupported("pitch")

    def set_age(self, age: int) -> bool:
        return unsupported("age")

    def set_accent(self, accent: str) -> bool:
        return unsupported("accent")

    def teardown(self) -> bool:
        if not self._lifecycle.mark_torn_down():
            return False

        engine, self._engine = self._engine, None
        if engine is not None:
            try:
                engine.stop()
            except Exception as exc:
                self.logger.warning(f"pyttsx3: error while stopping engine: {exc}")
        return True

    def _voices(self) -> list:
        try:
            return list(self._engine.getProperty("voices") or [])
        except Exception as exc:
            self.logger.warning(f"pyttsx3: could not list voices: {exc}")
            return []

    def _select_voice(self, voice_id: str) -> bool:
        if not self._set_property("voice", voice_id):
            return False
        return self._engine.getProperty("voice") == voice_id

    def _set_property(self, name: str, value) -> bool:
        try:
            self._engine.setProperty(name, value)
        except Exception as exc:
            self.logger.warning(f"pyttsx3: could not set {name}: {exc}")
            return False
        return True

    def _restore_parameters(self) -> None:
        if self._parameters.rate is not None:
            self._set_property("rate", self._parameters.rate)
        if self._parameters.volume is not None:
            self._set_property("volume", self._parameters.volume)


def _voice_locales(voice) -> list[str]:
    locales: list[str] = []
    for language in getattr(voice, "languages", None) or []:
        if isinstance(language, bytes):
            # The espeak driver reports b"\x05en-us": a priority byte, then the tag.
            language = language[1:].decode("utf-8", errors="ignore")
        try:
            locales.append(normalize_locale(str(language)))
        except ValueError:
            continue
    return locales


def _voice_gender(voice) -> Gender | None:
    gender = str(getattr(voice, "gender", None) or "").lower()
    if gender == "male":
        return Gender.MALE
    if gender == "female":
        return Gender.FEMALE
    return None


speaker_factories = [Pyttsx3Speaker]
