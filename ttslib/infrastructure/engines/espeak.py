from __future__ import annotations

import shutil
import subprocess
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path

import numpy as np
from scipy.io import wavfile

from ttslib.application.errors import EngineError
from ttslib.application.lifecycle import SpeakerLifecycle, SpeakerState, in_range, swap_engine_context, unsupported
from ttslib.audio.samples import to_float_samples, to_pcm16_bytes
from ttslib.domain.vo.locale_tag import normalize_locale
from ttslib.domain.vo.module_descriptor import ModuleDescriptor
from ttslib.domain.vo.platform_id import Platform
from ttslib.domain.vo.voice import Gender, VoiceParameters
from ttslib.infrastructure.audio.player import AudioPlayer
from ttslib.utils.logger import Logger

MIN_RATE_WPM = 80
MAX_RATE_WPM = 450
DEFAULT_SAMPLE_RATE = 22_050

_GENDER_VARIANTS = {Gender.MALE: "m3", Gender.FEMALE: "f3"}


@dataclass(frozen=True)
class EspeakVoice:
    """Everything needed to invoke espeak for one voice."""

    executable: str
    language: str
    rate: int = 175
    amplitude: int = 100
    pitch: int = 50
    variant: str | None = None

    @property
    def voice_name(self) -> str:
        return f"{self.language}+{self.variant}" if self.variant else self.language

    def command(self, *extra: str) -> list[str]:
        return [
            self.executable,
            "-v",
            self.voice_name,
            "-s",
            str(self.rate),
            "-a",
            str(self.amplitude),
            "-p",
            str(self.pitch),
            *extra,
        ]


class EspeakSpeaker:
    """Speaker backed by the eSpeak NG command-line synthesizer.

    The language map is fixed; ``change_language`` only succeeds for the
    locales listed in ``descriptor.supported_languages`` and for which the
    installed espeak actually has a voice.
    """

    descriptor = ModuleDescriptor(
        name="espeak",
        description="eSpeak NG command-line speaker",
        version="1.0.0.0",
        authors="ttslib contributors",
        link="https://github.com/espeak-ng/espeak-ng",
        supported_platforms=frozenset({Platform.LINUX, Platform.MACOS, Platform.WINDOWS}),
        supported_languages={
            "en-US": "en-us",
            "en-GB": "en-gb",
            "es-ES": "es",
            "es-MX": "es-419",
            "de-DE": "de",
            "fr-FR": "fr",
        },
    )

    def __init__(
        self,
        *,
        executable: str | None = None,
        locale: str = "en-US",
        player: AudioPlayer | None = None,
        logger: Logger | None = None,
    ):
        self.executable = executable
        self.locale = normalize_locale(locale)
        self.player = player or AudioPlayer(sample_rate=DEFAULT_SAMPLE_RATE)
        self.logger = logger or Logger()

        self._lifecycle = SpeakerLifecycle()
        self._voice: EspeakVoice | None = None
        self._gender: Gender | None = None
        self._sample_rate = DEFAULT_SAMPLE_RATE

    @property
    def state(self) -> SpeakerState:
        return self._lifecycle.state

    @property
    def is_ready(self) -> bool:
        return self._lifecycle.is_ready and self._voice is not None

    @property
    def supported_languages(self) -> Mapping[str, str]:
        return self.descriptor.supported_languages

    @property
    def parameters(self) -> VoiceParameters:
        if self._voice is None:
            return VoiceParameters(gender=self._gender)
        return VoiceParameters(
            rate=self._voice.rate,
            gender=self._gender,
            volume=self._voice.amplitude / 100.0,
            pitch=self._voice.pitch,
        )

    def initialize(self) -> bool:
        if not self._lifecycle.can_initialize():
            return False

        language = self.descriptor.language_code(self.locale)
        if language is None:
            self.logger.warning(f"espeak: locale {self.locale} is not supported.")
            return False

        executable = self.executable or shutil.which("espeak-ng") or shutil.which("espeak")
        if not executable:
            self.logger.warning("espeak: executable not found. Install with: sudo apt install espeak-ng")
            return False

        voice = EspeakVoice(executable=executable, language=language)
        if not self._voice_available(voice):
            self.logger.warning(f"espeak: no installed voice for {language}.")
            return False

        self._voice = voice
        return self._lifecycle.mark_ready()

    def synthesize_bytes(self, text: str) -> bytes:
        if not self.is_ready:
            return b""

        try:
            with tempfile.TemporaryDirectory(prefix="ttslib-espeak-") as tmp_dir:
                wav_path = Path(tmp_dir) / "speech.wav"
                self._run(self._voice.command("-w", str(wav_path), "--stdin"), text=text)
                sample_rate, data = wavfile.read(wav_path)
        except (EngineError, OSError, ValueError) as exc:
            self.logger.error(f"espeak: synthesis failed: {exc}")
            return b""

        self._sample_rate = int(sample_rate)
        if data.dtype == np.int16:
            return data.astype("<i2").tobytes()
        return to_pcm16_bytes(data)

    def synthesize_to_file(self, text: str, directory: str, file_name: str) -> bool:
        if not self.is_ready:
            return False

        combined_path = Path(directory) / file_name
        try:
            self._run(self._voice.command("-w", str(combined_path), "--stdin"), text=text)
        except (EngineError, OSError, ValueError) as exc:
            self.logger.error(f"espeak: could not write {combined_path}: {exc}")
            return False
        return True

    def synthesize_to_device(self, text: str) -> bool:
        if not self.is_ready:
            return False

        pcm = self.synthesize_bytes(text)
        if not pcm and text.strip():
            return False
        return self.player.play(to_float_samples(pcm), sample_rate=self._sample_rate)

    def change_language(self, locale: str) -> bool:
        if not self.is_ready:
            return False

        try:
            target = normalize_locale(locale)
        except ValueError:
            return False

        language = self.supported_languages.get(target)
        if language is None:
            self.logger.info(f"espeak: locale {target} is not supported.")
            return False

        # Rate, amplitude, pitch and variant carry over to the new voice.
        result = swap_engine_context(
            self._voice,
            lambda: replace(self._voice, language=language),
            verify=self._voice_available,
        )
        if not result:
            self.logger.warning(f"espeak: could not switch to {target}; keeping {self.locale}.")
            return False

        self._voice = result.context
        self.locale = target
        return True

    def set_volume(self, volume: float) -> bool:
        if not self.is_ready or not in_range(volume, 0.0, 1.0):
            return False
        self._voice = replace(self._voice, amplitude=round(volume * 100))
        return True

    def set_gender(self, gender: Gender) -> bool:
        if not self.is_ready or gender not in _GENDER_VARIANTS:
            return False
        self._voice = replace(self._voice, variant=_GENDER_VARIANTS[gender])
        self._gender = gender
        return True

    def set_speaking_rate(self, rate: int) -> bool:
        if not self.is_ready or not in_range(rate, MIN_RATE_WPM, MAX_RATE_WPM):
            return False
        self._voice = replace(self._voice, rate=int(rate))
        return True

    def set_pitch(self, pitch: int) -> bool:
        if not self.is_ready or not in_range(pitch, 0, 99):
            return False
        self._voice = replace(self._voice, pitch=int(pitch))
        return True

    def set_age(self, age: int) -> bool:
        return unsupported("age")

    def set_accent(self, accent: str) -> bool:
        return unsupported("accent")

    def teardown(self) -> bool:
        if not self._lifecycle.mark_torn_down():
            return False
        self._voice = None
        return True

    def _voice_available(self, voice: EspeakVoice) -> bool:
        try:
            completed = subprocess.run(
                [voice.executable, f"--voices={voice.language}"],
                capture_output=True,
                text=True,
            )
        except OSError:
            return False
        if completed.returncode != 0:
            return False

        # Header line first, then "Pty Language Age/Gender VoiceName File ...".
        for line in completed.stdout.splitlines()[1:]:
            columns = line.split()
            if len(columns) > 1 and columns[1] == voice.language:
                return True
        return False

    def _run(self, cmd: list[str], *, text: str) -> None:
        completed = subprocess.run(cmd, input=text, text=True, capture_output=True)
        if completed.returncode != 0:
            raise EngineError(completed.stderr.strip() or f"espeak exited with {completed.returncode}")


speaker_factories = [EspeakSpeaker]
