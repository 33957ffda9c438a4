from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    import sounddevice as sd


def _stream_errors() -> tuple[type[BaseException], ...]:
    import sounddevice as sd

    return (sd.PortAudioError, OSError, RuntimeError, ValueError)


class AudioPlayer:
    """Blocking playback of float32 samples on the default output device.

    sounddevice (and with it PortAudio) is only imported when something is
    actually played.
    """

    def __init__(self, *, sample_rate: int = 22_050, prime_silence_ms: int = 200, chunk_size: int = 1024):
        self.sample_rate = sample_rate
        self.prime_silence_ms = prime_silence_ms
        self.chunk_size = chunk_size

    def play(self, audio: np.ndarray, *, sample_rate: int | None = None) -> bool:
        """Play ``audio`` to completion. Returns ``False`` if the device fails."""

        audio_float = np.asarray(audio, dtype=np.float32)
        if audio_float.ndim == 1:
            audio_float = audio_float.reshape(-1, 1)
        if audio_float.size == 0:
            return True

        try:
            errors = _stream_errors()
        except OSError:
            # PortAudio itself is missing; there is no device to play on.
            return False

        rate = sample_rate or self.sample_rate
        stream: sd.OutputStream | None = None
        try:
            stream = self._open_stream(rate)
            for i in range(0, len(audio_float), self.chunk_size):
                chunk = audio_float[i : i + self.chunk_size]
                try:
                    stream.write(chunk)
                except errors:
                    # The device may have changed underneath us; reopen once
                    # and retry this chunk.
                    self._close(stream)
                    stream = None
                    stream = self._open_stream(rate)
                    stream.write(chunk)
        except errors:
            return False
        finally:
            if stream is not None:
                self._close(stream)
        return True

    def _default_output_device(self) -> int | None:
        import sounddevice as sd

        device = sd.default.device
        if isinstance(device, (list, tuple)) and len(device) >= 2:
            out_dev = device[1]
            return out_dev if isinstance(out_dev, int) and out_dev >= 0 else None
        return None

    def _open_stream(self, sample_rate: int) -> "sd.OutputStream":
        import sounddevice as sd

        stream = sd.OutputStream(
            samplerate=sample_rate,
            channels=1,
            dtype="float32",
            device=self._default_output_device(),
        )
        stream.start()

        # Prime the device/mixer path with a short silence to avoid
        # startup clicks/pops on some environments.
        prime_frames = int(sample_rate * (self.prime_silence_ms / 1000.0))
        if prime_frames > 0:
            silence = np.zeros((prime_frames, 1), dtype=np.float32)
            try:
                stream.write(silence)
            except _stream_errors():
                # If priming fails, continue; playback may still work.
                pass
        return stream

    def _close(self, stream: "sd.OutputStream") -> None:
        try:
            stream.close()
        except _stream_errors():
            pass
