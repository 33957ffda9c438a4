from __future__ import annotations

import numpy as np

AudioArray = np.ndarray

PCM16_SCALE = 32768.0


def to_float_samples(data: bytes) -> AudioArray:
    """Convert 16-bit little-endian signed PCM bytes to float32 samples.

    A trailing odd byte is dropped. Each sample ``s`` becomes ``s / 32768``,
    so -32768 maps to exactly -1.0 and 32767 stays just below 1.0.
    """

    usable = len(data) - (len(data) % 2)
    if usable == 0:
        return np.zeros(0, dtype=np.float32)

    audio_int16 = np.frombuffer(data, dtype="<i2", count=usable // 2)
    return audio_int16.astype(np.float32) / np.float32(PCM16_SCALE)


def to_pcm16_bytes(samples: AudioArray) -> bytes:
    """Encode float samples in [-1.0, 1.0] as 16-bit little-endian PCM."""

    audio_float = np.asarray(samples, dtype=np.float64).reshape(-1)
    if audio_float.size == 0:
        return b""

    scaled = np.clip(np.round(audio_float * PCM16_SCALE), -32768, 32767)
    return scaled.astype("<i2").tobytes()
