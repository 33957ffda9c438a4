from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from numbers import Real
from typing import TYPE_CHECKING, Generic, TypeVar

from ttslib.audio.samples import AudioArray, to_float_samples

if TYPE_CHECKING:
    from ttslib.application.port.speaker import Speaker

ContextT = TypeVar("ContextT")


class SpeakerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    TORN_DOWN = "torn_down"


class SpeakerLifecycle:
    """Tracks ``UNINITIALIZED -> READY -> TORN_DOWN`` for one speaker.

    Adapters hold one of these instead of inheriting lifecycle behavior.
    """

    def __init__(self) -> None:
        self._state = SpeakerState.UNINITIALIZED

    @property
    def state(self) -> SpeakerState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is SpeakerState.READY

    def can_initialize(self) -> bool:
        return self._state is SpeakerState.UNINITIALIZED

    def mark_ready(self) -> bool:
        if self._state is not SpeakerState.UNINITIALIZED:
            return False
        self._state = SpeakerState.READY
        return True

    def mark_torn_down(self) -> bool:
        if self._state is SpeakerState.TORN_DOWN:
            return False
        self._state = SpeakerState.TORN_DOWN
        return True


def unsupported(capability: str) -> bool:
    """Answer for a setter the engine cannot honor.

    Always ``False``; nothing is logged and no state is touched.
    """

    del capability
    return False


def in_range(value: object, low: float, high: float) -> bool:
    """True when ``value`` is a real number (not a bool) within ``[low, high]``."""
    return isinstance(value, Real) and not isinstance(value, bool) and low <= value <= high


def synthesize_floats(speaker: "Speaker", text: str) -> AudioArray:
    """Synthesize ``text`` and normalize it to float32 samples.

    Returns an empty array when the speaker is not ready.
    """

    if not speaker.is_ready:
        return to_float_samples(b"")
    return to_float_samples(speaker.synthesize_bytes(text))


class SwapResult(Generic[ContextT]):
    def __init__(self, context: ContextT, swapped: bool, error: Exception | None = None):
        self.context = context
        self.swapped = swapped
        self.error = error

    def __bool__(self) -> bool:
        return self.swapped


def swap_engine_context(
    current: ContextT,
    build: Callable[[], ContextT],
    *,
    verify: Callable[[ContextT], bool] | None = None,
    dispose: Callable[[ContextT], None] | None = None,
) -> SwapResult[ContextT]:
    """Replace an engine context only once the replacement is known to work.

    The old context is disposed after ``build`` and ``verify`` succeed. On
    failure a half-built replacement is disposed and ``current`` is handed back,
    so the caller never ends up without a working engine.
    """

    try:
        replacement = build()
    except Exception as exc:
        return SwapResult(current, False, exc)

    error: Exception | None = None
    try:
        ok = verify(replacement) if verify is not None else True
    except Exception as exc:
        ok = False
        error = exc

    if not ok:
        if dispose is not None and replacement is not current:
            try:
                dispose(replacement)
            except Exception as exc:
                error = error or exc
        return SwapResult(current, False, error)

    if dispose is not None and replacement is not current:
        try:
            dispose(current)
        except Exception as exc:
            # The replacement works; report the leak but keep going.
            return SwapResult(replacement, True, exc)
    return SwapResult(replacement, True)
