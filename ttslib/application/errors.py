from __future__ import annotations


class TTSLibError(RuntimeError):
    """Base class for errors raised inside ttslib (never past a Speaker call)."""


class ModuleLoadError(TTSLibError):
    """Raised when a candidate file cannot be imported as a speaker module."""


class PlatformUnsupportedError(TTSLibError):
    """Raised when a module does not support the running platform."""


class SpeakerInstantiationError(TTSLibError):
    """Raised when a speaker factory fails or returns something else."""


class InitializationError(TTSLibError):
    """Raised when a speaker reports that initialization failed."""


class EngineError(TTSLibError):
    """Raised when the underlying speech engine fails."""


class ResourceInstallError(TTSLibError):
    """Raised when a native payload cannot be written or loaded."""
