from __future__ import annotations


class StepSynthError(Exception):
    """Base error for the stepsynth library."""


class InvalidConfigError(StepSynthError):
    """Raised when a channel definition is rejected before rendering."""


class DeviceUnavailableError(StepSynthError):
    """Raised when no audio output device can be opened or it is already held."""


class ResourceUnavailableError(StepSynthError):
    """Raised when the device cannot allocate a playback resource for a channel."""


class PlaybackError(StepSynthError):
    """Raised when playback is requested on a closed session or device."""
