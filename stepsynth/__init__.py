from __future__ import annotations

from .audio import SAMPLE_RATE, write_wav
from .config import Processing, SessionSettings
from .device import MemoryDevice, OutputDevice, PlaybackResource, open_device
from .errors import (
    DeviceUnavailableError,
    InvalidConfigError,
    PlaybackError,
    ResourceUnavailableError,
    StepSynthError,
)
from .logging_utils import configure_logging as _configure_logging
from .notes import freq_from_note, note_freq
from .pitch import (
    ConstantPitch,
    FunctionPitch,
    Pitch,
    StepPitch,
    VibratoPitch,
    as_pitch,
    vibrato,
)
from .render import render_channel, sample_count
from .session import Channel, ChannelState, Session
from .smoothing import smooth_clicks
from .waves import (
    Constant,
    FunctionWave,
    Hill,
    Noise,
    Saw,
    Sine,
    Square,
    Table,
    Triangle,
    Wave,
    add,
    as_wave,
    flip,
    frequency_scale,
    mix,
    multiply,
    octave,
    reverse,
)

__all__ = [
    "SAMPLE_RATE",
    "Channel",
    "ChannelState",
    "Constant",
    "ConstantPitch",
    "DeviceUnavailableError",
    "FunctionPitch",
    "FunctionWave",
    "Hill",
    "InvalidConfigError",
    "MemoryDevice",
    "Noise",
    "OutputDevice",
    "Pitch",
    "PlaybackError",
    "PlaybackResource",
    "Processing",
    "ResourceUnavailableError",
    "Saw",
    "Session",
    "SessionSettings",
    "Sine",
    "Square",
    "StepPitch",
    "StepSynthError",
    "Table",
    "Triangle",
    "VibratoPitch",
    "Wave",
    "add",
    "as_pitch",
    "as_wave",
    "flip",
    "freq_from_note",
    "frequency_scale",
    "mix",
    "multiply",
    "note_freq",
    "octave",
    "open_device",
    "render_channel",
    "reverse",
    "sample_count",
    "smooth_clicks",
    "vibrato",
    "write_wav",
]

__version__ = "0.1.0"

_configure_logging()
del _configure_logging
