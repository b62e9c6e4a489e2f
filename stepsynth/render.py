from __future__ import annotations

import logging
import math
from datetime import timedelta
from typing import TypeAlias

import numpy as np

from .audio import SAMPLE_RATE, FloatArray
from .errors import InvalidConfigError
from .pitch import PitchLike, as_pitch
from .waves import WaveLike, as_wave

_LOGGER = logging.getLogger("stepsynth.render")

DurationLike: TypeAlias = float | timedelta


def duration_seconds(duration: DurationLike) -> float:
    match duration:
        case timedelta():
            seconds = duration.total_seconds()
        case bool():
            raise InvalidConfigError("A boolean is not a duration.")
        case int() | float() | np.integer() | np.floating():
            seconds = float(duration)
        case _:
            raise InvalidConfigError(f"Cannot use {type(duration).__name__} as a duration.")
    if not math.isfinite(seconds) or seconds <= 0:
        raise InvalidConfigError(f"Durations must be positive, got {seconds!r} seconds.")
    return seconds


def sample_count(duration: DurationLike, sample_rate: int = SAMPLE_RATE) -> int:
    """Number of samples a channel of ``duration`` occupies: round(rate * seconds)."""
    if sample_rate <= 0:
        raise InvalidConfigError(f"Sample rate must be positive, got {sample_rate!r}.")
    total = round(sample_rate * duration_seconds(duration))
    if total <= 0:
        raise InvalidConfigError("Duration is shorter than a single sample.")
    return total


def render_channel(
    wave: WaveLike,
    volume: WaveLike,
    pitch: PitchLike,
    duration: DurationLike,
    *,
    sample_rate: int = SAMPLE_RATE,
) -> FloatArray:
    """Render one channel into a fixed-length, centred [-1, 1] buffer.

    Sample ``t`` sits at position ``n = t / total``. Where the pitch resolves to
    0 the sample is exactly 0; elsewhere it is ``(2 * wave(t * freq / rate) - 1)
    * volume(n)``. Waveform and volume are only evaluated at played samples.
    """
    wave_fn = as_wave(wave)
    volume_fn = as_wave(volume)
    pitch_fn = as_pitch(pitch)
    total = sample_count(duration, sample_rate)

    t = np.arange(total, dtype=np.float64)
    position = t / total
    freq = np.broadcast_to(np.asarray(pitch_fn.resolve(position), dtype=np.float64), position.shape)
    if not np.all(np.isfinite(freq)):
        raise InvalidConfigError("Pitch resolved to a non-finite frequency.")

    samples = np.zeros(total, dtype=np.float64)
    played = freq != 0.0
    if np.any(played):
        phase = t[played] * freq[played] / sample_rate
        level = np.asarray(wave_fn.evaluate(phase), dtype=np.float64) * 2.0 - 1.0
        samples[played] = level * np.asarray(volume_fn.evaluate(position[played]), dtype=np.float64)

    _LOGGER.debug(
        "Rendered %d samples (%d played) with %s",
        total,
        int(np.count_nonzero(played)),
        type(wave_fn).__name__,
    )
    return samples
