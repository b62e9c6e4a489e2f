# pyright: reportUnknownVariableType=false
# pyright: reportUnknownMemberType=false

"""Effects chain that playback backends apply to a channel's Processing.

Order follows a typical voice chain: fade-in, band filter, reverb, gain.
"""

from __future__ import annotations

from functools import lru_cache

import numpy as np
from numpy.typing import NDArray
from scipy.signal import butter, lfilter  # type: ignore[import]

from .audio import SAMPLE_RATE, AudioNumbers, FloatArray
from .config import Processing


def _quantize(value: float, step: float = 0.001) -> float:
    return round(value / step) * step


@lru_cache(maxsize=256)
def _butter_cached(
    kind: str, normalized_cutoff: float
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    coeffs = butter(2, normalized_cutoff, btype=kind, output="ba")
    assert isinstance(coeffs, tuple)
    assert len(coeffs) == 2
    b_raw, a_raw = coeffs
    assert isinstance(b_raw, np.ndarray)
    assert isinstance(a_raw, np.ndarray)
    return b_raw, a_raw


def _filter(signal: FloatArray, kind: str, cutoff: float, sr: int) -> FloatArray:
    nyquist = sr / 2
    normalized = min(max(cutoff / nyquist, 0.001), 0.99)
    b, a = _butter_cached(kind, _quantize(normalized))
    return np.asarray(lfilter(b, a, signal), dtype=np.float64)


def apply_fade_in(signal: FloatArray, seconds: float, sr: int = SAMPLE_RATE) -> FloatArray:
    """Linear ramp from silence over the first ``seconds``."""
    ramp_len = min(int(round(seconds * sr)), signal.size)
    if ramp_len <= 0:
        return signal
    output = signal.copy()
    output[:ramp_len] *= np.linspace(0.0, 1.0, ramp_len, endpoint=False)
    return output


def apply_band(signal: FloatArray, low: float, high: float, sr: int = SAMPLE_RATE) -> FloatArray:
    """High-pass at ``low`` (when above 0) and low-pass at ``high`` (when below Nyquist)."""
    if signal.size == 0:
        return signal
    output = signal
    if low > 0:
        output = _filter(output, "high", low, sr)
    if high < sr / 2:
        output = _filter(output, "low", high, sr)
    return output


def apply_reverb(signal: FloatArray, delay: float, decay: float, sr: int = SAMPLE_RATE) -> FloatArray:
    """Mix in one copy delayed by ``delay`` seconds and scaled by ``decay``.

    The output grows by the delay so the echo tail is not cut off.
    """
    delay_samples = int(round(delay * sr))
    if delay_samples <= 0 or decay <= 0 or signal.size == 0:
        return signal
    output = np.zeros(signal.size + delay_samples, dtype=np.float64)
    output[: signal.size] += signal
    output[delay_samples:] += signal * decay
    return output


def apply_processing(
    buffer: AudioNumbers,
    processing: Processing,
    *,
    sample_rate: int = SAMPLE_RATE,
) -> FloatArray:
    signal = np.asarray(buffer, dtype=np.float64).reshape(-1)
    signal = apply_fade_in(signal, processing.attack, sample_rate)
    signal = apply_band(signal, *processing.filter, sr=sample_rate)
    if processing.reverb_enabled:
        signal = apply_reverb(signal, *processing.reverb, sr=sample_rate)
    return signal * processing.gain
