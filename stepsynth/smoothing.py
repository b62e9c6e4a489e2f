"""Click removal for rendered channel buffers.

Hard cuts between a played sample and exact silence click audibly. Each pass
pads the buffer with zeros, fills every exact-zero sample with 99% of the
sample before it (so silence becomes an exponential decay), and reverses the
buffer. Two passes smooth trailing edges first and leading edges second, and
the second reversal restores the original order. Non-zero samples are never
touched.
"""

from __future__ import annotations

import numpy as np

from .audio import AudioNumbers, FloatArray
from .errors import InvalidConfigError

SMOOTHING_PAD = 1024
SMOOTHING_DECAY = 0.99


def _fill_zeros(samples: FloatArray, decay: float) -> FloatArray:
    # Each run of exact zeros after a non-zero value x is rebuilt with a
    # running product over [x, decay, decay, ...], the same left-to-right
    # multiplications as a sample-by-sample "zero -> decay * previous" scan.
    filled = samples.copy()
    silent = np.concatenate(([False], samples == 0.0, [False])).astype(np.int8)
    edges = np.diff(silent)
    for start, stop in zip(np.flatnonzero(edges == 1), np.flatnonzero(edges == -1)):
        if start == 0:
            continue
        chain = np.full(stop - start + 1, decay, dtype=np.float64)
        chain[0] = samples[start - 1]
        filled[start:stop] = np.multiply.accumulate(chain)[1:]
    return filled


def smooth_pass(
    buffer: AudioNumbers,
    *,
    pad: int = SMOOTHING_PAD,
    decay: float = SMOOTHING_DECAY,
) -> FloatArray:
    """Pad with ``pad`` zeros, fill exact zeros with decayed predecessors, reverse."""
    samples = np.asarray(buffer, dtype=np.float64).reshape(-1)
    padded = np.concatenate((samples, np.zeros(pad, dtype=np.float64)))
    return _fill_zeros(padded, decay)[::-1].copy()


def smooth_clicks(
    buffer: AudioNumbers,
    *,
    pad: int = SMOOTHING_PAD,
    decay: float = SMOOTHING_DECAY,
) -> FloatArray:
    """Run both smoothing passes and strip the padding, keeping the input length."""
    if pad < 0:
        raise InvalidConfigError(f"Smoothing pad must be non-negative, got {pad!r}.")
    if not 0.0 < decay < 1.0:
        raise InvalidConfigError(f"Smoothing decay must be in (0, 1), got {decay!r}.")
    samples = np.asarray(buffer, dtype=np.float64).reshape(-1)
    smoothed = samples
    for _ in range(2):
        smoothed = smooth_pass(smoothed, pad=pad, decay=decay)
    # Layout is now [second pad, samples, first pad].
    return smoothed[pad : pad + samples.size].copy()
