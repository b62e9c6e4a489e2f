from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any, Callable, TypeAlias, cast

import numpy as np
import soundfile as sf  # type: ignore[import]
from numpy.typing import NDArray

from .errors import InvalidConfigError

SAMPLE_RATE = 44_100

FloatArray: TypeAlias = NDArray[np.float64]
PlaybackArray: TypeAlias = NDArray[np.float32]
AudioNumbers: TypeAlias = NDArray[np.floating[Any]] | Sequence[float]


def ensure_audio_contract(
    audio: AudioNumbers,
    *,
    check_peak: bool = True,
) -> PlaybackArray:
    """Flatten to mono float32, scaling down only when the peak exceeds 1.0."""

    mono: PlaybackArray = np.asarray(audio, dtype=np.float32).reshape(-1)
    if mono.size == 0 or not check_peak:
        return mono
    peak = float(np.max(np.abs(mono)))
    if peak > 1.0:
        mono = mono / peak
    return mono


def write_wav(
    path: str | Path,
    audio: AudioNumbers,
    *,
    sample_rate: int = SAMPLE_RATE,
) -> Path:
    """Write a mono buffer to a float wav file, creating parent directories."""

    match audio:
        case str() | bytes():
            raise InvalidConfigError("audio must be a sequence of samples")
        case _:
            pass
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    write_fn = getattr(sf, "write", None)
    assert callable(write_fn)
    write_audio = cast(Callable[..., None], write_fn)
    write_audio(target, ensure_audio_contract(audio), sample_rate, subtype="FLOAT")
    return target
