from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Literal

from .errors import InvalidConfigError

NoteName = Literal["c", "c#", "d", "d#", "e", "f", "f#", "g", "g#", "a", "a#", "b"]

REFERENCE_HZ = 440.0

# Octave 4, equal temperament around A4 = 440 Hz.
NOTE_FREQS: Mapping[NoteName, float] = MappingProxyType(
    {
        "c": 261.63,
        "c#": 277.18,
        "d": 293.66,
        "d#": 311.13,
        "e": 329.63,
        "f": 349.23,
        "f#": 369.99,
        "g": 392.00,
        "g#": 415.30,
        "a": 440.00,
        "a#": 466.16,
        "b": 493.88,
    }
)


def note_freq(offset: float, reference: float = REFERENCE_HZ) -> float:
    """Frequency ``offset`` semitones away from ``reference``."""
    return reference * 2 ** (offset / 12)


def freq_from_note(root: NoteName, semitones: float = 0, octave: int = 4) -> float:
    """Frequency of a named note, shifted by semitones and octaves."""
    key = root.lower()
    if key not in NOTE_FREQS:
        raise InvalidConfigError(f"Unknown note: {root!r}. Valid: {list(NOTE_FREQS.keys())}")
    base_freq = NOTE_FREQS[key]  # type: ignore[index]
    return base_freq * (2 ** (octave - 4)) * (2 ** (semitones / 12))
