"""
Waveform evaluators and the combinators that compose them.

Every evaluator maps a phase (time scaled by frequency, unitless) to an
amplitude. All primitives share one convention: they are unipolar, spanning
[0, 1] with 0.5 as the resting centre. The renderer maps that into a centred
[-1, 1] signal, so volume envelopes, mix ratios and pitch bends can all reuse
the same evaluators without further rescaling.

Evaluators accept a float or a numpy array of phases and return the same shape.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Protocol, TypeAlias

import numpy as np
from numpy.typing import NDArray

from .errors import InvalidConfigError

Phase: TypeAlias = float | NDArray[np.floating[Any]]
WaveLike: TypeAlias = "Wave | float | Sequence[float] | NDArray[np.floating[Any]] | Callable[[float], float]"


class RandomSource(Protocol):
    """Anything shaped like ``numpy.random.Generator.random``."""

    def random(self, size: Any = None) -> Any: ...


def _result(phase: Phase, values: Any) -> Phase:
    if np.ndim(phase) == 0:
        return float(values)
    return np.asarray(values, dtype=np.float64)


def _fraction(phase: Phase) -> NDArray[np.float64]:
    # np.mod follows the divisor's sign, so negative phases land in [0, 1],
    # but a tiny negative phase rounds up to exactly 1.0; fold that back to 0.
    frac = np.mod(np.asarray(phase, dtype=np.float64), 1.0)
    return np.where(frac >= 1.0, 0.0, frac)


class Wave(ABC):
    """A pure phase -> amplitude mapping."""

    __slots__ = ()

    @abstractmethod
    def evaluate(self, phase: Phase) -> Phase: ...

    def __call__(self, phase: Phase) -> Phase:
        return self.evaluate(phase)

    def scale(self, factor: float) -> Wave:
        return frequency_scale(self, factor)

    def octave(self, shift: float) -> Wave:
        return octave(self, shift)

    def mix(self, other: WaveLike, ratio: WaveLike) -> Wave:
        return mix(ratio, self, other)

    def reverse(self) -> Wave:
        return Reverse(self)

    def flip(self) -> Wave:
        return Flip(self)

    def __add__(self, other: WaveLike) -> Wave:
        return Add(self, as_wave(other))

    def __radd__(self, other: WaveLike) -> Wave:
        return Add(as_wave(other), self)

    def __mul__(self, other: WaveLike) -> Wave:
        return Multiply(self, as_wave(other))

    def __rmul__(self, other: WaveLike) -> Wave:
        return Multiply(as_wave(other), self)


# =============================================================================
# PRIMITIVES
# =============================================================================


@dataclass(frozen=True, slots=True)
class Sine(Wave):
    def evaluate(self, phase: Phase) -> Phase:
        return _result(phase, 0.5 + 0.5 * np.sin(2.0 * np.pi * _fraction(phase)))


@dataclass(frozen=True, slots=True)
class Square(Wave):
    def evaluate(self, phase: Phase) -> Phase:
        return _result(phase, np.where(_fraction(phase) < 0.5, 1.0, 0.0))


@dataclass(frozen=True, slots=True)
class Saw(Wave):
    def evaluate(self, phase: Phase) -> Phase:
        return _result(phase, _fraction(phase))


@dataclass(frozen=True, slots=True)
class Triangle(Wave):
    def evaluate(self, phase: Phase) -> Phase:
        return _result(phase, 1.0 - np.abs(2.0 * _fraction(phase) - 1.0))


@dataclass(frozen=True, slots=True)
class Hill(Wave):
    """One half-sine bump per cycle: 0 at the cycle edges, 1 in the middle."""

    def evaluate(self, phase: Phase) -> Phase:
        return _result(phase, np.sin(np.pi * _fraction(phase)))


@dataclass(frozen=True, slots=True)
class Noise(Wave):
    """Independent uniform samples in [0, 1); the phase is ignored."""

    rng: RandomSource = field(default_factory=np.random.default_rng, compare=False, repr=False)

    def evaluate(self, phase: Phase) -> Phase:
        shape = np.shape(phase)
        if not shape:
            return float(self.rng.random())
        return np.asarray(self.rng.random(shape), dtype=np.float64)


# =============================================================================
# SUBSTITUTES: constant, lookup table, plain function
# =============================================================================


@dataclass(frozen=True, slots=True)
class Constant(Wave):
    value: float

    def evaluate(self, phase: Phase) -> Phase:
        return _result(phase, np.full(np.shape(phase), self.value, dtype=np.float64))


@dataclass(frozen=True, slots=True)
class Table(Wave):
    """A precomputed single cycle, indexed by the fractional part of the phase."""

    values: tuple[float, ...]
    _table: NDArray[np.float64] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        table = np.asarray(self.values, dtype=np.float64)
        if table.ndim != 1 or table.size == 0:
            raise InvalidConfigError("A wave table needs a non-empty, one-dimensional sequence.")
        object.__setattr__(self, "values", tuple(float(value) for value in table))
        object.__setattr__(self, "_table", table)

    def evaluate(self, phase: Phase) -> Phase:
        size = self._table.size
        index = np.minimum(np.floor(_fraction(phase) * size).astype(np.int64), size - 1)
        return _result(phase, self._table[index])


@dataclass(frozen=True, slots=True)
class FunctionWave(Wave):
    """Wraps a callable. Non-vectorized callables are applied element by element."""

    fn: Callable[[Any], Any]
    vectorized: bool = False

    def evaluate(self, phase: Phase) -> Phase:
        if np.ndim(phase) == 0:
            return float(self.fn(float(phase)))
        if self.vectorized:
            return _result(phase, self.fn(phase))
        return _result(phase, np.vectorize(self.fn, otypes=[np.float64])(phase))


# =============================================================================
# COMBINATORS
# =============================================================================


@dataclass(frozen=True, slots=True)
class FrequencyScale(Wave):
    wave: Wave
    factor: float

    def evaluate(self, phase: Phase) -> Phase:
        return self.wave.evaluate(phase * self.factor)


@dataclass(frozen=True, slots=True)
class Mix(Wave):
    """Crossfade: ``a`` where the ratio is 1, ``b`` where it is 0."""

    ratio: Wave
    a: Wave
    b: Wave

    def evaluate(self, phase: Phase) -> Phase:
        r = np.clip(np.asarray(self.ratio.evaluate(phase), dtype=np.float64), 0.0, 1.0)
        a = np.asarray(self.a.evaluate(phase), dtype=np.float64)
        b = np.asarray(self.b.evaluate(phase), dtype=np.float64)
        return _result(phase, a * r + b * (1.0 - r))


@dataclass(frozen=True, slots=True)
class Add(Wave):
    """Sum of two waves. Not clipped."""

    a: Wave
    b: Wave

    def evaluate(self, phase: Phase) -> Phase:
        return _result(phase, np.add(self.a.evaluate(phase), self.b.evaluate(phase)))


@dataclass(frozen=True, slots=True)
class Multiply(Wave):
    a: Wave
    b: Wave

    def evaluate(self, phase: Phase) -> Phase:
        return _result(phase, np.multiply(self.a.evaluate(phase), self.b.evaluate(phase)))


@dataclass(frozen=True, slots=True)
class Reverse(Wave):
    wave: Wave

    def evaluate(self, phase: Phase) -> Phase:
        return self.wave.evaluate(1.0 - phase)


@dataclass(frozen=True, slots=True)
class Flip(Wave):
    wave: Wave

    def evaluate(self, phase: Phase) -> Phase:
        return _result(phase, 1.0 - np.asarray(self.wave.evaluate(phase), dtype=np.float64))


def as_wave(value: WaveLike) -> Wave:
    """Coerce a number, sample sequence or callable into a ``Wave``."""
    match value:
        case Wave():
            return value
        case bool():
            raise InvalidConfigError("A boolean is not a waveform.")
        case int() | float() | np.integer() | np.floating():
            return Constant(float(value))
        case np.ndarray() | list() | tuple():
            return Table(tuple(np.asarray(value, dtype=np.float64).reshape(-1)))
        case _ if callable(value):
            return FunctionWave(value)
        case _:
            raise InvalidConfigError(f"Cannot use {type(value).__name__} as a waveform.")


def frequency_scale(wave: WaveLike, factor: float) -> Wave:
    return FrequencyScale(as_wave(wave), float(factor))


def octave(wave: WaveLike, shift: float) -> Wave:
    return frequency_scale(wave, 2.0**shift)


def mix(ratio: WaveLike, a: WaveLike, b: WaveLike) -> Wave:
    return Mix(as_wave(ratio), as_wave(a), as_wave(b))


def add(a: WaveLike, b: WaveLike) -> Wave:
    return Add(as_wave(a), as_wave(b))


def multiply(a: WaveLike, b: WaveLike) -> Wave:
    return Multiply(as_wave(a), as_wave(b))


def reverse(wave: WaveLike) -> Wave:
    return Reverse(as_wave(wave))


def flip(wave: WaveLike) -> Wave:
    return Flip(as_wave(wave))


# Named primitives, looked up by the CLI.
PRIMITIVES: Mapping[str, Callable[[], Wave]] = MappingProxyType(
    {
        "sine": Sine,
        "square": Square,
        "saw": Saw,
        "triangle": Triangle,
        "hill": Hill,
        "noise": Noise,
    }
)
