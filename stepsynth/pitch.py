"""Pitch resolvers: normalized render position in [0, 1) -> frequency in Hz.

A frequency of 0 marks a rest; the renderer emits exact silence there.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeAlias

import numpy as np
from numpy.typing import NDArray

from .errors import InvalidConfigError
from .waves import Phase, RandomSource, Wave, WaveLike, _result, as_wave

PitchLike: TypeAlias = "Pitch | float | Sequence[float] | NDArray[np.floating[Any]] | Callable[[float], float]"


class Pitch(ABC):
    __slots__ = ()

    @abstractmethod
    def resolve(self, position: Phase) -> Phase: ...

    def __call__(self, position: Phase) -> Phase:
        return self.resolve(position)


def _check_frequency(hz: float) -> float:
    if not math.isfinite(hz) or hz < 0:
        raise InvalidConfigError(f"Frequencies must be finite and non-negative, got {hz!r}.")
    return hz


@dataclass(frozen=True, slots=True)
class ConstantPitch(Pitch):
    hz: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "hz", _check_frequency(float(self.hz)))

    def resolve(self, position: Phase) -> Phase:
        return _result(position, np.full(np.shape(position), self.hz, dtype=np.float64))


@dataclass(frozen=True, slots=True)
class FunctionPitch(Pitch):
    fn: Callable[[Any], Any]
    vectorized: bool = False

    def resolve(self, position: Phase) -> Phase:
        if np.ndim(position) == 0:
            return float(self.fn(float(position)))
        if self.vectorized:
            return _result(position, self.fn(position))
        return _result(position, np.vectorize(self.fn, otypes=[np.float64])(position))


@dataclass(frozen=True, slots=True)
class StepPitch(Pitch):
    """A step sequence: [0, 1) is cut into ``len(steps)`` equal bins."""

    steps: tuple[float, ...]
    _table: NDArray[np.float64] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        table = np.asarray(self.steps, dtype=np.float64)
        if table.ndim != 1 or table.size == 0:
            raise InvalidConfigError("A step sequence needs at least one step.")
        if not np.all(np.isfinite(table)) or np.any(table < 0):
            raise InvalidConfigError("Step frequencies must be finite and non-negative.")
        object.__setattr__(self, "steps", tuple(float(step) for step in table))
        object.__setattr__(self, "_table", table)

    def __len__(self) -> int:
        return self._table.size

    def index_of(self, position: Phase) -> int | NDArray[np.int64]:
        """Bin index for a position: floor(position * N) clamped to [0, N - 1]."""
        size = self._table.size
        index = np.clip(np.floor(np.asarray(position, dtype=np.float64) * size), 0, size - 1)
        if np.ndim(position) == 0:
            return int(index)
        return index.astype(np.int64)

    def resolve(self, position: Phase) -> Phase:
        return _result(position, self._table[self.index_of(position)])

    @classmethod
    def random(
        cls,
        choices: Sequence[float],
        length: int,
        *,
        rng: RandomSource | None = None,
        hold: int = 1,
    ) -> "StepPitch":
        """Draw ``length`` steps from ``choices``, repeating each draw ``hold`` times."""
        if not choices:
            raise InvalidConfigError("Random steps need at least one choice.")
        if length <= 0 or hold <= 0:
            raise InvalidConfigError("Random step length and hold must be positive.")
        source: RandomSource = rng if rng is not None else np.random.default_rng()
        pool = np.asarray(choices, dtype=np.float64)
        draws = math.ceil(length / hold)
        picks = np.minimum((np.asarray(source.random(draws)) * pool.size).astype(np.int64), pool.size - 1)
        steps = np.repeat(pool[picks], hold)[:length]
        return cls(tuple(float(step) for step in steps))


@dataclass(frozen=True, slots=True)
class VibratoPitch(Pitch):
    """Bends ``base`` by up to +/- ``octaves`` following ``wave``.

    The wave's natural [0, 1] output maps to a bend of 2 ** (octaves * (2w - 1)),
    so 0.5 leaves the base pitch untouched. Rests in the base stay rests.
    """

    base: Pitch
    wave: Wave
    octaves: float

    def bend(self, position: Phase) -> Phase:
        level = np.asarray(self.wave.evaluate(position), dtype=np.float64)
        return _result(position, np.power(2.0, self.octaves * (2.0 * level - 1.0)))

    def resolve(self, position: Phase) -> Phase:
        base = np.asarray(self.base.resolve(position), dtype=np.float64)
        return _result(position, base * np.asarray(self.bend(position), dtype=np.float64))


def vibrato(base: PitchLike, wave: WaveLike, octaves: float) -> VibratoPitch:
    return VibratoPitch(as_pitch(base), as_wave(wave), float(octaves))


def as_pitch(value: PitchLike) -> Pitch:
    """Coerce a frequency, step sequence or callable into a ``Pitch``."""
    match value:
        case Pitch():
            return value
        case Wave():
            raise InvalidConfigError("Waves are not pitches; wrap them with vibrato().")
        case bool():
            raise InvalidConfigError("A boolean is not a pitch.")
        case int() | float() | np.integer() | np.floating():
            return ConstantPitch(float(value))
        case np.ndarray() | list() | tuple():
            return StepPitch(tuple(np.asarray(value, dtype=np.float64).reshape(-1)))
        case _ if callable(value):
            return FunctionPitch(value)
        case _:
            raise InvalidConfigError(f"Cannot use {type(value).__name__} as a pitch.")
