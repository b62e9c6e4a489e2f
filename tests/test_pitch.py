from __future__ import annotations

import math

import numpy as np
import pytest

from stepsynth.errors import InvalidConfigError
from stepsynth.pitch import (
    ConstantPitch,
    FunctionPitch,
    StepPitch,
    VibratoPitch,
    as_pitch,
    vibrato,
)
from stepsynth.waves import Constant, Sine


class TestStepPitch:
    def test_bins_are_equal_width(self) -> None:
        steps = StepPitch((100.0, 200.0, 300.0, 400.0))
        assert steps.index_of(0.0) == 0
        assert steps.index_of(0.2499) == 0
        assert steps.index_of(0.25) == 1
        assert steps.index_of(0.5) == 2
        assert steps.index_of(0.999) == 3
        assert steps(0.6) == 300.0

    def test_index_is_clamped(self) -> None:
        steps = StepPitch((1.0, 2.0, 3.0))
        assert steps.index_of(1.0) == 2
        assert steps.index_of(-0.5) == 0

    def test_index_matches_floor_for_any_position(self) -> None:
        rng = np.random.default_rng(3)
        for size in (1, 2, 5, 16):
            steps = StepPitch(tuple(float(i + 1) for i in range(size)))
            positions = rng.uniform(-0.2, 1.2, 200)
            expected = np.clip(np.floor(positions * size), 0, size - 1).astype(np.int64)
            assert np.array_equal(steps.index_of(positions), expected)
            assert np.array_equal(steps(positions), expected + 1.0)

    def test_len(self) -> None:
        assert len(StepPitch((1.0, 0.0, 1.0))) == 3

    @pytest.mark.parametrize("steps", [(), (440.0, -1.0), (math.inf,), (math.nan, 1.0)])
    def test_rejects_bad_sequences(self, steps: tuple[float, ...]) -> None:
        with pytest.raises(InvalidConfigError):
            StepPitch(steps)


class TestRandomSteps:
    def test_seeded_draws_repeat(self) -> None:
        first = StepPitch.random([220.0, 330.0, 440.0], 16, rng=np.random.default_rng(5))
        second = StepPitch.random([220.0, 330.0, 440.0], 16, rng=np.random.default_rng(5))
        assert first == second
        assert len(first) == 16
        assert set(first.steps) <= {220.0, 330.0, 440.0}

    def test_hold_repeats_each_draw(self) -> None:
        steps = StepPitch.random([220.0, 330.0, 440.0, 550.0], 10, rng=np.random.default_rng(0), hold=4)
        assert len(steps) == 10
        assert len(set(steps.steps[0:4])) == 1
        assert len(set(steps.steps[4:8])) == 1
        assert len(set(steps.steps[8:10])) == 1

    def test_rejects_empty_choices(self) -> None:
        with pytest.raises(InvalidConfigError):
            StepPitch.random([], 4)
        with pytest.raises(InvalidConfigError):
            StepPitch.random([440.0], 0)


class TestVibrato:
    def test_centre_leaves_pitch_alone(self) -> None:
        pitch = VibratoPitch(ConstantPitch(440.0), Constant(0.5), 1.0)
        assert pitch(0.3) == pytest.approx(440.0)
        assert pitch.bend(0.3) == pytest.approx(1.0)

    def test_extremes_bend_by_range(self) -> None:
        assert VibratoPitch(ConstantPitch(440.0), Constant(1.0), 1.0)(0.1) == pytest.approx(880.0)
        assert VibratoPitch(ConstantPitch(440.0), Constant(0.0), 1.0)(0.1) == pytest.approx(220.0)
        assert VibratoPitch(ConstantPitch(440.0), Constant(1.0), 0.5)(0.1) == pytest.approx(
            440.0 * math.sqrt(2.0)
        )

    def test_rests_stay_silent(self) -> None:
        pitch = vibrato([440.0, 0.0], Sine(), 2.0)
        positions = np.linspace(0.5, 0.99, 50)
        assert np.all(pitch(positions) == 0.0)

    def test_sine_vibrato_stays_within_range(self) -> None:
        pitch = vibrato(440.0, Sine().scale(6.0), 1 / 12)
        values = pitch(np.linspace(0.0, 0.999, 500))
        assert float(values.min()) >= 440.0 * 2 ** (-1 / 12) - 1e-9
        assert float(values.max()) <= 440.0 * 2 ** (1 / 12) + 1e-9


def test_function_pitch_on_arrays() -> None:
    pitch = FunctionPitch(lambda p: 0.0 if p < 0.5 else 440.0)
    assert np.array_equal(pitch(np.array([0.1, 0.7])), np.array([0.0, 440.0]))
    assert pitch(0.7) == 440.0


def test_constant_pitch_validates() -> None:
    assert ConstantPitch(440.0)(np.zeros(3)).tolist() == [440.0, 440.0, 440.0]
    with pytest.raises(InvalidConfigError):
        ConstantPitch(-1.0)


def test_as_pitch_coercions() -> None:
    assert isinstance(as_pitch(440.0), ConstantPitch)
    assert isinstance(as_pitch(440), ConstantPitch)
    assert isinstance(as_pitch([440.0, 0.0]), StepPitch)
    assert isinstance(as_pitch(lambda p: 440.0), FunctionPitch)
    with pytest.raises(InvalidConfigError):
        as_pitch(Sine())
    with pytest.raises(InvalidConfigError):
        as_pitch([])
    with pytest.raises(InvalidConfigError):
        as_pitch("a4")  # type: ignore[arg-type]
