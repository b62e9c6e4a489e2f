from __future__ import annotations

import logging
import math
import os
from collections.abc import Mapping
from datetime import timedelta
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .audio import SAMPLE_RATE
from .errors import InvalidConfigError

_LOGGER = logging.getLogger("stepsynth.config")

BACKEND_ENV = "STEPSYNTH_BACKEND"
TRANSIENT_CAPACITY_ENV = "STEPSYNTH_TRANSIENT_CAPACITY"

BackendName = Literal["sounddevice", "memory"]


def _seconds(value: object) -> object:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return value


class Processing(BaseModel):
    """Gain, band filter, attack and reverb for one channel.

    Pure data: the playback backend interprets it, the renderer never does.
    ``attack`` and the reverb delay are seconds (``timedelta`` is accepted).
    """

    gain: float = Field(default=1.0, ge=0.0)
    filter: tuple[float, float] = (0.0, 5000.0)
    attack: float = Field(default=0.0, ge=0.0)
    reverb: tuple[float, float] = (0.0, 0.0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("attack", mode="before")
    @classmethod
    def _attack_seconds(cls, value: object) -> object:
        return _seconds(value)

    @field_validator("reverb", mode="before")
    @classmethod
    def _reverb_seconds(cls, value: object) -> object:
        if isinstance(value, (tuple, list)) and len(value) == 2:
            return (_seconds(value[0]), value[1])
        return value

    @model_validator(mode="after")
    def _check_ranges(self) -> "Processing":
        low, high = self.filter
        if not (math.isfinite(low) and math.isfinite(high)) or low < 0 or high <= low:
            raise ValueError(f"filter band must satisfy 0 <= low < high, got {self.filter!r}")
        delay, decay = self.reverb
        if not math.isfinite(delay) or delay < 0:
            raise ValueError(f"reverb delay must be non-negative, got {delay!r}")
        if not 0.0 <= decay <= 1.0:
            raise ValueError(f"reverb decay must be within [0, 1], got {decay!r}")
        return self

    @property
    def reverb_enabled(self) -> bool:
        delay, decay = self.reverb
        return delay > 0 and decay > 0


ProcessingInput = Processing | Mapping[str, Any] | None


def coerce_processing(value: ProcessingInput) -> Processing:
    match value:
        case None:
            return Processing()
        case Processing():
            return value
        case Mapping():
            try:
                return Processing.model_validate(dict(value))
            except ValidationError as exc:
                raise InvalidConfigError(f"Invalid processing parameters: {exc}") from exc
        case _:
            raise InvalidConfigError(f"Cannot use {type(value).__name__} as processing parameters.")


class SessionSettings(BaseModel):
    """Engine-wide settings. The sample rate is fixed."""

    sample_rate: Literal[44100] = SAMPLE_RATE
    backend: BackendName = "sounddevice"
    transient_capacity: int = Field(default=8, ge=1)
    max_resources: int = Field(default=64, ge=1)
    smoothing_pad: int = Field(default=1024, ge=0)
    smoothing_decay: float = Field(default=0.99, gt=0.0, lt=1.0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "SessionSettings":
        env = os.environ if environ is None else environ
        data: dict[str, Any] = {}
        if backend := env.get(BACKEND_ENV):
            data["backend"] = backend.strip().lower()
        if capacity := env.get(TRANSIENT_CAPACITY_ENV):
            data["transient_capacity"] = capacity.strip()
        try:
            settings = cls.model_validate(data)
        except ValidationError as exc:
            raise InvalidConfigError(f"Invalid stepsynth environment settings: {exc}") from exc
        if data:
            _LOGGER.debug("Session settings from environment: %s", data)
        return settings
