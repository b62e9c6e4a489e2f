from __future__ import annotations

import logging
import threading
from collections import deque
from pathlib import Path
from typing import Literal

import numpy as np

from .audio import FloatArray, PlaybackArray, ensure_audio_contract, write_wav
from .config import BackendName, Processing, ProcessingInput, SessionSettings, coerce_processing
from .device import OutputDevice, PlaybackResource, open_device
from .effects import apply_processing
from .errors import DeviceUnavailableError, InvalidConfigError, PlaybackError
from .pitch import PitchLike, as_pitch
from .render import DurationLike, render_channel, sample_count
from .smoothing import smooth_clicks
from .waves import WaveLike, as_wave

_LOGGER = logging.getLogger("stepsynth.session")

ChannelState = Literal["created", "queued", "finished", "evicted"]


class Channel:
    """One rendered voice: a fixed buffer, its processing and its playback resource."""

    def __init__(
        self,
        samples: FloatArray,
        processing: Processing,
        resource: PlaybackResource,
        *,
        transient: bool = False,
    ) -> None:
        samples.setflags(write=False)
        self._samples = samples
        self.processing = processing
        self.resource = resource
        self.transient = transient
        self._state: ChannelState = "created"

    @property
    def samples(self) -> FloatArray:
        return self._samples

    @property
    def state(self) -> ChannelState:
        return self._state

    def __len__(self) -> int:
        return self._samples.size

    def __repr__(self) -> str:
        kind = "transient" if self.transient else "channel"
        return f"<{kind} samples={self._samples.size} state={self._state}>"

    def enqueue(self, repeat_count: int = 1) -> None:
        for _ in range(repeat_count):
            self.resource.enqueue(self._samples, self.processing)

    def prepare(self, repeat_count: int = 1) -> tuple[PlaybackResource, list[PlaybackArray]]:
        """Processed buffers for one ``OutputDevice.start_together`` batch."""
        processed = self.resource.prepare(self._samples, self.processing)
        return self.resource, [processed] * repeat_count

    def mark_queued(self) -> None:
        self._state = "queued"

    def play(self) -> None:
        self.resource.play()
        self._state = "queued"

    def wait(self) -> None:
        self.resource.block_until_drained()
        if self._state == "queued":
            self._state = "finished"

    def stop(self) -> None:
        self.resource.stop()
        if self._state == "queued":
            self._state = "finished"

    def evict(self) -> None:
        was_playing = self.resource.is_active
        self.resource.release()
        if self._state == "queued" and was_playing:
            self._state = "evicted"
        elif self._state == "queued":
            self._state = "finished"


class Session:
    """Owns the output device and an ordered set of rendered channels.

    Channels added with ``add_channel`` play together on ``start``. Transient
    channels from ``play_transient`` start immediately and live in a bounded
    queue; overflowing it stops the oldest one.
    """

    def __init__(self, device: OutputDevice, *, settings: SessionSettings | None = None) -> None:
        resolved = settings or SessionSettings()
        if not device.exclusive:
            raise DeviceUnavailableError(
                "Sessions need the exclusive device handle returned by open_device(); "
                "use Session.create() to open one."
            )
        if device.sample_rate != resolved.sample_rate:
            raise InvalidConfigError(
                f"Device runs at {device.sample_rate} Hz but the session expects "
                f"{resolved.sample_rate} Hz."
            )
        self._device = device
        self.settings = resolved
        self._channels: list[Channel] = []
        self._transients: deque[Channel] = deque()
        self._transient_lock = threading.Lock()
        self._closed = False

    @classmethod
    def create(
        cls,
        settings: SessionSettings | None = None,
        *,
        backend: BackendName | None = None,
    ) -> "Session":
        """Open the output device and wrap it in a new session."""
        resolved = settings or SessionSettings.from_env()
        device = open_device(
            backend or resolved.backend,
            sample_rate=resolved.sample_rate,
            max_resources=resolved.max_resources,
        )
        try:
            return cls(device, settings=resolved)
        except BaseException:
            device.close()
            raise

    @property
    def device(self) -> OutputDevice:
        return self._device

    @property
    def sample_rate(self) -> int:
        return self.settings.sample_rate

    @property
    def channels(self) -> tuple[Channel, ...]:
        return tuple(self._channels)

    @property
    def transients(self) -> tuple[Channel, ...]:
        with self._transient_lock:
            return tuple(self._transients)

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise PlaybackError("Session is closed.")

    def _build_channel(
        self,
        wave: WaveLike,
        volume: WaveLike,
        processing: ProcessingInput,
        pitch: PitchLike,
        duration: DurationLike,
        *,
        transient: bool,
    ) -> Channel:
        self._ensure_open()
        wave_fn = as_wave(wave)
        volume_fn = as_wave(volume)
        pitch_fn = as_pitch(pitch)
        params = coerce_processing(processing)
        sample_count(duration, self.sample_rate)

        resource = self._device.create_resource()
        try:
            raw = render_channel(wave_fn, volume_fn, pitch_fn, duration, sample_rate=self.sample_rate)
            samples = smooth_clicks(
                raw,
                pad=self.settings.smoothing_pad,
                decay=self.settings.smoothing_decay,
            )
        except BaseException:
            resource.release()
            raise
        return Channel(samples, params, resource, transient=transient)

    def add_channel(
        self,
        wave: WaveLike,
        volume: WaveLike,
        processing: ProcessingInput,
        pitch: PitchLike,
        duration: DurationLike,
    ) -> Channel:
        """Render, smooth and store a channel for the next ``start``."""
        channel = self._build_channel(wave, volume, processing, pitch, duration, transient=False)
        self._channels.append(channel)
        _LOGGER.debug("Added channel %d (%d samples)", len(self._channels), len(channel))
        return channel

    def start(self, repeat_count: int = 1) -> None:
        """Queue every channel ``repeat_count`` times, then start them all at once.

        Nothing is queued if any channel cannot play.
        """
        self._ensure_open()
        if isinstance(repeat_count, bool) or repeat_count < 1:
            raise InvalidConfigError(f"repeat_count must be a positive integer, got {repeat_count!r}.")
        batches = [channel.prepare(repeat_count) for channel in self._channels]
        self._device.start_together(batches)
        for channel in self._channels:
            channel.mark_queued()
        _LOGGER.info("Started %d channel(s) x%d", len(self._channels), repeat_count)

    def wait(self) -> None:
        """Block until every stored channel has played its queue."""
        for channel in self._channels:
            channel.wait()

    def run(self, repeat_count: int = 1) -> None:
        self.start(repeat_count)
        self.wait()

    def play_transient(
        self,
        wave: WaveLike,
        volume: WaveLike,
        processing: ProcessingInput,
        pitch: PitchLike,
        duration: DurationLike,
    ) -> Channel:
        """Render and play one channel right away, outside ``start``."""
        channel = self._build_channel(wave, volume, processing, pitch, duration, transient=True)
        channel.enqueue(1)
        channel.play()
        evicted: list[Channel] = []
        with self._transient_lock:
            self._transients.append(channel)
            while len(self._transients) > self.settings.transient_capacity:
                evicted.append(self._transients.popleft())
        for old in evicted:
            old.evict()
            _LOGGER.debug("Evicted transient %r", old)
        return channel

    def stop(self) -> None:
        """Stop every stored and transient channel."""
        for channel in (*self._channels, *self.transients):
            channel.stop()

    def mixdown(self, repeat_count: int = 1) -> PlaybackArray:
        """Offline mix of the stored channels as ``start(repeat_count)`` would play them."""
        if isinstance(repeat_count, bool) or repeat_count < 1:
            raise InvalidConfigError(f"repeat_count must be a positive integer, got {repeat_count!r}.")
        parts = [
            np.tile(
                apply_processing(channel.samples, channel.processing, sample_rate=self.sample_rate),
                repeat_count,
            )
            for channel in self._channels
        ]
        if not parts:
            return np.zeros(0, dtype=np.float32)
        mix = np.zeros(max(part.size for part in parts), dtype=np.float64)
        for part in parts:
            mix[: part.size] += part
        return ensure_audio_contract(mix)

    def save(self, path: str | Path, repeat_count: int = 1) -> Path:
        return write_wav(path, self.mixdown(repeat_count), sample_rate=self.sample_rate)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        with self._transient_lock:
            transients = list(self._transients)
            self._transients.clear()
        for channel in (*self._channels, *transients):
            channel.resource.release()
        self._device.close()
        _LOGGER.debug("Session closed")

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()
