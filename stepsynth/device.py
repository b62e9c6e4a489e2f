"""Audio output devices and their per-channel playback resources.

Only one device may be open per process: ``open_device`` claims it and
``OutputDevice.close`` gives it back. Each resource is a queue of processed
buffers that starts paused; ``play`` lets the device drain it.

Backends:

- ``sounddevice``: one PortAudio output stream whose callback mixes every
  playing resource.
- ``memory``: headless; draining copies the queued audio into ``played``.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable, Mapping, Sequence
from types import MappingProxyType
from typing import Any

import numpy as np

from .audio import SAMPLE_RATE, AudioNumbers, PlaybackArray
from .config import BackendName, Processing
from .effects import apply_processing
from .errors import DeviceUnavailableError, PlaybackError, ResourceUnavailableError

_LOGGER = logging.getLogger("stepsynth.device")
_DEVICE_CLAIM = threading.Lock()


class PlaybackResource(ABC):
    """A paused queue of processed buffers owned by one channel."""

    def __init__(self, device: OutputDevice) -> None:
        self._device = device
        self._lock = device.lock
        self._pending: deque[PlaybackArray] = deque()
        self._offset = 0
        self._playing = False
        self._stopped = False
        self._drained = threading.Event()
        self._drained.set()

    def prepare(self, buffer: AudioNumbers, processing: Processing) -> PlaybackArray:
        """Apply ``processing`` and convert to the device's float32 format."""
        return np.asarray(
            apply_processing(buffer, processing, sample_rate=self._device.sample_rate),
            dtype=np.float32,
        )

    def enqueue(self, buffer: AudioNumbers, processing: Processing) -> None:
        processed = self.prepare(buffer, processing)
        with self._lock:
            self._check_open()
            self._push(processed)

    def play(self) -> None:
        with self._lock:
            self._check_open()
            self._begin()

    def _check_open(self) -> None:
        if self._stopped:
            raise PlaybackError("Playback resource is stopped.")

    def _push(self, processed: PlaybackArray) -> None:
        """Append a prepared buffer. Caller holds the lock."""
        self._pending.append(processed)
        self._drained.clear()

    def _begin(self) -> None:
        """Start draining. Caller holds the lock."""
        self._playing = True
        if not self._pending:
            self._drained.set()

    def stop(self) -> None:
        with self._lock:
            self._pending.clear()
            self._offset = 0
            self._playing = False
            self._stopped = True
            self._drained.set()

    def release(self) -> None:
        self.stop()
        self._device.forget(self)

    @abstractmethod
    def block_until_drained(self) -> None: ...

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._playing and bool(self._pending)

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def pending_samples(self) -> int:
        with self._lock:
            return sum(chunk.size for chunk in self._pending) - self._offset

    def _pull(self, frames: int) -> PlaybackArray:
        """Take up to ``frames`` samples off the queue. Caller holds the lock."""
        out = np.zeros(frames, dtype=np.float32)
        if not self._playing:
            return out
        filled = 0
        while filled < frames and self._pending:
            head = self._pending[0]
            take = min(frames - filled, head.size - self._offset)
            out[filled : filled + take] = head[self._offset : self._offset + take]
            filled += take
            self._offset += take
            if self._offset >= head.size:
                self._pending.popleft()
                self._offset = 0
        if not self._pending:
            self._playing = False
            self._drained.set()
        return out


class OutputDevice(ABC):
    name = "device"

    def __init__(self, *, sample_rate: int = SAMPLE_RATE, max_resources: int = 64) -> None:
        self.sample_rate = sample_rate
        self.lock = threading.Lock()
        self._max_resources = max_resources
        self._resources: list[PlaybackResource] = []
        self._closed = False
        self._on_close: Callable[[], None] | None = None

    @abstractmethod
    def _new_resource(self) -> PlaybackResource: ...

    def _shutdown(self) -> None:
        return None

    def create_resource(self) -> PlaybackResource:
        with self.lock:
            if self._closed:
                raise ResourceUnavailableError(f"The {self.name} device is closed.")
            if len(self._resources) >= self._max_resources:
                raise ResourceUnavailableError(
                    f"The {self.name} device has no free playback resources "
                    f"({self._max_resources} in use)."
                )
            resource = self._new_resource()
            self._resources.append(resource)
        return resource

    def forget(self, resource: PlaybackResource) -> None:
        with self.lock:
            if resource in self._resources:
                self._resources.remove(resource)

    def start_together(
        self, batches: Sequence[tuple[PlaybackResource, Sequence[PlaybackArray]]]
    ) -> None:
        """Queue prepared buffers and start every resource under one lock hold.

        Either every resource is queued and playing afterwards, or none was
        touched. The mixer callback never sees a partially started batch.
        """
        with self.lock:
            if self._closed:
                raise PlaybackError(f"The {self.name} device is closed.")
            for resource, _ in batches:
                resource._check_open()
            for resource, buffers in batches:
                for processed in buffers:
                    resource._push(processed)
                resource._begin()

    @property
    def resources(self) -> tuple[PlaybackResource, ...]:
        with self.lock:
            return tuple(self._resources)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def exclusive(self) -> bool:
        """True while this device holds the process-wide claim from ``open_device``."""
        return self._on_close is not None

    def close(self) -> None:
        if self._closed:
            return
        for resource in self.resources:
            resource.stop()
        with self.lock:
            self._resources.clear()
            self._closed = True
        try:
            self._shutdown()
        finally:
            if self._on_close is not None:
                self._on_close()
                self._on_close = None
        _LOGGER.debug("Closed %s output device", self.name)

    def __enter__(self) -> "OutputDevice":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()


class MemoryResource(PlaybackResource):
    def __init__(self, device: OutputDevice) -> None:
        super().__init__(device)
        self.played: list[PlaybackArray] = []

    def block_until_drained(self) -> None:
        with self._lock:
            remaining = sum(chunk.size for chunk in self._pending) - self._offset
            if self._playing and remaining > 0:
                self.played.append(self._pull(remaining))
            self._playing = False
            self._drained.set()

    @property
    def recorded(self) -> PlaybackArray:
        if not self.played:
            return np.zeros(0, dtype=np.float32)
        return np.concatenate(self.played)


class MemoryDevice(OutputDevice):
    """Headless device that records what would have been played."""

    name = "memory"

    def _new_resource(self) -> PlaybackResource:
        return MemoryResource(self)


class _MixerResource(PlaybackResource):
    def block_until_drained(self) -> None:
        # Only a playing resource is drained by the callback.
        with self._lock:
            if not self._playing:
                return
        self._drained.wait()


class SoundDeviceOutput(OutputDevice):
    """Mixes all playing resources into one sounddevice output stream."""

    name = "sounddevice"

    def __init__(
        self,
        sd: Any,
        *,
        sample_rate: int = SAMPLE_RATE,
        max_resources: int = 64,
        blocksize: int = 1024,
    ) -> None:
        super().__init__(sample_rate=sample_rate, max_resources=max_resources)
        try:
            self._stream = sd.OutputStream(
                samplerate=sample_rate,
                channels=1,
                dtype="float32",
                blocksize=blocksize,
                callback=self._callback,
            )
            self._stream.start()
        except (sd.PortAudioError, OSError, ValueError) as exc:
            raise DeviceUnavailableError(f"Could not open an audio output stream: {exc}") from exc

    def _new_resource(self) -> PlaybackResource:
        return _MixerResource(self)

    def _callback(self, outdata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            _LOGGER.debug("Output stream status: %s", status)
        mix = np.zeros(frames, dtype=np.float32)
        with self.lock:
            for resource in self._resources:
                mix += resource._pull(frames)
        outdata[:, 0] = np.clip(mix, -1.0, 1.0)

    def _shutdown(self) -> None:
        self._stream.stop()
        self._stream.close()


def _load_sounddevice() -> Any | None:
    try:
        import sounddevice as sd_module  # type: ignore[import]
    except (ImportError, OSError) as exc:
        # sounddevice raises OSError when the PortAudio library is missing.
        _LOGGER.info("sounddevice not available: %s", exc, exc_info=True)
        return None
    return sd_module


def _open_sounddevice(*, sample_rate: int, max_resources: int) -> OutputDevice:
    sd = _load_sounddevice()
    if sd is None:
        raise DeviceUnavailableError(
            "Playback requires sounddevice with a working PortAudio install "
            "(or use the 'memory' backend and save to a file)."
        )
    return SoundDeviceOutput(sd, sample_rate=sample_rate, max_resources=max_resources)


def _open_memory(*, sample_rate: int, max_resources: int) -> OutputDevice:
    return MemoryDevice(sample_rate=sample_rate, max_resources=max_resources)


_BACKENDS: Mapping[BackendName, Callable[..., OutputDevice]] = MappingProxyType(
    {
        "sounddevice": _open_sounddevice,
        "memory": _open_memory,
    }
)


def open_device(
    backend: BackendName = "sounddevice",
    *,
    sample_rate: int = SAMPLE_RATE,
    max_resources: int = 64,
) -> OutputDevice:
    """Open the process-wide output device; only one may be held at a time."""
    opener = _BACKENDS.get(backend)
    if opener is None:
        raise DeviceUnavailableError(f"Unknown audio backend: {backend!r}. Valid: {list(_BACKENDS)}")
    if not _DEVICE_CLAIM.acquire(blocking=False):
        raise DeviceUnavailableError("The audio output device is already held by another session.")
    try:
        device = opener(sample_rate=sample_rate, max_resources=max_resources)
    except BaseException:
        _DEVICE_CLAIM.release()
        raise
    device._on_close = _DEVICE_CLAIM.release
    _LOGGER.info("Opened %s output device at %d Hz", device.name, sample_rate)
    return device
