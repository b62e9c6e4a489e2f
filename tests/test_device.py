from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import numpy as np
import pytest

from stepsynth import device as device_module
from stepsynth.config import Processing
from stepsynth.device import MemoryDevice, MemoryResource, SoundDeviceOutput, open_device
from stepsynth.errors import DeviceUnavailableError, PlaybackError, ResourceUnavailableError

_WIDE_OPEN = Processing(filter=(0.0, 30_000.0))


class FakePortAudioError(Exception):
    pass


class FakeStream:
    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.callback = kwargs["callback"]
        self.started = False
        self.closed = False

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.started = False

    def close(self) -> None:
        self.closed = True


def _fake_sd(stream_cls: Any = FakeStream) -> SimpleNamespace:
    return SimpleNamespace(OutputStream=stream_cls, PortAudioError=FakePortAudioError)


class TestOpenDevice:
    def test_device_is_exclusive(self) -> None:
        first = open_device("memory")
        try:
            assert isinstance(first, MemoryDevice)
            with pytest.raises(DeviceUnavailableError):
                open_device("memory")
        finally:
            first.close()
        second = open_device("memory")
        second.close()

    def test_unknown_backend(self) -> None:
        with pytest.raises(DeviceUnavailableError):
            open_device("alsa")  # type: ignore[arg-type]
        open_device("memory").close()

    def test_missing_sounddevice_releases_claim(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(device_module, "_load_sounddevice", lambda: None)
        with pytest.raises(DeviceUnavailableError):
            open_device("sounddevice")
        open_device("memory").close()

    def test_sounddevice_backend_uses_stream(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(device_module, "_load_sounddevice", _fake_sd)
        device = open_device("sounddevice")
        try:
            assert isinstance(device, SoundDeviceOutput)
        finally:
            device.close()


class TestMemoryResources:
    def test_resource_limit(self) -> None:
        device = MemoryDevice(max_resources=1)
        first = device.create_resource()
        with pytest.raises(ResourceUnavailableError):
            device.create_resource()
        first.release()
        assert device.create_resource() is not None

    def test_closed_device_has_no_resources(self) -> None:
        device = MemoryDevice()
        device.close()
        with pytest.raises(ResourceUnavailableError):
            device.create_resource()

    def test_queue_plays_only_after_play(self) -> None:
        device = MemoryDevice()
        resource = device.create_resource()
        assert isinstance(resource, MemoryResource)
        buffer = np.linspace(-0.5, 0.5, 100)
        resource.enqueue(buffer, _WIDE_OPEN)
        resource.enqueue(buffer, _WIDE_OPEN)
        assert resource.pending_samples == 200
        assert resource.is_active is False

        resource.play()
        assert resource.is_active is True
        resource.block_until_drained()

        assert resource.is_active is False
        assert np.allclose(resource.recorded, np.tile(buffer, 2))

    def test_processing_is_applied_on_enqueue(self) -> None:
        resource = MemoryDevice().create_resource()
        resource.enqueue(np.ones(10), Processing(gain=0.5, filter=(0.0, 30_000.0)))
        resource.play()
        resource.block_until_drained()
        assert isinstance(resource, MemoryResource)
        assert np.allclose(resource.recorded, np.full(10, 0.5))

    def test_stopped_resource_rejects_work(self) -> None:
        resource = MemoryDevice().create_resource()
        resource.enqueue(np.ones(10), _WIDE_OPEN)
        resource.stop()
        assert resource.stopped is True
        assert resource.pending_samples == 0
        with pytest.raises(PlaybackError):
            resource.enqueue(np.ones(10), _WIDE_OPEN)
        with pytest.raises(PlaybackError):
            resource.play()

    def test_close_stops_resources(self) -> None:
        device = MemoryDevice()
        resource = device.create_resource()
        resource.enqueue(np.ones(10), _WIDE_OPEN)
        resource.play()
        device.close()
        assert resource.stopped is True
        assert device.resources == ()

    def test_start_together_is_all_or_nothing(self) -> None:
        device = MemoryDevice()
        a = device.create_resource()
        b = device.create_resource()
        b.stop()
        chunk = a.prepare(np.ones(10), _WIDE_OPEN)

        with pytest.raises(PlaybackError):
            device.start_together([(a, [chunk, chunk]), (b, [chunk])])

        assert a.pending_samples == 0
        assert a.is_active is False

    def test_start_together_on_closed_device(self) -> None:
        device = MemoryDevice()
        a = device.create_resource()
        device.close()
        with pytest.raises(PlaybackError):
            device.start_together([(a, [])])

    def test_exclusive_only_while_claimed(self) -> None:
        assert MemoryDevice().exclusive is False
        device = open_device("memory")
        assert device.exclusive is True
        device.close()
        assert device.exclusive is False


class TestSoundDeviceMixer:
    def test_callback_mixes_playing_resources(self) -> None:
        device = SoundDeviceOutput(_fake_sd())
        stream = device._stream
        assert stream.started is True
        assert stream.kwargs["samplerate"] == 44_100

        a = device.create_resource()
        b = device.create_resource()
        idle = device.create_resource()
        a.enqueue(np.full(6, 0.25), _WIDE_OPEN)
        b.enqueue(np.full(4, 0.5), _WIDE_OPEN)
        idle.enqueue(np.full(8, 0.9), _WIDE_OPEN)
        a.play()
        b.play()

        outdata = np.zeros((8, 1), dtype=np.float32)
        stream.callback(outdata, 8, None, None)
        assert outdata[:, 0].tolist() == pytest.approx([0.75] * 4 + [0.25] * 2 + [0.0] * 2)

        a.block_until_drained()
        b.block_until_drained()
        assert not a.is_active
        assert idle.pending_samples == 8

        device.close()
        assert stream.closed is True

    def test_callback_clips_the_mix(self) -> None:
        device = SoundDeviceOutput(_fake_sd())
        for _ in range(3):
            resource = device.create_resource()
            resource.enqueue(np.full(4, 0.6), _WIDE_OPEN)
            resource.play()
        outdata = np.zeros((4, 1), dtype=np.float32)
        device._stream.callback(outdata, 4, None, None)
        assert float(outdata.max()) == 1.0
        device.close()

    def test_stream_failure_is_device_unavailable(self) -> None:
        def broken_stream(**kwargs: Any) -> FakeStream:
            raise FakePortAudioError("no default output device")

        with pytest.raises(DeviceUnavailableError):
            SoundDeviceOutput(_fake_sd(broken_stream))

    def test_unplayed_resource_does_not_block(self) -> None:
        device = SoundDeviceOutput(_fake_sd())
        resource = device.create_resource()
        resource.enqueue(np.ones(16), _WIDE_OPEN)

        resource.block_until_drained()

        assert resource.pending_samples == 16
        device.close()
