"""
Frame Source Tests
==================

Processing, encoding and the threaded capture loop. Camera and screen
devices are replaced with fakes.
"""

import time

import numpy as np
import pytest

from framecast.sources import (
    CameraSource,
    FrameEncodeError,
    FrameProcessor,
    PatternSource,
    ScreenSource,
    SourceError,
    ThreadedFrameSource,
    decode_jpeg,
    encode_jpeg,
    to_bgr,
)
from framecast.sources import camera as camera_module
from framecast.sources import screen as screen_module


def _gradient(height=48, width=64):
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, :, 2] = np.linspace(0, 255, width, dtype=np.uint8)
    return image


def wait_for(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class TestProcessing:
    """Mirror, scale, colour conversion and JPEG encoding."""

    def test_identity(self):
        image = _gradient()
        processor = FrameProcessor()
        assert processor.is_identity
        assert processor.apply(image) is image

    def test_horizontal_mirror(self):
        image = _gradient()
        out = FrameProcessor(mirror="horizontal").apply(image)
        assert np.array_equal(out[:, 0], image[:, -1])

    def test_vertical_mirror(self):
        image = np.arange(4 * 3 * 3, dtype=np.uint8).reshape(4, 3, 3)
        out = FrameProcessor(mirror="vertical").apply(image)
        assert np.array_equal(out[0], image[-1])

    def test_scale(self):
        out = FrameProcessor(scale=0.5).apply(_gradient(48, 64))
        assert out.shape == (24, 32, 3)

    def test_invalid_scale(self):
        with pytest.raises(ValueError):
            FrameProcessor(scale=0)

    def test_invalid_mirror(self):
        with pytest.raises(ValueError):
            FrameProcessor(mirror="sideways")

    def test_to_bgr(self):
        assert to_bgr(np.zeros((4, 4), dtype=np.uint8)).shape == (4, 4, 3)
        assert to_bgr(np.zeros((4, 4, 4), dtype=np.uint8)).shape == (4, 4, 3)
        with pytest.raises(FrameEncodeError):
            to_bgr(np.zeros((4, 4, 2), dtype=np.uint8))

    def test_encode_jpeg(self):
        data = encode_jpeg(_gradient(), quality=90)
        assert data[:2] == b"\xff\xd8"
        assert data[-2:] == b"\xff\xd9"
        assert decode_jpeg(data).shape == (48, 64, 3)

    def test_encode_rejects_bad_input(self):
        with pytest.raises(FrameEncodeError):
            encode_jpeg(np.zeros((0, 0, 3), dtype=np.uint8))
        with pytest.raises(FrameEncodeError):
            encode_jpeg(np.zeros((4, 4, 3), dtype=np.float32))


class ScriptedSource(ThreadedFrameSource):
    """Source returning a fixed sequence of images / errors."""

    name = "scripted"

    def __init__(self, cache, script, **kwargs):
        super().__init__(cache, **kwargs)
        self.script = list(script)
        self.closed = False

    def _capture(self):
        if not self.script:
            return None
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class TestThreadedSource:
    """Capture loop semantics."""

    def test_step_publishes_encoded_frame(self, cache):
        source = ScriptedSource(cache, [_gradient()], min_interval=0)
        assert source._step() is True
        assert cache.version == 1
        assert cache.read_latest().data[:2] == b"\xff\xd8"
        assert source.stats.frames_published == 1

    def test_min_interval_throttles(self, cache):
        source = ScriptedSource(cache, [_gradient(), _gradient()], min_interval=10.0)
        assert source._step() is True
        assert source._step() is False
        assert cache.version == 1
        assert source.stats.frames_throttled == 1

    def test_capture_errors_counted(self, cache):
        source = ScriptedSource(cache, [RuntimeError("glitch"), _gradient()], min_interval=0)
        assert source._step() is False
        assert source._step() is True
        assert source.stats.capture_errors == 1
        assert source.failure is None

    def test_stops_after_consecutive_errors(self, cache):
        script = [RuntimeError(f"fail {i}") for i in range(3)]
        source = ScriptedSource(cache, script, max_consecutive_errors=3)
        source.start()
        assert wait_for(lambda: not source.is_running)
        source.stop()

        assert isinstance(source.failure, RuntimeError)
        assert source.metrics()["capture_errors"] == 3
        assert cache.is_empty

    def test_start_stop_thread(self, cache):
        source = ScriptedSource(cache, [_gradient()], min_interval=0)
        source.start()
        assert wait_for(lambda: cache.version == 1)
        source.stop()
        assert not source.is_running


class TestPatternSource:
    """Synthetic source."""

    def test_render_dimensions(self, cache):
        source = PatternSource(cache, width=160, height=120)
        assert source.render(1).shape == (120, 160, 3)

    def test_publishes_decodable_frames(self, cache):
        source = PatternSource(cache, width=160, height=120, fps=100, min_interval=0)
        source.start()
        try:
            assert wait_for(lambda: cache.version >= 3)
        finally:
            source.stop()

        image = decode_jpeg(cache.read_latest().data)
        assert image.shape == (120, 160, 3)

    def test_invalid_arguments(self, cache):
        with pytest.raises(ValueError):
            PatternSource(cache, width=4, height=4)
        with pytest.raises(ValueError):
            PatternSource(cache, fps=0)


class FakeCapture:
    """Stand-in for cv2.VideoCapture."""

    instances = []

    def __init__(self, device, opened=True):
        self.device = device
        self.opened = opened
        self.released = False
        self.props = {}
        FakeCapture.instances.append(self)

    def isOpened(self):
        return self.opened

    def set(self, prop, value):
        self.props[prop] = value
        return True

    def get(self, prop):
        return self.props.get(prop, 0)

    def read(self):
        return True, _gradient(72, 128)

    def release(self):
        self.released = True


class TestCameraSource:
    """OpenCV camera source with a fake device."""

    @pytest.fixture(autouse=True)
    def fake_capture(self, monkeypatch):
        FakeCapture.instances = []
        monkeypatch.setattr(camera_module.cv2, "VideoCapture", FakeCapture)

    def test_publishes_mirrored_frames_and_releases(self, cache):
        source = CameraSource(
            cache,
            device=2,
            width=128,
            height=72,
            processor=FrameProcessor(mirror="horizontal"),
            min_interval=0,
        )
        source.start()
        try:
            assert wait_for(lambda: cache.version >= 2)
        finally:
            source.stop()

        capture = FakeCapture.instances[0]
        assert capture.device == 2
        assert capture.released
        image = decode_jpeg(cache.read_latest().data)
        assert image.shape == (72, 128, 3)
        # Gradient runs left->right in red; mirrored it runs right->left.
        assert int(image[36, 2, 2]) > int(image[36, 125, 2])

    def test_unopenable_device(self, cache, monkeypatch):
        monkeypatch.setattr(
            camera_module.cv2,
            "VideoCapture",
            lambda device: FakeCapture(device, opened=False),
        )
        source = CameraSource(cache, device=9)
        with pytest.raises(SourceError):
            source.start()
        assert not source.is_running


class FakeShot:
    def __init__(self, height, width):
        self._array = np.full((height, width, 4), 200, dtype=np.uint8)

    def __array__(self, dtype=None, copy=None):
        return self._array


class FakeMss:
    """Stand-in for mss.mss()."""

    def __init__(self):
        self.monitors = [
            {"left": 0, "top": 0, "width": 64, "height": 48},
            {"left": 0, "top": 0, "width": 64, "height": 48},
        ]
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def grab(self, region):
        return FakeShot(region["height"], region["width"])

    def close(self):
        self.closed = True


class TestScreenSource:
    """mss screen source with a fake backend."""

    @pytest.fixture(autouse=True)
    def fake_mss(self, monkeypatch):
        monkeypatch.setattr(screen_module.mss, "mss", FakeMss)

    def test_publishes_screen_frames(self, cache):
        source = ScreenSource(cache, monitor=1, min_interval=0)
        source.start()
        try:
            assert wait_for(lambda: cache.version >= 1)
        finally:
            source.stop()

        assert decode_jpeg(cache.read_latest().data).shape == (48, 64, 3)

    def test_missing_monitor(self, cache):
        with pytest.raises(SourceError):
            ScreenSource(cache, monitor=5).start()
