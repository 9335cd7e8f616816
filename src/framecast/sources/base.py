"""
Frame Source Base
=================

Protocol for frame sources plus a threaded capture loop shared by the
camera, screen and pattern sources.

A frame source only has to call ``FrameCache.publish(bytes)`` on its own
schedule; the streaming side imposes no rate. The threaded base adds:

    - a daemon capture thread with a threading.Event stop signal
    - mirror / scale post-processing and JPEG encoding
    - a minimum publish interval (frames arriving faster are dropped)
    - error counting, self-stop after too many consecutive failures
"""

import logging
import threading
import time
from typing import Optional, Protocol

import numpy as np

from framecast import FramecastError
from framecast.sources.processing import FrameProcessor, encode_jpeg, to_bgr
from framecast.stream.cache import FrameCache


logger = logging.getLogger(__name__)


class SourceError(FramecastError):
    """Raised when a frame source cannot be opened or used."""


class FrameSource(Protocol):
    """
    Protocol for anything that feeds a FrameCache.

    Implementations publish encoded frames into the cache they were given
    at construction, from their own thread, at their own cadence.
    """

    def start(self) -> None:
        """Begin capturing and publishing."""
        ...

    def stop(self) -> None:
        """Stop capturing and release the device."""
        ...

    def metrics(self) -> dict:
        """Source metrics for observability."""
        ...


class SourceMetrics:
    """Metrics for frame source observability."""

    __slots__ = (
        "frames_captured",
        "frames_published",
        "frames_throttled",
        "capture_errors",
        "encode_errors",
        "last_publish_time",
    )

    def __init__(self) -> None:
        self.frames_captured: int = 0
        self.frames_published: int = 0
        self.frames_throttled: int = 0
        self.capture_errors: int = 0
        self.encode_errors: int = 0
        self.last_publish_time: float = 0.0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_captured": self.frames_captured,
            "frames_published": self.frames_published,
            "frames_throttled": self.frames_throttled,
            "capture_errors": self.capture_errors,
            "encode_errors": self.encode_errors,
            "last_publish_time": self.last_publish_time,
        }


class ThreadedFrameSource:
    """
    Base class running capture -> process -> encode -> publish on a thread.

    Subclasses implement ``_open``, ``_capture`` and ``_close``. ``_capture``
    returns an image, or None when no new image is available yet.

    Attributes:
        name: Source name used for the thread and log lines
        cache: Cache frames are published into
        stats: Operational metrics
    """

    name = "source"

    def __init__(
        self,
        cache: FrameCache,
        processor: Optional[FrameProcessor] = None,
        jpeg_quality: int = 80,
        min_interval: float = 0.025,
        max_consecutive_errors: int = 50,
        idle_sleep: float = 0.005,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.cache = cache
        self.processor = processor or FrameProcessor()
        self.jpeg_quality = jpeg_quality
        self.min_interval = min_interval
        self.max_consecutive_errors = max_consecutive_errors
        self.idle_sleep = idle_sleep
        self._log = log or logger

        self.stats = SourceMetrics()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._consecutive_errors: int = 0
        self._last_publish: float = 0.0
        self.failure: Optional[BaseException] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """
        Open the device and start the capture thread.

        Raises:
            SourceError: If the device cannot be opened
        """
        if self.is_running:
            return
        self._open()
        self._stop_event.clear()
        self.failure = None
        self._thread = threading.Thread(
            target=self._run,
            name=f"framecast-{self.name}",
            daemon=True,
        )
        self._thread.start()
        self._log.info(f"Frame source '{self.name}' started")

    def stop(self, timeout: float = 2.0) -> None:
        """Signal the capture thread to exit and wait for it."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                self._log.warning(f"Frame source '{self.name}' did not stop within {timeout}s")
        self._thread = None

    def metrics(self) -> dict:
        return {
            "name": self.name,
            "running": self.is_running,
            "failure": repr(self.failure) if self.failure is not None else None,
            **self.stats.to_dict(),
        }

    # =========================================================================
    # Subclass hooks
    # =========================================================================

    def _open(self) -> None:
        """Acquire the capture device."""

    def _capture(self) -> Optional[np.ndarray]:
        raise NotImplementedError

    def _close(self) -> None:
        """Release the capture device."""

    # =========================================================================
    # Capture loop
    # =========================================================================

    def _run(self) -> None:
        try:
            while not self._stop_event.is_set():
                if not self._step():
                    self._stop_event.wait(self.idle_sleep)
        finally:
            try:
                self._close()
            except Exception as e:
                self._log.warning(f"Frame source '{self.name}' close failed: {e}")
            self._log.info(f"Frame source '{self.name}' stopped")

    def _step(self) -> bool:
        """
        Run one capture iteration.

        Returns:
            True if a frame was published.
        """
        try:
            image = self._capture()
        except Exception as e:
            self.stats.capture_errors += 1
            self._record_error(e)
            return False

        if image is None:
            return False
        self.stats.frames_captured += 1

        now = time.monotonic()
        if self._last_publish and now - self._last_publish < self.min_interval:
            self.stats.frames_throttled += 1
            return False

        try:
            data = encode_jpeg(self.processor.apply(to_bgr(image)), self.jpeg_quality)
        except Exception as e:
            self.stats.encode_errors += 1
            self._record_error(e)
            return False

        self.cache.publish(data)
        self._last_publish = now
        self._consecutive_errors = 0
        self.stats.frames_published += 1
        self.stats.last_publish_time = time.time()
        return True

    def _record_error(self, error: BaseException) -> None:
        self._consecutive_errors += 1
        self._log.warning(f"Frame source '{self.name}' error: {error}")
        if self._consecutive_errors >= self.max_consecutive_errors:
            self.failure = error
            self._log.error(
                f"Frame source '{self.name}' failed {self._consecutive_errors} times in a row, stopping"
            )
            self._stop_event.set()
