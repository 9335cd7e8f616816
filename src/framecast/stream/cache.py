"""
Frame Cache
===========

Single-slot, single-writer / multi-reader store of the latest frame.

The cache is the only state shared between the frame source and every
client session. Each reader keeps its own version cursor; the producer
never resets anything on behalf of readers.

Design Rules:
    - Latest wins: publish overwrites, no queue, no history
    - Publish never waits on readers
    - A new Frame is installed by a single reference assignment, so a
      reader sees either the previous frame or the new one, never a mix
"""

import logging
import threading
import time
from typing import Optional

from framecast.stream.frame import Frame, JPEG_CONTENT_TYPE


logger = logging.getLogger(__name__)


class FrameCache:
    """
    Holds the most recent encoded frame and its version.

    Example:
        cache = FrameCache()

        # Producer (any thread)
        cache.publish(jpeg_bytes)

        # Consumer (any thread or task)
        frame = cache.read_latest()
        if frame is not None and frame.version > last_seen:
            send(frame.data)
    """

    def __init__(self, content_type: str = JPEG_CONTENT_TYPE) -> None:
        self._content_type = content_type
        self._frame: Optional[Frame] = None
        # Serializes writers only; read_latest never takes it.
        self._write_lock = threading.Lock()
        self._publish_count: int = 0
        self._created_at = time.time()

    @property
    def version(self) -> int:
        """Version of the current frame, 0 before the first publish."""
        frame = self._frame
        return frame.version if frame is not None else 0

    @property
    def publish_count(self) -> int:
        """Total number of publish calls."""
        return self._publish_count

    @property
    def is_empty(self) -> bool:
        """True until the first frame is published."""
        return self._frame is None

    def publish(self, data: bytes) -> Frame:
        """
        Install a new frame, replacing the previous one outright.

        Args:
            data: Encoded image bytes. Copied into an immutable bytes object.

        Returns:
            The Frame that was installed.

        Raises:
            TypeError: If data is not bytes-like
        """
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError(f"Frame data must be bytes-like, got {type(data).__name__}")
        payload = bytes(data)

        with self._write_lock:
            previous = self._frame
            version = previous.version + 1 if previous is not None else 1
            frame = Frame(data=payload, version=version, content_type=self._content_type)
            self._frame = frame
            self._publish_count += 1

        if version == 1:
            logger.info(f"First frame published ({len(payload)} bytes)")
        return frame

    def read_latest(self) -> Optional[Frame]:
        """
        Return the current frame without blocking.

        Returns:
            Latest Frame, or None if nothing has been published yet.
        """
        return self._frame

    def metrics(self) -> dict:
        """
        Get cache metrics for observability.

        Returns:
            Dict with version, publish_count, last_frame_bytes, last_frame_age
        """
        frame = self._frame
        return {
            "version": frame.version if frame is not None else 0,
            "publish_count": self._publish_count,
            "last_frame_bytes": frame.size if frame is not None else 0,
            "last_frame_age": (
                round(time.time() - frame.published_at, 3) if frame is not None else None
            ),
        }
