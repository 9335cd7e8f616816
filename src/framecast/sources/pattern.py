"""
Pattern Source
==============

Synthetic moving test pattern for demos and tests without capture hardware.
"""

import logging
import time
from typing import Optional

import cv2
import numpy as np

from framecast.sources.base import ThreadedFrameSource


logger = logging.getLogger(__name__)


class PatternSource(ThreadedFrameSource):
    """
    Generates color bars with a sweeping marker and a frame counter.

    Attributes:
        width: Image width
        height: Image height
        fps: Generated frames per second
    """

    name = "pattern"

    _BARS = np.array([
        (255, 255, 255),
        (0, 255, 255),
        (255, 255, 0),
        (0, 255, 0),
        (255, 0, 255),
        (0, 0, 255),
        (255, 0, 0),
    ], dtype=np.uint8)

    def __init__(self, cache, width: int = 640, height: int = 480, fps: float = 30.0, **kwargs) -> None:
        super().__init__(cache, **kwargs)
        if width < 8 or height < 8:
            raise ValueError("pattern must be at least 8x8")
        if fps <= 0:
            raise ValueError("fps must be > 0")
        self.width = width
        self.height = height
        self.fps = fps
        self._count: int = 0
        self._next_due: float = 0.0
        self._background = self._render_bars()

    def _render_bars(self) -> np.ndarray:
        columns = np.arange(self.width) * len(self._BARS) // self.width
        row = self._BARS[columns]
        return np.repeat(row[np.newaxis, :, :], self.height, axis=0)

    def render(self, index: int) -> np.ndarray:
        """Render pattern frame number ``index``."""
        image = self._background.copy()
        x = (index * 8) % self.width
        cv2.rectangle(image, (x, 0), (min(x + 8, self.width - 1), self.height - 1), (0, 0, 0), -1)
        cv2.putText(
            image,
            f"#{index}",
            (10, self.height - 20),
            cv2.FONT_HERSHEY_SIMPLEX,
            1.0,
            (0, 0, 0),
            2,
            cv2.LINE_AA,
        )
        return image

    def _capture(self) -> Optional[np.ndarray]:
        now = time.monotonic()
        if now < self._next_due:
            return None
        self._next_due = now + 1.0 / self.fps
        self._count += 1
        return self.render(self._count)
