"""
Screen Source
=============

Captures one monitor with mss.
"""

import logging
from typing import Optional

import mss
import numpy as np

from framecast.sources.base import SourceError, ThreadedFrameSource


logger = logging.getLogger(__name__)


class ScreenSource(ThreadedFrameSource):
    """
    Screen-capture frame source.

    Attributes:
        monitor: mss monitor index (0 = all monitors combined, 1 = primary)
    """

    name = "screen"

    def __init__(self, cache, monitor: int = 1, **kwargs) -> None:
        super().__init__(cache, **kwargs)
        self.monitor = monitor
        self._sct = None
        self._region: Optional[dict] = None

    def _open(self) -> None:
        # mss handles are thread-bound on some platforms; the real handle
        # is created on the capture thread.
        with mss.mss() as sct:
            if self.monitor >= len(sct.monitors):
                raise SourceError(
                    f"Monitor {self.monitor} not available ({len(sct.monitors) - 1} detected)"
                )
            self._region = dict(sct.monitors[self.monitor])

    def _capture(self) -> Optional[np.ndarray]:
        if self._sct is None:
            self._sct = mss.mss()
        shot = self._sct.grab(self._region)
        # BGRA; converted to BGR by the base class
        return np.asarray(shot)

    def _close(self) -> None:
        if self._sct is not None:
            self._sct.close()
            self._sct = None
