"""
Camera Source
=============

Captures frames from a local video device through OpenCV.
"""

import logging
from typing import Optional

import cv2
import numpy as np

from framecast.sources.base import SourceError, ThreadedFrameSource


logger = logging.getLogger(__name__)


class CameraSource(ThreadedFrameSource):
    """
    OpenCV VideoCapture frame source.

    Attributes:
        device: Device index (or path/URL accepted by cv2.VideoCapture)
        width: Requested capture width (0 = device default)
        height: Requested capture height (0 = device default)
    """

    name = "camera"

    def __init__(self, cache, device=0, width: int = 1280, height: int = 720, **kwargs) -> None:
        super().__init__(cache, **kwargs)
        self.device = device
        self.width = width
        self.height = height
        self._capture_device: Optional[cv2.VideoCapture] = None

    def _open(self) -> None:
        capture = cv2.VideoCapture(self.device)
        if not capture.isOpened():
            capture.release()
            raise SourceError(f"Cannot open video device {self.device!r}")

        if self.width and self.height:
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
            actual = (
                int(capture.get(cv2.CAP_PROP_FRAME_WIDTH)),
                int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            )
            if actual != (self.width, self.height):
                self._log.warning(
                    f"Camera {self.device!r} does not support {self.width}x{self.height}, "
                    f"using {actual[0]}x{actual[1]}"
                )

        self._capture_device = capture

    def _capture(self) -> Optional[np.ndarray]:
        ok, image = self._capture_device.read()
        if not ok:
            raise SourceError(f"Failed to read frame from video device {self.device!r}")
        return image

    def _close(self) -> None:
        if self._capture_device is not None:
            self._capture_device.release()
            self._capture_device = None
