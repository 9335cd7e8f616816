"""
Frame Processing
================

Post-capture image transforms and JPEG encoding.

Design Rules:
    - This is the ONLY place in the codebase that encodes images
    - Works on BGR uint8 numpy arrays as produced by OpenCV
    - Fails fast with FrameEncodeError on unusable images
"""

import logging
from enum import Enum
from typing import Optional

import cv2
import numpy as np

from framecast import FramecastError


logger = logging.getLogger(__name__)


class FrameEncodeError(FramecastError):
    """Raised when an image cannot be encoded to JPEG."""


class MirrorMode(str, Enum):
    """Mirroring applied after capture."""

    NONE = "none"
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"
    BOTH = "both"


# cv2.flip codes per mirror mode
_FLIP_CODES = {
    MirrorMode.HORIZONTAL: 1,
    MirrorMode.VERTICAL: 0,
    MirrorMode.BOTH: -1,
}


class FrameProcessor:
    """
    Applies mirroring and scaling to captured images.

    Attributes:
        mirror: Mirror mode
        scale: Resize factor (1.0 = unchanged)

    Example:
        processor = FrameProcessor(mirror="horizontal", scale=0.5)
        out = processor.apply(bgr)
    """

    def __init__(self, mirror: str = MirrorMode.NONE, scale: float = 1.0) -> None:
        if scale <= 0:
            raise ValueError("scale must be > 0")
        self.mirror = MirrorMode(mirror)
        self.scale = scale

    @property
    def is_identity(self) -> bool:
        return self.mirror is MirrorMode.NONE and self.scale == 1.0

    def apply(self, image: np.ndarray) -> np.ndarray:
        """
        Mirror then scale an image.

        Args:
            image: BGR image (H, W, 3)

        Returns:
            Transformed image (a new array unless no transform applies)
        """
        if self.mirror is not MirrorMode.NONE:
            image = cv2.flip(image, _FLIP_CODES[self.mirror])

        if self.scale != 1.0:
            height, width = image.shape[:2]
            size = (max(1, round(width * self.scale)), max(1, round(height * self.scale)))
            interpolation = cv2.INTER_AREA if self.scale < 1.0 else cv2.INTER_LINEAR
            image = cv2.resize(image, size, interpolation=interpolation)

        return image


def to_bgr(image: np.ndarray) -> np.ndarray:
    """
    Normalize grayscale or BGRA captures to 3-channel BGR.

    Raises:
        FrameEncodeError: If the shape is not a 2D/3D image
    """
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    if image.ndim == 3 and image.shape[2] == 3:
        return image
    raise FrameEncodeError(f"Unsupported image shape: {image.shape}")


def encode_jpeg(image: np.ndarray, quality: int = 80) -> bytes:
    """
    Encode a BGR image as JPEG.

    Args:
        image: BGR image (H, W, 3), dtype uint8
        quality: JPEG quality 1-100

    Returns:
        JPEG bytes (starting with the SOI marker FF D8)

    Raises:
        FrameEncodeError: If the image is empty, not uint8, or encoding fails
    """
    if image is None or image.size == 0:
        raise FrameEncodeError("Cannot encode an empty image")
    if image.dtype != np.uint8:
        raise FrameEncodeError(f"Invalid dtype for JPEG encoding: {image.dtype}")

    quality = int(min(100, max(1, quality)))
    ok, encoded = cv2.imencode(".jpg", image, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not ok:
        raise FrameEncodeError(f"cv2.imencode failed for image of shape {image.shape}")
    return encoded.tobytes()


def decode_jpeg(data: bytes) -> Optional[np.ndarray]:
    """Decode JPEG bytes to BGR, or None if the data is not a decodable image."""
    array = np.frombuffer(data, np.uint8)
    if array.size == 0:
        return None
    return cv2.imdecode(array, cv2.IMREAD_COLOR)
