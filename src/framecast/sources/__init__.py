"""
Sources Module
==============

Frame producers feeding the FrameCache.

    - FrameSource: Protocol every source satisfies
    - ThreadedFrameSource: Capture thread with processing, encoding, throttling
    - CameraSource: OpenCV VideoCapture
    - ScreenSource: mss screen capture
    - PatternSource: Synthetic test pattern
    - FrameProcessor / encode_jpeg: Mirror, scale and JPEG encoding

Example:
    from framecast.sources import CameraSource, FrameProcessor

    source = CameraSource(cache, device=0, processor=FrameProcessor(mirror="horizontal"))
    source.start()
"""

from framecast.sources.base import (
    FrameSource,
    SourceError,
    SourceMetrics,
    ThreadedFrameSource,
)
from framecast.sources.processing import (
    FrameEncodeError,
    FrameProcessor,
    MirrorMode,
    decode_jpeg,
    encode_jpeg,
    to_bgr,
)
from framecast.sources.camera import CameraSource
from framecast.sources.pattern import PatternSource
from framecast.sources.screen import ScreenSource


__all__ = [
    "FrameSource",
    "SourceError",
    "SourceMetrics",
    "ThreadedFrameSource",
    "FrameEncodeError",
    "FrameProcessor",
    "MirrorMode",
    "decode_jpeg",
    "encode_jpeg",
    "to_bgr",
    "CameraSource",
    "PatternSource",
    "ScreenSource",
]
