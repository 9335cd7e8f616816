"""
Stream Module
=============

Frame model, latest-frame cache and multipart wire framing.

    - Frame: Immutable encoded frame with its cache version
    - FrameCache: Single-writer / multi-reader latest-frame slot
    - MultipartFramer: Handshake and chunk encoding
    - read_handshake / read_part: Client-side parsing helpers

Example:
    from framecast.stream import FrameCache, MultipartFramer

    cache = FrameCache()
    framer = MultipartFramer("--boundary")

    frame = cache.publish(jpeg_bytes)
    sock.sendall(framer.header() + framer.chunk(frame))
"""

from framecast.stream.frame import Frame, JPEG_CONTENT_TYPE
from framecast.stream.cache import FrameCache
from framecast.stream.mjpeg import (
    DEFAULT_BOUNDARY,
    MultipartFramer,
    MultipartPart,
    ProtocolError,
    read_handshake,
    read_part,
    validate_boundary,
)


__all__ = [
    "Frame",
    "JPEG_CONTENT_TYPE",
    "FrameCache",
    "DEFAULT_BOUNDARY",
    "MultipartFramer",
    "MultipartPart",
    "ProtocolError",
    "read_handshake",
    "read_part",
    "validate_boundary",
]
