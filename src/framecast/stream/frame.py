"""
Frame Data Model
=================

Immutable frame representation shared between the producer and all clients.

Design Rules:
    - Frames are never mutated after creation
    - Superseded frames are simply dropped (no retention)
    - Payload is an opaque, already-encoded byte buffer
"""

import time
from dataclasses import dataclass, field


JPEG_CONTENT_TYPE = "image/jpeg"


@dataclass(frozen=True, slots=True)
class Frame:
    """
    One encoded image plus the cache version it was published under.

    Attributes:
        data: Encoded image bytes (JPEG)
        version: Cache version, strictly increasing, starting at 1
        content_type: MIME type written in each multipart chunk
        published_at: UNIX timestamp of the publish call
    """

    data: bytes
    version: int
    content_type: str = JPEG_CONTENT_TYPE
    published_at: float = field(default_factory=time.time)

    @property
    def size(self) -> int:
        """Payload length in bytes."""
        return len(self.data)

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the payload."""
        return (
            f"Frame(version={self.version}, "
            f"size={len(self.data)}, "
            f"content_type={self.content_type!r})"
        )
