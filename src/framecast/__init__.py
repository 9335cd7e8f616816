"""
framecast
=========

Live Motion-JPEG distribution over plain TCP.

One frame source publishes JPEG frames into a single-slot cache; any number
of TCP clients each receive the newest frame through an HTTP
``multipart/x-mixed-replace`` stream. Slow or disconnected clients never
hold up the producer or each other.

Components:
    - stream: Frame model, FrameCache, multipart wire framing
    - server: ConnectionAcceptor, ClientSession, ClientRegistry, StreamingServer
    - sources: Camera, screen and synthetic frame sources
    - main: FastAPI status service and process entry point

Example:
    from framecast.stream import FrameCache
    from framecast.server import StreamingServer

    cache = FrameCache()
    server = StreamingServer(cache)
    await server.start(8888)
    cache.publish(jpeg_bytes)
"""

__version__ = "0.1.0"
__author__ = "framecast contributors"


class FramecastError(Exception):
    """Base class for framecast errors."""


__all__ = [
    "__version__",
    "FramecastError",
]
