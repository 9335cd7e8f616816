"""
Server Module
=============

TCP side of the Motion-JPEG pipeline.

    - StreamingServer: start/stop lifecycle, owns acceptor and registry
    - ConnectionAcceptor: accept loop, one session task per connection
    - ClientSession: per-client CONNECTED -> STREAMING -> CLOSED machine
    - ClientRegistry: live sessions, drained on shutdown

Example:
    from framecast.server import StreamingServer
    from framecast.stream import FrameCache

    cache = FrameCache()
    server = StreamingServer(cache)
    await server.start(8888)
    await server.wait_stopped()
"""

from framecast.server.acceptor import ConnectionAcceptor
from framecast.server.registry import ClientRegistry
from framecast.server.session import (
    NONE_DELIVERED,
    ClientSession,
    FpsCounter,
    SessionMetrics,
    SessionState,
)
from framecast.server.server import DEFAULT_BACKLOG, StreamingServer


__all__ = [
    "ConnectionAcceptor",
    "ClientRegistry",
    "ClientSession",
    "FpsCounter",
    "NONE_DELIVERED",
    "SessionMetrics",
    "SessionState",
    "DEFAULT_BACKLOG",
    "StreamingServer",
]
