"""
Client Session
==============

Per-connection state machine streaming the latest cached frame to one client.

States:
    CONNECTED -> STREAMING -> CLOSED

    CONNECTED: open streams over the accepted socket, write the handshake
    STREAMING: poll the cache; send each new version once, sleep otherwise
    CLOSED:    unregister, abort the transport, log once (idempotent)

Design Rules:
    - The version cursor belongs to this session alone
    - Intermediate versions are skipped, never queued
    - Any I/O failure closes this session only; nothing propagates upward
    - Closing the socket is the only way to cancel a session
"""

import asyncio
import logging
import socket
import threading
import time
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

from framecast.stream.cache import FrameCache
from framecast.stream.frame import Frame
from framecast.stream.mjpeg import MultipartFramer

if TYPE_CHECKING:
    from framecast.server.registry import ClientRegistry


logger = logging.getLogger(__name__)


# Versions start at 1, so 0 means nothing has been delivered yet.
NONE_DELIVERED = 0

DEFAULT_POLL_INTERVAL = 0.010
DEFAULT_WRITE_TIMEOUT = 10.0
_PEER_READ_SIZE = 4096


class SessionState(str, Enum):
    """Lifecycle states of a client session."""

    CONNECTED = "CONNECTED"
    STREAMING = "STREAMING"
    CLOSED = "CLOSED"


class FpsCounter:
    """
    Frames-per-window counter for diagnostics.

    Counts ticks within a fixed window; when a window elapses the count is
    published as ``fps`` and a new window starts. Idle for two windows or
    more reads as 0.
    """

    __slots__ = ("window", "_clock", "_window_start", "_count", "_fps")

    def __init__(self, window: float = 1.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.window = window
        self._clock = clock
        self._window_start = clock()
        self._count: int = 0
        self._fps: int = 0

    def tick(self) -> bool:
        """
        Record one delivered frame.

        Returns:
            True if this tick closed a window (a fresh fps value is available).
        """
        rolled = self._roll(self._clock())
        self._count += 1
        return rolled

    @property
    def fps(self) -> int:
        """Frames delivered in the last completed window."""
        self._roll(self._clock())
        return self._fps

    def _roll(self, now: float) -> bool:
        elapsed = now - self._window_start
        if elapsed < self.window:
            return False
        self._fps = self._count if elapsed < 2 * self.window else 0
        self._count = 0
        self._window_start = now
        return True


class SessionMetrics:
    """Delivery metrics for one client session."""

    __slots__ = (
        "frames_sent",
        "bytes_sent",
        "frames_skipped",
        "last_version",
        "connected_at",
    )

    def __init__(self) -> None:
        self.frames_sent: int = 0
        self.bytes_sent: int = 0
        self.frames_skipped: int = 0
        self.last_version: int = NONE_DELIVERED
        self.connected_at: float = time.time()

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_sent": self.frames_sent,
            "bytes_sent": self.bytes_sent,
            "frames_skipped": self.frames_skipped,
            "last_version": self.last_version,
            "connected_at": self.connected_at,
        }


class ClientSession:
    """
    Streams frames from a FrameCache to one TCP client.

    Attributes:
        session_id: Registry key, unique per server
        peer: Remote address as reported by the socket
        last_delivered_version: Version cursor into the shared cache
        metrics: Delivery metrics

    Example:
        session = ClientSession(1, conn, cache, registry, framer)
        registry.add(session)
        asyncio.create_task(session.run())
    """

    def __init__(
        self,
        session_id: int,
        sock: socket.socket,
        cache: FrameCache,
        registry: "ClientRegistry",
        framer: MultipartFramer,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        write_timeout: Optional[float] = DEFAULT_WRITE_TIMEOUT,
        log: Optional[logging.Logger] = None,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")

        self.session_id = session_id
        self._sock = sock
        self._cache = cache
        self._registry = registry
        self._framer = framer
        self._poll_interval = poll_interval
        self._write_timeout = write_timeout
        self._log = log or logger

        try:
            self.peer = sock.getpeername()
        except OSError:
            self.peer = None

        self.last_delivered_version: int = NONE_DELIVERED
        self.metrics = SessionMetrics()
        self.fps_counter = FpsCounter()

        self._state = SessionState.CONNECTED
        self._close_lock = threading.Lock()
        self._closed = False
        self._writer: Optional[asyncio.StreamWriter] = None
        self._reader: Optional[asyncio.StreamReader] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def boundary(self) -> str:
        return self._framer.boundary

    @property
    def created_at(self) -> float:
        return self.metrics.connected_at

    async def run(self) -> None:
        """
        Drive the session until the client goes away or the socket is closed.

        Every failure ends in CLOSED; only task cancellation propagates.
        """
        self._log.info(f"New client {self.session_id} from {self._format_peer()}")
        watcher: Optional[asyncio.Task] = None

        try:
            if self._closed:
                return
            self._reader, self._writer = await asyncio.open_connection(sock=self._sock)
            if self._closed:
                # close() ran before the transport existed
                self._writer.transport.abort()
                return

            watcher = asyncio.create_task(
                self._watch_peer(),
                name=f"session-{self.session_id}-peer",
            )

            await self._send(self._framer.header())
            if not self._closed:
                self._state = SessionState.STREAMING
            await self._stream()

        except asyncio.CancelledError:
            self._log.debug(f"Client {self.session_id} task cancelled")
            raise
        except (OSError, asyncio.TimeoutError) as e:
            if not self._closed:
                self._log.info(f"Client {self.session_id} disconnected: {e!r}")
        except Exception as e:
            self._log.error(f"Client {self.session_id} failed: {e}", exc_info=True)
        finally:
            if watcher is not None:
                watcher.cancel()
            self.close()

    def close(self) -> bool:
        """
        Enter CLOSED: unregister and close the socket.

        Safe to call from any failure point and more than once; the cleanup
        runs exactly once.

        Returns:
            True if this call performed the cleanup.
        """
        with self._close_lock:
            if self._closed:
                return False
            self._closed = True
            self._state = SessionState.CLOSED

        self._registry.remove(self)

        if self._writer is not None:
            # abort() drops any buffered bytes and wakes a pending drain()
            self._writer.transport.abort()
        else:
            try:
                self._sock.close()
            except OSError as e:
                self._log.debug(f"Client {self.session_id} socket close failed: {e}")

        self._log.info(
            f"Client {self.session_id} closed "
            f"(frames={self.metrics.frames_sent}, skipped={self.metrics.frames_skipped})"
        )
        return True

    def to_dict(self) -> dict:
        """Session summary for the status API."""
        return {
            "session_id": self.session_id,
            "peer": self._format_peer(),
            "state": self._state.value,
            "boundary": self.boundary,
            "fps": self.fps_counter.fps,
            **self.metrics.to_dict(),
        }

    # =========================================================================
    # Streaming
    # =========================================================================

    async def _stream(self) -> None:
        while not self._closed:
            frame = self._cache.read_latest()
            if frame is None or frame.version <= self.last_delivered_version:
                await asyncio.sleep(self._poll_interval)
                continue
            await self._deliver(frame)

    async def _deliver(self, frame: Frame) -> None:
        if self.last_delivered_version != NONE_DELIVERED:
            self.metrics.frames_skipped += frame.version - self.last_delivered_version - 1

        payload = self._framer.chunk(frame)
        await self._send(payload)

        self.last_delivered_version = frame.version
        self.metrics.last_version = frame.version
        self.metrics.frames_sent += 1
        self.metrics.bytes_sent += len(payload)

        if self.fps_counter.tick():
            self._log.debug(f"Client {self.session_id} FPS: {self.fps_counter.fps}")

    async def _send(self, data: bytes) -> None:
        writer = self._writer
        if writer is None or writer.is_closing():
            raise ConnectionResetError("Socket closed")
        writer.write(data)
        if self._write_timeout is None:
            await writer.drain()
        else:
            await asyncio.wait_for(writer.drain(), timeout=self._write_timeout)

    async def _watch_peer(self) -> None:
        """
        Discard anything the client sends; close at once on a reset.

        EOF only means the client stopped sending. A half-closed client may
        still be reading, so the session keeps streaming until a write fails.
        """
        try:
            while True:
                chunk = await self._reader.read(_PEER_READ_SIZE)
                if not chunk:
                    self._log.debug(f"Client {self.session_id} half-closed its side")
                    return
        except OSError as e:
            if not self._closed:
                self._log.info(f"Client {self.session_id} connection reset by peer: {e!r}")
                self.close()

    def _format_peer(self) -> str:
        if isinstance(self.peer, tuple) and len(self.peer) >= 2:
            return f"{self.peer[0]}:{self.peer[1]}"
        return str(self.peer)
