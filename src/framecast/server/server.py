"""
Streaming Server
================

Top-level lifecycle for the Motion-JPEG TCP server.

Start:
    bind the listening socket (bind errors raise before any accept), then
    run the ConnectionAcceptor as its own task.

Stop:
    stop the acceptor and close the listener, close every client socket
    through ClientRegistry.close_all(), then wait for the session tasks to
    unwind. Stop is a no-op when not running, is idempotent, and may be
    triggered from the acceptor's own fatal-error path.
"""

import asyncio
import itertools
import logging
import socket
import time
from typing import Optional, Set, Tuple

from framecast.server.acceptor import ConnectionAcceptor
from framecast.server.registry import ClientRegistry
from framecast.server.session import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_WRITE_TIMEOUT,
    ClientSession,
)
from framecast.stream.cache import FrameCache
from framecast.stream.mjpeg import DEFAULT_BOUNDARY, MultipartFramer


logger = logging.getLogger(__name__)


DEFAULT_BACKLOG = 100


class StreamingServer:
    """
    Serves the latest frame of a FrameCache to any number of TCP clients.

    Attributes:
        cache: Shared frame cache (written by the frame source)
        registry: Live client sessions
        fatal_error: Error that made the acceptor stop the server, if any

    Example:
        cache = FrameCache()
        server = StreamingServer(cache, backlog=100)

        await server.start(8888)
        ...
        await server.stop()
    """

    def __init__(
        self,
        cache: FrameCache,
        host: str = "0.0.0.0",
        backlog: int = DEFAULT_BACKLOG,
        boundary: str = DEFAULT_BOUNDARY,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        write_timeout: Optional[float] = DEFAULT_WRITE_TIMEOUT,
        shutdown_timeout: float = 5.0,
        log: Optional[logging.Logger] = None,
    ) -> None:
        if backlog < 1:
            raise ValueError("backlog must be >= 1")

        self.cache = cache
        self.host = host
        self.backlog = backlog
        self.framer = MultipartFramer(boundary)
        self.poll_interval = poll_interval
        self.write_timeout = write_timeout
        self.shutdown_timeout = shutdown_timeout
        self._log = log or logger

        self.registry = ClientRegistry()
        self.fatal_error: Optional[BaseException] = None

        self._listener: Optional[socket.socket] = None
        self._acceptor: Optional[ConnectionAcceptor] = None
        self._acceptor_task: Optional[asyncio.Task] = None
        self._stop_task: Optional[asyncio.Task] = None
        self._session_tasks: Set[asyncio.Task] = set()
        self._session_ids = itertools.count(1)
        self._running: bool = False
        self._stopped_event: asyncio.Event = asyncio.Event()
        self._stopped_event.set()
        self._started_at: float = 0.0
        self._port: Optional[int] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def port(self) -> Optional[int]:
        """Bound port (resolves port 0 to the ephemeral port)."""
        return self._port

    @property
    def client_count(self) -> int:
        return len(self.registry)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self, port: int) -> None:
        """
        Bind and start accepting connections.

        Args:
            port: TCP port (0 = ephemeral)

        Raises:
            OSError: If the listening socket cannot be bound
        """
        if self._running:
            self._log.warning(f"Server already running on port {self._port}")
            return

        try:
            listener = socket.create_server((self.host, port), backlog=self.backlog)
        except OSError as e:
            self._log.error(f"Failed to bind {self.host}:{port}: {e}")
            raise
        listener.setblocking(False)

        self._listener = listener
        self._port = listener.getsockname()[1]
        self.fatal_error = None
        self._running = True
        self._started_at = time.time()
        self._stopped_event = asyncio.Event()

        self._acceptor = ConnectionAcceptor(
            listener,
            on_connection=self._handle_connection,
            on_fatal=self._handle_fatal,
            log=self._log,
        )
        self._acceptor_task = asyncio.create_task(
            self._acceptor.run(),
            name="connection_acceptor",
        )

        self._log.info(f"Server started on port {self._port} (backlog={self.backlog})")

    async def stop(self) -> None:
        """
        Stop accepting, close all client sockets and wait for sessions.

        No-op if the server is not running.
        """
        if not self._running:
            return
        self._running = False
        self._log.info("Server stopping...")

        if self._acceptor is not None:
            self._acceptor.stop()

        task = self._acceptor_task
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self._listener is not None:
            self._listener.close()
            self._listener = None

        self.registry.close_all()

        pending = [t for t in self._session_tasks if not t.done()]
        if pending:
            done, still_pending = await asyncio.wait(pending, timeout=self.shutdown_timeout)
            if still_pending:
                self._log.warning(f"{len(still_pending)} session(s) did not exit, cancelling")
                for t in still_pending:
                    t.cancel()
                await asyncio.gather(*still_pending, return_exceptions=True)

        self._acceptor_task = None
        self._stopped_event.set()
        self._log.info("Server stopped")

    async def wait_stopped(self) -> None:
        """Block until the server has fully stopped."""
        await self._stopped_event.wait()

    # =========================================================================
    # Acceptor callbacks
    # =========================================================================

    def _handle_connection(self, conn: socket.socket, address: Tuple) -> None:
        session = ClientSession(
            session_id=next(self._session_ids),
            sock=conn,
            cache=self.cache,
            registry=self.registry,
            framer=self.framer,
            poll_interval=self.poll_interval,
            write_timeout=self.write_timeout,
            log=self._log,
        )
        self.registry.add(session)

        task = asyncio.create_task(session.run(), name=f"session-{session.session_id}")
        self._session_tasks.add(task)
        task.add_done_callback(self._session_tasks.discard)

    def _handle_fatal(self, error: BaseException) -> None:
        self.fatal_error = error
        # Scheduled, not awaited: the acceptor task must finish before
        # stop() can await it.
        self._stop_task = asyncio.get_running_loop().create_task(
            self.stop(),
            name="server_stop",
        )

    # =========================================================================
    # Observability
    # =========================================================================

    def client_metrics(self) -> list:
        """Per-session metrics for every registered client."""
        return [session.to_dict() for session in self.registry.snapshot()]

    def metrics(self) -> dict:
        """Server-level metrics."""
        acceptor = self._acceptor
        return {
            "running": self._running,
            "port": self._port,
            "backlog": self.backlog,
            "boundary": self.framer.boundary,
            "clients": len(self.registry),
            "accepted": acceptor.accepted_count if acceptor is not None else 0,
            "handler_errors": acceptor.handler_errors if acceptor is not None else 0,
            "uptime_seconds": round(time.time() - self._started_at, 1) if self._running else 0.0,
            "fatal_error": repr(self.fatal_error) if self.fatal_error is not None else None,
        }
