"""
Connection Acceptor
===================

Accept loop over the server's listening socket.

Design Rules:
    - Accept is never held up by per-client work: each connection is
      handed to a new session task and the loop goes straight back to accept
    - Shutdown (stop flag / cancellation / closed listener) is a clean exit
    - Any other accept error is fatal for the server and is reported through
      the on_fatal callback; errors inside one session never reach here
"""

import asyncio
import logging
import socket
from typing import Callable, Optional, Tuple


logger = logging.getLogger(__name__)


ConnectionHandler = Callable[[socket.socket, Tuple], None]
FatalHandler = Callable[[BaseException], None]


class ConnectionAcceptor:
    """
    Accepts TCP connections and hands each one to a handler.

    Attributes:
        accepted_count: Connections accepted so far
        handler_errors: Connections dropped because the handler raised

    Example:
        acceptor = ConnectionAcceptor(listener, on_connection, on_fatal)
        task = asyncio.create_task(acceptor.run())

        # Later
        acceptor.stop()
        task.cancel()
        await task
    """

    def __init__(
        self,
        sock: socket.socket,
        on_connection: ConnectionHandler,
        on_fatal: Optional[FatalHandler] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self._sock = sock
        self._on_connection = on_connection
        self._on_fatal = on_fatal
        self._log = log or logger
        self._stopping: bool = False

        self.accepted_count: int = 0
        self.handler_errors: int = 0

    def stop(self) -> None:
        """Mark the acceptor as shutting down; errors after this are clean exits."""
        self._stopping = True

    async def run(self) -> None:
        """Accept connections until stopped or a fatal error occurs."""
        self._log.info(f"Accepting connections on {self._describe_listener()}")

        while not self._stopping:
            try:
                conn, address = await self._accept()
            except asyncio.CancelledError:
                if self._stopping:
                    break
                raise
            except OSError as e:
                if self._stopping or self._sock.fileno() == -1:
                    break
                self._log.error(f"Accept failed, stopping server: {e}")
                if self._on_fatal is not None:
                    self._on_fatal(e)
                break

            self.accepted_count += 1
            try:
                conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
                self._on_connection(conn, address)
            except Exception as e:
                self.handler_errors += 1
                self._log.error(f"Failed to start session for {address}: {e}")
                conn.close()

        self._log.info("Acceptor stopped")

    async def _accept(self) -> Tuple[socket.socket, Tuple]:
        loop = asyncio.get_running_loop()
        return await loop.sock_accept(self._sock)

    def _describe_listener(self) -> str:
        try:
            host, port = self._sock.getsockname()[:2]
            return f"{host}:{port}"
        except OSError:
            return "<closed listener>"
