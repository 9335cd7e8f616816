"""
Client Registry
===============

Thread-safe set of live client sessions, used for coordinated shutdown.

Design Rules:
    - All mutation and full-set iteration happen under one lock
    - close_all() snapshots and clears under the lock, then closes outside
      it, so a session removing itself mid-shutdown neither deadlocks nor
      gets closed twice
"""

import logging
import threading
from typing import TYPE_CHECKING, Dict, List

if TYPE_CHECKING:
    from framecast.server.session import ClientSession


logger = logging.getLogger(__name__)


class ClientRegistry:
    """
    Set of active ClientSession handles keyed by session id.

    Mutated by the acceptor (add), by each session (remove on termination)
    and by server shutdown (close_all).
    """

    def __init__(self) -> None:
        self._sessions: Dict[int, "ClientSession"] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session: object) -> bool:
        session_id = getattr(session, "session_id", None)
        with self._lock:
            return self._sessions.get(session_id) is session

    def add(self, session: "ClientSession") -> None:
        """Register a newly accepted session."""
        with self._lock:
            self._sessions[session.session_id] = session

    def remove(self, session: "ClientSession") -> bool:
        """
        Unregister a session.

        Returns:
            True if the session was registered, False otherwise.
        """
        with self._lock:
            if self._sessions.get(session.session_id) is session:
                del self._sessions[session.session_id]
                return True
            return False

    def snapshot(self) -> List["ClientSession"]:
        """Point-in-time list of registered sessions."""
        with self._lock:
            return list(self._sessions.values())

    def close_all(self) -> int:
        """
        Drain the registry and close every session.

        Returns:
            Number of sessions that were registered at the time of the call.
        """
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()

        for session in sessions:
            try:
                session.close()
            except Exception as e:
                logger.error(f"Error closing session {session.session_id}: {e}")

        if sessions:
            logger.info(f"Closed {len(sessions)} client session(s)")
        return len(sessions)
