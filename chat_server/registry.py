"""
Live session registry.

Single authority over the set of connected sessions and every fan-out to them.
"""

import logging
import threading
from typing import List, Protocol

from .protocol import connected_message

logger = logging.getLogger(__name__)


class Recipient(Protocol):
    """What the registry needs from a session."""

    name: str

    def send(self, line: str) -> None:
        ...

    def close(self) -> None:
        ...


class Registry:
    """
    Thread-safe, insertion-ordered set of live sessions.

    Sessions never touch the underlying collection; everything goes through
    register(), remove() and broadcast(). Fan-out runs on a snapshot outside
    the lock so a slow recipient never blocks registration.
    """

    def __init__(self):
        # dict keys keep insertion order, values unused
        self._sessions = {}
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session):
        with self._lock:
            return session in self._sessions

    def sessions(self) -> List[Recipient]:
        """Snapshot of the live sessions in registration order."""
        with self._lock:
            return list(self._sessions)

    def register(self, session: Recipient) -> bool:
        """Add session to the live set. Returns False if it was already there."""
        with self._lock:
            if session in self._sessions:
                return False
            self._sessions[session] = None
        logger.debug(f"Registered {session.name} ({len(self)} live)")
        return True

    def remove(self, session: Recipient) -> bool:
        """Remove session from the live set. Removing twice is a no-op."""
        with self._lock:
            if session not in self._sessions:
                return False
            del self._sessions[session]
        logger.debug(f"Removed {session.name} ({len(self)} live)")
        return True

    def join(self, session: Recipient) -> bool:
        """
        Register a new session and announce it to everyone, itself included.

        Returns False, announcing nothing, if the session was already registered.
        """
        if not self.register(session):
            return False
        logger.info(f"{session.name} joined the chat!")
        self.broadcast(connected_message(session.name))
        return True

    def broadcast(self, message) -> int:
        """
        Deliver message to every registered session.

        A failing recipient does not stop delivery to the others. Once the
        fan-out is done each failed recipient is closed, which removes it and
        announces the disconnect.

        Returns:
            Number of sessions the message was written to.
        """
        if not message:
            return 0
        logger.debug(f"broadcast(): {message}")
        delivered = 0
        failed = []
        for session in self.sessions():
            if session not in self:
                continue
            try:
                session.send(message)
                delivered += 1
            except Exception as e:
                logger.error(f"Error@{session.name} in broadcast(): {e}")
                failed.append(session)

        for session in failed:
            session.close()
        return delivered

    def close_all(self) -> None:
        """Tear down every live session."""
        for session in self.sessions():
            session.close()
