"""
Client session management.

Bridges one connection to the registry: reads lines from the client and
broadcasts them, and delivers broadcasts back to the client.
"""

import logging
import threading

from .protocol import disconnected_message, user_message

logger = logging.getLogger(__name__)


class ClientSession:
    """
    Represents a single connected client.

    Manages:
    - Read loop thread forwarding lines to the registry
    - Serialized writes to the client
    - One-time teardown (deregister + disconnect announcement)
    """

    def __init__(self, connection, name, registry):
        """
        Initialize client session.

        Args:
            connection: LineConnection owned exclusively by this session
            name: Display name used to prefix this client's lines
            registry: Registry the session broadcasts through
        """
        self.connection = connection
        self.name = name
        self.registry = registry
        self.active = True
        self.reader_thread = None
        self._write_lock = threading.Lock()
        self._state_lock = threading.Lock()

    def __repr__(self):
        return f"<ClientSession {self.name} active={self.active}>"

    def start(self):
        """Spawn the read loop and return immediately."""
        self.reader_thread = threading.Thread(
            target=self.read_loop,
            name=f"session-{self.name}",
            daemon=True,
        )
        self.reader_thread.start()

    def read_loop(self):
        """
        Main reader loop.

        Broadcasts every line, empty ones included, in the order they arrive.
        Any terminal condition ends in close().
        """
        try:
            while True:
                try:
                    line = self.connection.read_line()
                except (OSError, ValueError) as e:
                    # ValueError: the connection was closed under us
                    if self.active:
                        logger.error(f"ERROR: {self.name} has connection error: {e}")
                    break
                if line is None:
                    logger.info(f"{self.name} disconnected (EOF)")
                    break
                logger.debug(f"Received msg from {self.name}: {line}")
                self.registry.broadcast(user_message(self.name, line))
        finally:
            self.close()

    def send(self, line):
        """
        Write one line to the client.

        Raises whatever the connection raises; the registry isolates it.
        """
        with self._write_lock:
            self.connection.write_line(line)

    def close(self):
        """Tear the session down. Only the first call has any effect."""
        with self._state_lock:
            if not self.active:
                return
            self.active = False
        if self.registry.remove(self):
            self.registry.broadcast(disconnected_message(self.name))
            logger.info(f"{self.name} left the chat")
        self.connection.close()

    def join(self, timeout=None):
        """Wait for the read loop to finish."""
        if self.reader_thread is not None:
            self.reader_thread.join(timeout)
