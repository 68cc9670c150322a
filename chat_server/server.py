"""
Main chat server implementation.

Accepts connections, onboards one session per connection, and owns the
server lifecycle.
"""

import argparse
import errno
import logging
import socket
import sys
import threading

from .protocol import LineConnection, format_addr
from .registry import Registry
from .session import ClientSession

logger = logging.getLogger(__name__)

DEFAULT_PORT = 2710
DEFAULT_WRITE_TIMEOUT = 2.0

# accept() errors that mean the listening socket itself is gone
FATAL_ACCEPT_ERRNOS = {errno.EBADF, errno.EINVAL, errno.ENOTSOCK}
# out of descriptors or memory; accept() is retried after a pause
RESOURCE_ACCEPT_ERRNOS = {errno.EMFILE, errno.ENFILE, errno.ENOBUFS, errno.ENOMEM}
ACCEPT_RETRY_DELAY = 1.0


class Server:
    """
    Threaded broadcast chat server.

    Features:
    - One reader thread per connected client
    - Every line is relayed to all connected clients
    - Connect and disconnect announcements
    - Clients that stop reading are dropped after a write timeout
    """

    def __init__(self, port=DEFAULT_PORT, host='0.0.0.0', backlog=64,
                 write_timeout=DEFAULT_WRITE_TIMEOUT, accept_retry_delay=ACCEPT_RETRY_DELAY):
        """
        Initialize server.

        Args:
            port: Port to listen on (0 picks a free one)
            host: Interface to bind
            backlog: Listen queue length
            write_timeout: Seconds a write to one client may block before that
                client is dropped
            accept_retry_delay: Pause before accepting again after running
                out of descriptors or memory
        """
        self.host = host
        self.port = port
        self.backlog = backlog
        self.write_timeout = write_timeout
        self.accept_retry_delay = accept_retry_delay
        self.registry = Registry()
        self.listen_socket = None
        self._stopping = threading.Event()

    @property
    def address(self):
        """Bound (host, port), or None before bind()."""
        if self.listen_socket is None:
            return None
        return self.listen_socket.getsockname()[:2]

    def bind(self):
        """
        Bind and listen. Failure is not retried.

        Raises:
            OSError: the port could not be bound
        """
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
            sock.listen(self.backlog)
        except OSError:
            sock.close()
            raise
        self.listen_socket = sock
        logger.info(f"Server running on {format_addr(self.address)}")
        return self.address

    def serve_forever(self):
        """
        Accept connections until shutdown().

        Raises:
            OSError: the listening socket is no longer usable
        """
        while not self._stopping.is_set():
            try:
                sock, addr = self.listen_socket.accept()
            except OSError as e:
                if self._stopping.is_set():
                    break
                if self.listen_socket.fileno() == -1 or e.errno in FATAL_ACCEPT_ERRNOS:
                    logger.critical(f"Listening socket unusable: {e}")
                    raise
                logger.error(f"ERROR: accept() failed: {e}")
                if e.errno in RESOURCE_ACCEPT_ERRNOS:
                    self._stopping.wait(self.accept_retry_delay)
                continue
            self.onboard(sock, addr)
        logger.info("Server stopped accepting connections")

    def onboard(self, sock, addr):
        """Register a session for a freshly accepted socket and start reading."""
        logger.info(f"Client Connected: {addr}")
        session = ClientSession(LineConnection(sock, self.write_timeout), format_addr(addr), self.registry)
        self.registry.join(session)
        # the welcome broadcast may already have torn it down
        if session.active:
            session.start()
        return session

    def run(self):
        self.bind()
        self.serve_forever()

    def shutdown(self, close_sessions=False):
        """
        Stop accepting and close the listening port.

        Args:
            close_sessions: Also tear down every connected session instead of
                letting them drain
        """
        self._stopping.set()
        if self.listen_socket is not None:
            # shutdown() wakes a thread blocked in accept()
            try:
                self.listen_socket.shutdown(socket.SHUT_RDWR)
            except OSError as e:
                logger.debug(f"shutdown() on listening socket: {e}")
            self.listen_socket.close()
        if close_sessions:
            self.registry.close_all()


def main():
    """Entry point for server"""
    parser = argparse.ArgumentParser(description="Chat Server")
    parser.add_argument('--host', default='0.0.0.0', help='Interface to bind')
    parser.add_argument('--port', type=int, default=DEFAULT_PORT, help='Port to listen on')
    parser.add_argument('--write-timeout', type=float, default=DEFAULT_WRITE_TIMEOUT,
                        help='Seconds before a client that stops reading is dropped')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    args = parser.parse_args()

    # setup logging
    level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    server = Server(args.port, args.host, write_timeout=args.write_timeout)
    try:
        server.bind()
    except OSError as e:
        logger.critical(f"Could not bind {args.host}:{args.port}: {e}")
        sys.exit(1)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except OSError as e:
        logger.critical(f"Server failed: {e}")
        sys.exit(1)
    finally:
        server.shutdown()


if __name__ == "__main__":
    main()
