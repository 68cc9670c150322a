"""
Line protocol.

Newline-delimited UTF-8 text over a stream socket, plus the builders for the
messages the server sends.
"""

import logging
import socket
import struct
import sys
import threading

logger = logging.getLogger(__name__)

ENCODING = "utf-8"


def format_addr(addr):
    """Format address as IP:Port string."""
    return f"{addr[0]}:{addr[1]}"


def set_send_timeout(sock, seconds):
    """
    Bound how long a blocking send may stall on a peer that stopped reading.

    Applied in the kernel (SO_SNDTIMEO) so the socket stays in blocking mode
    and reads on another thread are unaffected. A send that times out raises
    OSError (EAGAIN).
    """
    if sys.platform == "win32":
        value = struct.pack("L", int(seconds * 1000))
    else:
        whole = int(seconds)
        value = struct.pack("ll", whole, int((seconds - whole) * 1_000_000))
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_SNDTIMEO, value)


def connected_message(name):
    return f"{name} connected."


def disconnected_message(name):
    return f"{name} disconnected."


def user_message(name, text):
    """Prefix a line received from `name`. The text itself is left untouched."""
    return f"{name} : {text}"


class LineConnection:
    """
    A connected stream socket read and written one line at a time.

    Reads happen on one thread only (the owning session's read loop).
    Writes go straight to the socket; callers serialize them.
    """

    def __init__(self, sock, write_timeout=None):
        """
        Args:
            sock: A connected stream socket. The connection takes ownership of it.
            write_timeout: Seconds a single write may block before failing,
                None to block indefinitely
        """
        self.sock = sock
        if write_timeout is not None:
            set_send_timeout(sock, write_timeout)
        self.reader = sock.makefile("rb")
        self.closed = False
        self._close_lock = threading.Lock()
        try:
            self.peer = sock.getpeername()
        except OSError:
            self.peer = None

    def read_line(self):
        """
        Block until one line arrives.

        Returns:
            The line without its terminator, or None at end of stream.
        """
        data = self.reader.readline()
        if not data:
            return None
        if data.endswith(b"\n"):
            data = data[:-1]
            if data.endswith(b"\r"):
                data = data[:-1]
        return data.decode(ENCODING, errors="replace")

    def write_line(self, text):
        self.sock.sendall(text.encode(ENCODING) + b"\n")

    def close(self):
        """Shut the socket down and close it. Safe to call more than once."""
        with self._close_lock:
            if self.closed:
                return
            self.closed = True
        # wakes up a reader blocked in readline() on another thread
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            logger.debug(f"shutdown() on {self.peer}: {e}")
        self.reader.close()
        self.sock.close()
