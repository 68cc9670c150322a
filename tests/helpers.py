"""
Test doubles shared by the test modules.
"""
import queue
import socket
import time


def wait_until(predicate, timeout=2.0, interval=0.01):
    """Poll predicate until it holds or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class FakeConnection:
    """In-memory stand-in for LineConnection."""

    def __init__(self):
        self.inbox = queue.Queue()
        self.sent = []
        self.closed = False
        self.fail_writes = False

    def feed(self, *items):
        """Queue lines (or exceptions to raise) for read_line()."""
        for item in items:
            self.inbox.put(item)

    def hang_up(self):
        self.inbox.put(None)

    def read_line(self):
        item = self.inbox.get(timeout=5)
        if isinstance(item, Exception):
            raise item
        return item

    def write_line(self, text):
        if self.fail_writes:
            raise BrokenPipeError("Broken pipe")
        self.sent.append(text)

    def close(self):
        self.closed = True
        self.inbox.put(None)


class LineClient:
    """Blocking socket client speaking the line protocol."""

    def __init__(self, address, timeout=5.0):
        self.sock = socket.create_connection(address, timeout=timeout)
        self.reader = self.sock.makefile("rb")
        host, port = self.sock.getsockname()[:2]
        self.name = f"{host}:{port}"

    def send(self, text):
        self.sock.sendall(text.encode() + b"\n")

    def read_line(self):
        data = self.reader.readline()
        if not data:
            return None
        return data.decode().rstrip("\n")

    def close(self):
        self.reader.close()
        self.sock.close()
