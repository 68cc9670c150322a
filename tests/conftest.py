import sys
import threading
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from chat_server.server import Server


def pytest_configure(config):
    config.addinivalue_line("markers", "fast: quick unit tests")
    config.addinivalue_line("markers", "slow: tests that open real sockets")


@pytest.fixture
def running_server():
    """Server on a free localhost port, accepting in a background thread."""
    server = Server(port=0, host='127.0.0.1')
    server.bind()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown(close_sessions=True)
    thread.join(2)
