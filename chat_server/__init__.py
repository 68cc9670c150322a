"""
Broadcast chat server package.

Main exports:
- Server: Listener that onboards every accepted connection
- Registry: Set of live sessions and the fan-out over them
- ClientSession: Individual client handler
"""

from .protocol import LineConnection
from .registry import Registry
from .session import ClientSession
from .server import Server

__version__ = "1.0.0"
__all__ = ['Server', 'Registry', 'ClientSession', 'LineConnection']
