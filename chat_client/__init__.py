"""
Terminal client for the broadcast chat server.
"""

from .client import Client

__all__ = ['Client']
