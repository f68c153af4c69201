"""WebSocket relay server package.

Exports:
- RelayWebSocketServer: Main server class
- RelayConnection: Per-client connection lifecycle
- main: Entry point function
"""

from .connection import RelayConnection
from .core import RelayWebSocketServer
from .main import build_server, main, start_server

__all__ = [
    "RelayConnection",
    "RelayWebSocketServer",
    "build_server",
    "main",
    "start_server",
]
