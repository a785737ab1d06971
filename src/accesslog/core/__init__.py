"""
=============================================================================
CORE NETWORKING
=============================================================================

    socket_server.py   bind / listen / accept loop, signal handling
    connection.py      one client socket: read a request, stream a response

Concurrency lives one level up: HTTPServer submits every accepted
Connection to a concurrent.futures.ThreadPoolExecutor.

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState, RequestTooLarge

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "RequestTooLarge",
]
