"""
=============================================================================
CORE NETWORKING
=============================================================================

Transport-level pieces, below the protocol:

    ┌─────────────────────────────────────────────────────────────────────┐
    │ socket_server.py   listening socket, sequential accept loop,        │
    │                    signal-driven shutdown                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │ connection.py      one accepted client: bounded recv, sendall,      │
    │                    file streaming, graceful close                    │
    ├─────────────────────────────────────────────────────────────────────┤
    │ buffers.py         fixed-capacity byte buffers                       │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .buffers import BoundedBuffer, CapacityError
from .connection import Connection, ConnectionState
from .socket_server import SocketServer

__all__ = [
    "BoundedBuffer",    # Fixed-capacity byte buffer
    "CapacityError",    # Raised when a bounded buffer would overflow
    "Connection",       # Wrapper for client socket
    "ConnectionState",  # Enum for connection lifecycle states
    "SocketServer",     # TCP listener and accept loop
]
