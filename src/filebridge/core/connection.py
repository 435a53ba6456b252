"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps an accepted client socket with the small set of blocking
operations the protocol engine needs.

=============================================================================
ONE REQUEST PER CONNECTION
=============================================================================

filebridge speaks a restricted HTTP/1.0: every connection carries
exactly one request and is torn down after the response.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      Connection Lifecycle                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   NEW ──► READING ──► PROCESSING ──► WRITING ──► CLOSING ──► CLOSED │
    │              │                                      ▲                │
    │              │  header boundary not found           │                │
    │              └──────────────────────────────────────┘                │
    │                      (no response is sent)                           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

There is no keep-alive state: after WRITING the connection always
closes (Connection: close semantics).

=============================================================================
BLOCKING I/O
=============================================================================

Every call here blocks. By default the socket has no timeout at all,
so a silent peer stalls the (single-threaded) server until it goes
away. Set ServerConfig.socket_timeout to bound that.

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import BinaryIO, Optional
import uuid


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states (for logging and close bookkeeping)."""
    NEW = "new"                # Just accepted
    READING = "reading"        # Reading the request head or body
    PROCESSING = "processing"  # Handler is running
    WRITING = "writing"        # Sending the response
    CLOSING = "closing"        # Shutdown sequence in progress
    CLOSED = "closed"          # Socket released


@dataclass
class Connection:
    """
    Represents a single client connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. BOUNDED READS                                                    │
    │     └── recv(n) never returns more than n bytes                      │
    │     └── peer close, reset and timeout all read as b""                │
    │                                                                      │
    │  2. COMPLETE WRITES                                                  │
    │     └── send_all() uses sendall(), reports failure as False          │
    │     └── stream_from() copies a file in fixed-size chunks             │
    │                                                                      │
    │  3. GRACEFUL CLOSE                                                   │
    │     └── FIN, bounded drain, close                                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short connection identifier (for logging).
        state: Current connection state.
        created_at: Timestamp when the connection was accepted.
        bytes_received: Total bytes read from the peer.
        bytes_sent: Total bytes written to the peer.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    bytes_received: int = 0
    bytes_sent: int = 0

    # Configuration (passed from ServerConfig)
    timeout: Optional[float] = None   # None = fully blocking
    drain_limit: int = 65536          # Max bytes discarded on close

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        """Get the client IP address."""
        return self.address[0] if self.address else ""

    @property
    def age(self) -> float:
        """Get connection age in seconds."""
        return time.time() - self.created_at

    # =========================================================================
    # READING
    # =========================================================================

    def recv(self, max_bytes: int) -> bytes:
        """
        Receive at most max_bytes from the peer.

        Returns:
            The received bytes, or b"" if the peer closed the connection,
            reset it, or the read failed or timed out.
        """
        if max_bytes <= 0:
            return b""
        self.state = ConnectionState.READING
        try:
            data = self.socket.recv(max_bytes)
        except socket.timeout:
            logger.debug(f"[{self.id}] Read timed out")
            return b""
        except OSError as e:
            # ConnectionResetError, BrokenPipeError, ...
            logger.debug(f"[{self.id}] Read failed: {e}")
            return b""
        self.bytes_received += len(data)
        return data

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_all(self, data: bytes) -> bool:
        """
        Send all of data to the peer.

        Returns:
            True if every byte was handed to the kernel, False if the
            connection was lost.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False
        self.bytes_sent += len(data)
        return True

    def stream_from(self, source: BinaryIO, length: int, chunk_size: int = 4096) -> int:
        """
        Copy up to length bytes from a file object to the peer.

        ┌─────────────────────────────────────────────────────────────────┐
        │   read(chunk) ──► sendall(chunk) ──► read(chunk) ──► ...        │
        │        │                 │                                      │
        │      b"" (EOF)        failure                                   │
        │        └────────┬────────┘                                      │
        │                stop (silently)                                  │
        └─────────────────────────────────────────────────────────────────┘

        The Content-Length has already been committed when this runs, so
        a failure cannot be reported to the client: the body is simply
        shorter than announced.

        Returns:
            Number of bytes sent.
        """
        sent = 0
        while sent < length:
            try:
                chunk = source.read(min(chunk_size, length - sent))
            except OSError as e:
                logger.warning(f"[{self.id}] Read from source failed: {e}")
                break
            if not chunk:
                break
            if not self.send_all(chunk):
                break
            sent += len(chunk)
        return sent

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection gracefully.

        1. shutdown(SHUT_WR): send FIN, the response is complete
        2. drain: discard what the peer still sends (bounded), so the
           kernel does not answer unread data with a RST that could
           destroy the response in flight
        3. close(): release the file descriptor
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Peer already gone

        try:
            self.socket.settimeout(0.5)
            drained = 0
            while drained < self.drain_limit:
                data = self.socket.recv(4096)
                if not data:
                    break
                drained += len(data)
        except OSError:
            pass  # Includes socket.timeout

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(
            f"[{self.id}] Connection closed "
            f"(in={self.bytes_received}, out={self.bytes_sent}, {self.age:.3f}s)"
        )

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - ensure connection is closed."""
        self.close()
        return False
