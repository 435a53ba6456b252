"""
=============================================================================
TCP LISTENER
=============================================================================

Creates the listening socket and runs the accept loop.

=============================================================================
SEQUENTIAL SERVING
=============================================================================

filebridge serves one connection at a time. The accept loop hands each
connection to the handler and only accepts the next one when the
handler returns:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   accept() ──► handler(conn) ──► accept() ──► handler(conn) ──► ... │
    │                 (read, route,                                        │
    │                  respond, close)                                     │
    │                                                                      │
    │   Clients arriving meanwhile wait in the kernel's listen queue      │
    │   (backlog, default 4). Beyond that the kernel refuses or drops      │
    │   them.                                                              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The listening socket uses a 1 second accept timeout so that shutdown()
from a signal handler or another thread is noticed promptly.

=============================================================================
SIGNALS
=============================================================================

SIGINT and SIGTERM trigger a graceful shutdown: the loop finishes the
connection in progress and stops. Handlers can only be installed from
the main thread; when serving from any other thread (tests, embedding)
they are left alone.

SIGPIPE is ignored by the Python runtime, so writing to a vanished peer
raises BrokenPipeError instead of killing the process.

=============================================================================
"""

import logging
import signal
import socket
import threading
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Single-threaded TCP server.

    Usage:
        def handle_connection(conn: Connection):
            ...

        server = SocketServer(config)
        server.bind()                     # returns the bound (host, port)
        server.serve(handle_connection)   # blocks until shutdown()
    """

    ACCEPT_TIMEOUT = 1.0

    def __init__(self, config: ServerConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._running = False
        self._shutdown_event = threading.Event()
        # Reentrant: shutdown() may run from a signal handler inside serve()
        self._state_lock = threading.RLock()
        self._original_handlers: dict = {}

    @property
    def address(self) -> Tuple[str, int]:
        """The bound address, or the configured one before bind()."""
        if self._socket is not None:
            return self._socket.getsockname()[:2]
        return (self.config.host, self.config.port)

    # =========================================================================
    # SETUP
    # =========================================================================

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        # Restart without waiting for TIME_WAIT to expire
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.settimeout(self.ACCEPT_TIMEOUT)
        return sock

    def bind(self) -> Tuple[str, int]:
        """
        Create the listening socket, bind and listen.

        Port 0 binds an ephemeral port; the actual address is returned.

        Raises:
            OSError: Address in use, permission denied, ...
        """
        if self._socket is not None:
            return self.address

        sock = self._create_socket()
        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            sock.close()
            raise

        self._socket = sock
        host, port = self.address
        logger.info(f"Listening on {host}:{port} (backlog {self.config.backlog})")
        return host, port

    def _setup_signals(self):
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, shutting down...")
            self.shutdown()

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # =========================================================================
    # ACCEPT LOOP
    # =========================================================================

    def serve(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections until shutdown() is called.

        Each connection is passed to connection_handler, which must serve
        and close it before the next accept.
        """
        with self._state_lock:
            # A shutdown() that arrived before serve() still wins
            if self._shutdown_event.is_set():
                self._close_listener()
                return
            self.bind()
            self._running = True
        self._setup_signals()

        try:
            while self._running:
                try:
                    client_socket, client_address = self._socket.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    if self._running:
                        logger.error(f"Accept error: {e}")
                    break

                logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")
                conn = Connection(
                    socket=client_socket,
                    address=client_address,
                    timeout=self.config.socket_timeout,
                )
                connection_handler(conn)
        finally:
            self._cleanup()

    def shutdown(self):
        """
        Stop the accept loop. Safe to call from any thread, repeatedly.

        A listener that was bound but never served is closed right away;
        a running loop closes its own listener when it exits.
        """
        with self._state_lock:
            was_running = self._running
            self._running = False
            self._shutdown_event.set()
            if not was_running:
                self._close_listener()

    def _close_listener(self):
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
            logger.info("Listener stopped")

    def _cleanup(self):
        self._restore_signals()
        with self._state_lock:
            self._running = False
            self._close_listener()
