"""
=============================================================================
FILEBRIDGE SERVER
=============================================================================

Ties the pieces together: listener, protocol engine, router, handlers.

=============================================================================
PER-CONNECTION FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   accept                                                             │
    │     │                                                                │
    │     ▼                                                                │
    │   RequestReader.read ──ProtocolError──► close, no response          │
    │     │                                                                │
    │     ▼                                                                │
    │   RequestParser.parse ──MalformedRequestError──► 400                 │
    │     │                                                                │
    │     ▼                                                                │
    │   Router.handle                                                      │
    │     ├── GET  /file/*path    ──► FileHandler.download                 │
    │     ├── GET  /delete/*path  ──► FileHandler.delete                   │
    │     ├── GET  *path          ──► DirectoryListingHandler.handle       │
    │     ├── PUT  /upload/*path  ──► FileHandler.upload                   │
    │     ├── POST /exec          ──► CommandBridge.handle                 │
    │     ├── other method        ──► 405                                  │
    │     └── other path          ──► 404                                  │
    │     │                                                                │
    │     ▼                                                                │
    │   send head, then body (in memory or streamed from a file)          │
    │     │                                                                │
    │     ▼                                                                │
    │   access log line, close                                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Exactly one request per connection, and connections are served one
after the other.

=============================================================================
"""

import logging
import os
import time
from typing import Optional, Tuple

from .config import ServerConfig
from .core import Connection, ConnectionState, SocketServer
from .handlers import CommandBridge, DirectoryListingHandler, FileHandler
from .http import (
    HTTPResponse, ProtocolError, Request, RequestParser, RequestReader,
    Router, bad_request, internal_error,
)


logger = logging.getLogger(__name__)
access_logger = logging.getLogger("filebridge.access")


class FileBridgeServer:
    """
    Remote file browser and command bridge.

    Usage:
        server = FileBridgeServer(ServerConfig(port=8080, root_dir="/srv/share"))
        server.run()    # blocks until SIGINT/SIGTERM

    For tests and embedding:
        server = FileBridgeServer(ServerConfig(port=0, root_dir=tmp))
        host, port = server.bind()
        threading.Thread(target=server.serve_forever).start()
        ...
        server.shutdown()
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        self.root_dir = os.path.abspath(self.config.root_dir)

        self._socket_server = SocketServer(self.config)
        self._reader = RequestReader(capacity=self.config.recv_buffer_size)
        self._parser = RequestParser(
            max_method_length=self.config.max_method_length,
            max_target_length=self.config.max_target_length,
        )

        self.listing = DirectoryListingHandler(
            root_dir=self.root_dir,
            max_path_length=self.config.max_path_length,
            title=self.config.server_name,
        )
        self.files = FileHandler(
            root_dir=self.root_dir,
            max_path_length=self.config.max_path_length,
            chunk_size=self.config.chunk_size,
        )
        self.bridge = CommandBridge(
            root_dir=self.root_dir,
            shell=self.config.shell,
            max_command_length=self.config.max_command_length,
            max_output_size=self.config.max_output_size,
            chunk_size=self.config.chunk_size,
            timeout=self.config.command_timeout,
            capture_stderr=self.config.capture_stderr,
        )

        self._router = self._build_router()

    def _build_router(self) -> Router:
        router = Router()
        # Prefix routes before the catch-all listing
        router.add_route("GET", "/file/*path", self.files.download)
        router.add_route("GET", "/delete/*path", self.files.delete)
        router.add_route("GET", "*path", self.listing.handle)
        router.add_route("PUT", "/upload/*path", self.files.upload)
        router.add_route("POST", "/exec", self.bridge.handle)
        return router

    @property
    def router(self) -> Router:
        return self._router

    @property
    def address(self) -> Tuple[str, int]:
        return self._socket_server.address

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def bind(self) -> Tuple[str, int]:
        """Bind the listening socket; returns the bound address."""
        return self._socket_server.bind()

    def serve_forever(self):
        """Serve connections until shutdown(). Binds first if needed."""
        self._socket_server.serve(self._process_connection)

    def run(self):
        """Configure logging, bind and serve (blocking)."""
        self._setup_logging()
        host, port = self.bind()
        logger.info(f"Serving {self.root_dir} on http://{host}:{port}/")
        if self.config.command_timeout is None:
            logger.info("Commands run without a timeout")
        try:
            self.serve_forever()
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        logger.info("Server stopped")

    def shutdown(self):
        """Stop accepting; the connection in progress is finished first."""
        self._socket_server.shutdown()

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("filebridge").setLevel(level)

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _process_connection(self, conn: Connection):
        """Serve the single request on conn, then close it."""
        start_time = time.time()

        with conn:
            try:
                head = self._reader.read(conn)
            except ProtocolError as e:
                logger.debug(f"[{conn.id}] Dropped without response: {e}")
                return

            conn.state = ConnectionState.PROCESSING
            request: Optional[Request] = None
            try:
                request = self._parser.parse(head, conn, conn.address)
            except ProtocolError as e:
                if e.status_code is None:
                    logger.debug(f"[{conn.id}] Dropped without response: {e}")
                    return
                logger.debug(f"[{conn.id}] {e}")
                response = bad_request()
            else:
                try:
                    response = self._router.handle(request)
                except Exception as e:
                    logger.exception(f"[{conn.id}] Handler error: {e}")
                    response = internal_error()

            self._send_response(conn, response)
            self._log_access(conn, request, response, start_time)

    def _send_response(self, conn: Connection, response: HTTPResponse) -> bool:
        """
        Send head and body. A streamed body's file is closed afterwards,
        whether or not sending succeeded.
        """
        try:
            if not conn.send_all(response.head_bytes(self.config.server_name)):
                return False
            if response.body_stream is not None:
                sent = conn.stream_from(
                    response.body_stream, response.stream_length, self.config.chunk_size
                )
                if sent < response.stream_length:
                    logger.warning(
                        f"[{conn.id}] Body cut short: {sent}/{response.stream_length} bytes"
                    )
                    return False
                return True
            if response.body:
                return conn.send_all(response.body)
            return True
        finally:
            if response.body_stream is not None:
                response.body_stream.close()

    def _log_access(
        self,
        conn: Connection,
        request: Optional[Request],
        response: HTTPResponse,
        start_time: float,
    ):
        duration_ms = (time.time() - start_time) * 1000
        if request is not None:
            line = f"{request.method} {request.raw_target}"
        else:
            line = "-"
        level = logging.WARNING if response.status.is_server_error else logging.INFO
        access_logger.log(
            level,
            f'{conn.client_ip} - - [{time.strftime("%d/%b/%Y:%H:%M:%S %z")}] '
            f'"{line}" {int(response.status)} {response.length} {duration_ms:.2f}ms'
        )
