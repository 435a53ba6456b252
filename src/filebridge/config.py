"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the filebridge service.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m filebridge --port 9000                          │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── FILEBRIDGE_PORT=9000 python -m filebridge                 │
    │                                                                      │
    │   3. Defaults in this dataclass                                     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
LIMITS
=============================================================================

Most settings are hard bounds on memory or work per request. The
defaults mirror the constraints of the small single-tasking hosts the
service was written for:

    recv_buffer_size    16 KiB   request line + headers (+ first body bytes)
    max_path_length     512      normalized filesystem path
    max_command_length  4096     POST /exec body
    max_output_size     64 KiB   captured command output

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class ServerConfig:
    """
    Configuration for the filebridge server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK
    - host, port, backlog, socket_timeout

    PROTOCOL LIMITS
    - recv_buffer_size, chunk_size, max_path_length,
      max_method_length, max_target_length

    FILESYSTEM
    - root_dir

    COMMAND BRIDGE
    - max_command_length, max_output_size, command_timeout, shell,
      capture_stderr

    LOGGING / IDENTITY
    - log_level, server_name

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """The IP address to bind to."""

    port: int = 8080
    """The port to listen on. 0 lets the OS pick a free port."""

    backlog: int = 4
    """
    Maximum number of queued connections.
    Connections are served one at a time, so a short queue is enough.
    """

    socket_timeout: Optional[float] = None
    """
    Timeout for client socket reads and writes, in seconds.
    None = fully blocking: a silent peer stalls the server.
    """

    # ─────────────────────────────────────────────────────────────────────
    # PROTOCOL LIMITS
    # ─────────────────────────────────────────────────────────────────────

    recv_buffer_size: int = 16384
    """
    Capacity of the per-connection header buffer.
    A request whose header block does not fit is dropped without a reply.
    """

    chunk_size: int = 4096
    """Chunk size for file downloads, uploads and command output reads."""

    max_path_length: int = 512
    """Capacity of a normalized filesystem path."""

    max_method_length: int = 7
    """Request-line method tokens are truncated to this length."""

    max_target_length: int = 511
    """Request-line target tokens are truncated to this length."""

    # ─────────────────────────────────────────────────────────────────────
    # FILESYSTEM
    # ─────────────────────────────────────────────────────────────────────

    root_dir: str = "."
    """Directory served to clients. Every path resolves inside it."""

    # ─────────────────────────────────────────────────────────────────────
    # COMMAND BRIDGE
    # ─────────────────────────────────────────────────────────────────────

    max_command_length: int = 4096
    """Largest accepted POST /exec body (Content-Length)."""

    max_output_size: int = 65536
    """Captured command output beyond this is discarded and marked."""

    command_timeout: Optional[float] = None
    """
    Seconds a command may run before its process group is killed.
    None = unbounded; a hung command then stalls the server.
    """

    shell: str = "/bin/sh"
    """Shell used to run commands (invoked as: shell -c command)."""

    capture_stderr: bool = False
    """Merge the command's stderr into the captured output."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING / IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR)."""

    server_name: str = "filebridge"
    """Value of the Server response header."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        FILEBRIDGE_HOST             Bind address (default: 0.0.0.0)
        FILEBRIDGE_PORT             Listen port (default: 8080)
        FILEBRIDGE_ROOT             Served directory (default: .)
        FILEBRIDGE_COMMAND_TIMEOUT  Command timeout in seconds (default: none)
        FILEBRIDGE_LOG_LEVEL        Logging level (default: INFO)

        =====================================================================
        """
        timeout = os.getenv("FILEBRIDGE_COMMAND_TIMEOUT")
        return cls(
            host=os.getenv("FILEBRIDGE_HOST", "0.0.0.0"),
            port=int(os.getenv("FILEBRIDGE_PORT", "8080")),
            root_dir=os.getenv("FILEBRIDGE_ROOT", "."),
            command_timeout=float(timeout) if timeout else None,
            log_level=os.getenv("FILEBRIDGE_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called at server construction so a bad setting fails at startup,
        not on the first request that depends on it.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.recv_buffer_size < 64:
            raise ValueError("recv_buffer_size must be >= 64")

        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")

        if self.max_path_length < 2:
            raise ValueError("max_path_length must be >= 2")

        if self.max_method_length < 1 or self.max_target_length < 1:
            raise ValueError("request-line token bounds must be >= 1")

        if self.max_command_length < 0:
            raise ValueError("max_command_length must be >= 0")

        if self.max_output_size < 1:
            raise ValueError("max_output_size must be >= 1")

        if self.command_timeout is not None and self.command_timeout <= 0:
            raise ValueError("command_timeout must be > 0")

        if self.socket_timeout is not None and self.socket_timeout <= 0:
            raise ValueError("socket_timeout must be > 0")

        if not os.path.isdir(self.root_dir):
            raise ValueError(f"root_dir is not a directory: {self.root_dir}")
