"""
pytest configuration and fixtures.
"""

import socket
import threading
from typing import Dict, Generator, List, Optional, Tuple
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from filebridge import FileBridgeServer, ServerConfig
from filebridge.http import Request


class FakeConnection:
    """
    Stand-in for core.connection.Connection that replays canned chunks.

    recv(n) never returns more than n bytes; once the chunks run out it
    returns b"" like a closed peer.
    """

    def __init__(self, *chunks: bytes):
        self._chunks: List[bytes] = [c for c in chunks if c]
        self.reads: List[int] = []

    def recv(self, max_bytes: int) -> bytes:
        self.reads.append(max_bytes)
        if not self._chunks or max_bytes <= 0:
            return b""
        chunk = self._chunks.pop(0)
        if len(chunk) > max_bytes:
            self._chunks.insert(0, chunk[max_bytes:])
            chunk = chunk[:max_bytes]
        return chunk


def make_request(
    method: str,
    path: str,
    body_prefix: bytes = b"",
    declared_length: Optional[int] = None,
    remainder: Tuple[bytes, ...] = (),
    path_params: Optional[Dict[str, str]] = None,
) -> Request:
    """Build a Request whose body remainder comes from a FakeConnection."""
    return Request(
        method=method,
        raw_target=path,
        path=path,
        body_prefix=body_prefix,
        declared_length=declared_length,
        path_params=path_params or {},
        client_address=("127.0.0.1", 50000),
        connection=FakeConnection(*remainder),
    )


def parse_response(raw: bytes) -> Tuple[int, Dict[str, str], bytes]:
    """Split a raw response into (status, lower-cased headers, body)."""
    head, _, body = raw.partition(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")
    status = int(lines[0].split(" ")[1])
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()
    return status, headers, body


class RunningServer:
    """A FileBridgeServer serving from a background thread."""

    def __init__(self, server: FileBridgeServer):
        self.server = server
        self.host, self.port = server.bind()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        self._thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

    def send(self, raw: bytes, shutdown_write: bool = False, timeout: float = 10.0) -> bytes:
        """Send raw bytes, read until the server closes, return everything read."""
        with socket.create_connection((self.host, self.port), timeout=timeout) as sock:
            sock.sendall(raw)
            if shutdown_write:
                sock.shutdown(socket.SHUT_WR)
            chunks = []
            while True:
                try:
                    data = sock.recv(65536)
                except ConnectionResetError:
                    break
                if not data:
                    break
                chunks.append(data)
        return b"".join(chunks)

    def request(
        self,
        method: str,
        target: str,
        body: bytes = b"",
        content_length: Optional[int] = None,
        shutdown_write: bool = False,
    ) -> Tuple[int, Dict[str, str], bytes]:
        """Send one request and return the parsed response."""
        lines = [f"{method} {target} HTTP/1.0", "Host: test"]
        if content_length is not None:
            lines.append(f"Content-Length: {content_length}")
        raw = ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8") + body
        return parse_response(self.send(raw, shutdown_write=shutdown_write))


@pytest.fixture
def root_dir(tmp_path: Path) -> Path:
    """Empty service root."""
    root = tmp_path / "root"
    root.mkdir()
    return root


@pytest.fixture
def config(root_dir: Path) -> ServerConfig:
    """Test server configuration on an ephemeral port."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        root_dir=str(root_dir),
        socket_timeout=5.0,
        log_level="WARNING",
    )


@pytest.fixture
def running_server(config: ServerConfig) -> Generator[RunningServer, None, None]:
    """A server running in a background thread."""
    srv = RunningServer(FileBridgeServer(config))
    srv.start()
    yield srv
    srv.stop()
