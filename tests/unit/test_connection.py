"""
Unit tests for the client connection wrapper.
"""

import io
import socket

import pytest

from filebridge import FileBridgeServer
from filebridge.core.connection import Connection, ConnectionState
from filebridge.http.response import OCTET_STREAM, ResponseBuilder


class FlakySocket:
    """
    Socket double whose sendall() starts failing after a number of calls.

    recv() replays canned chunks and then reports EOF.
    """

    def __init__(self, fail_after: int = None, chunks=()):
        self.fail_after = fail_after
        self.sent = []
        self._chunks = list(chunks)
        self.closed = False
        self.shut_down = False

    def setblocking(self, flag):
        pass

    def settimeout(self, value):
        pass

    def sendall(self, data):
        if self.fail_after is not None and len(self.sent) >= self.fail_after:
            raise BrokenPipeError("peer went away")
        self.sent.append(bytes(data))

    def recv(self, n):
        if not self._chunks:
            return b""
        return self._chunks.pop(0)[:n]

    def shutdown(self, how):
        self.shut_down = True

    def close(self):
        self.closed = True


class TrackingFile(io.BytesIO):
    """BytesIO that remembers whether close() was called."""

    was_closed = False

    def close(self):
        self.was_closed = True
        super().close()


class BrokenFile(io.RawIOBase):
    def readable(self):
        return True

    def read(self, n=-1):
        raise OSError("disk gone")


def make_conn(sock) -> Connection:
    return Connection(socket=sock, address=("127.0.0.1", 50000))


class TestRecv:
    """Tests for Connection.recv()."""

    def test_bounded(self):
        conn = make_conn(FlakySocket(chunks=[b"abcdef"]))
        assert conn.recv(3) == b"abc"
        assert conn.bytes_received == 3

    def test_eof(self):
        assert make_conn(FlakySocket()).recv(10) == b""

    def test_zero_request(self):
        assert make_conn(FlakySocket(chunks=[b"x"])).recv(0) == b""

    def test_peer_closed_reads_as_eof(self):
        left, right = socket.socketpair()
        try:
            conn = make_conn(left)
            right.close()
            assert conn.recv(10) == b""
        finally:
            left.close()


class TestSend:
    """Tests for send_all() and stream_from()."""

    def test_send_all(self):
        sock = FlakySocket()
        conn = make_conn(sock)
        assert conn.send_all(b"hello")
        assert sock.sent == [b"hello"]
        assert conn.bytes_sent == 5

    def test_send_all_failure(self):
        conn = make_conn(FlakySocket(fail_after=0))
        assert conn.send_all(b"hello") is False
        assert conn.bytes_sent == 0

    def test_stream_whole_file(self):
        sock = FlakySocket()
        sent = make_conn(sock).stream_from(io.BytesIO(b"x" * 10000), 10000, chunk_size=4096)
        assert sent == 10000
        assert [len(c) for c in sock.sent] == [4096, 4096, 1808]

    def test_stream_stops_at_length(self):
        sock = FlakySocket()
        sent = make_conn(sock).stream_from(io.BytesIO(b"abcdef"), 4, chunk_size=3)
        assert sent == 4
        assert b"".join(sock.sent) == b"abcd"

    def test_stream_short_source(self):
        """A file that shrank since fstat() just ends the body early."""
        sent = make_conn(FlakySocket()).stream_from(io.BytesIO(b"abc"), 100)
        assert sent == 3

    def test_stream_write_failure_stops_silently(self):
        sock = FlakySocket(fail_after=1)
        sent = make_conn(sock).stream_from(io.BytesIO(b"x" * 10000), 10000, chunk_size=4096)
        assert sent == 4096
        assert len(sock.sent) == 1

    def test_stream_read_failure_stops_silently(self):
        assert make_conn(FlakySocket()).stream_from(BrokenFile(), 100) == 0


class TestClose:
    """Tests for Connection.close()."""

    def test_close_sequence(self):
        sock = FlakySocket(chunks=[b"leftover"])
        conn = make_conn(sock)
        conn.close()
        assert sock.shut_down
        assert sock.closed
        assert conn.state == ConnectionState.CLOSED

    def test_close_twice(self):
        sock = FlakySocket()
        with make_conn(sock) as conn:
            pass
        conn.close()
        assert sock.closed


class TestStreamedResponse:
    """A download whose peer vanishes mid-body."""

    @pytest.fixture
    def server(self, config) -> FileBridgeServer:
        return FileBridgeServer(config)

    def streamed(self, source, length):
        return (ResponseBuilder()
            .content_type(OCTET_STREAM)
            .stream(source, length)
            .build())

    def test_short_body_no_exception_file_closed(self, server):
        sock = FlakySocket(fail_after=2)  # head + first chunk
        source = TrackingFile(b"x" * 10000)

        assert server._send_response(make_conn(sock), self.streamed(source, 10000)) is False
        assert source.was_closed
        head, body = sock.sent
        assert b"Content-Length: 10000\r\n" in head
        assert len(body) == 4096

    def test_head_failure_still_closes_file(self, server):
        source = TrackingFile(b"data")
        assert server._send_response(make_conn(FlakySocket(fail_after=0)), self.streamed(source, 4)) is False
        assert source.was_closed

    def test_complete_body(self, server):
        sock = FlakySocket()
        source = TrackingFile(b"data")
        assert server._send_response(make_conn(sock), self.streamed(source, 4)) is True
        assert sock.sent[-1] == b"data"
        assert source.was_closed
