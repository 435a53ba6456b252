"""
=============================================================================
REQUEST READER AND PARSER
=============================================================================

Turns the raw byte stream of a connection into a Request.

=============================================================================
WHAT A REQUEST LOOKS LIKE ON THE WIRE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     REQUEST AS READ FROM THE SOCKET                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   PUT /upload/notes.txt HTTP/1.0\r\n      ─┐                        │
    │   Content-Length: 11\r\n                    │ header block           │
    │   \r\n                                     ─┘ ◄── boundary           │
    │   hello                                    ─┐ body prefix (already  │
    │                                             │ in the buffer)        │
    │   ........ world                           ─┘ remainder (streamed   │
    │                                               later, on demand)     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The reader stops at the boundary. Whatever part of the body arrived in
the same recv() calls is kept as the "body prefix"; the rest is pulled
from the socket by the handler that needs it (upload, exec), so a body
never has to fit into memory.

=============================================================================
READER CONTRACT
=============================================================================

    read until  "\r\n\r\n"  or the looser  "\n\n"   ──► RequestHead
    buffer full, no boundary                        ──► ProtocolError
    peer closed / reset / timed out                 ──► ProtocolError

A ProtocolError from the reader gets NO response: the connection is
just closed. Oversized or garbled headers are not worth an answer.

=============================================================================
PARSER CONTRACT
=============================================================================

    first line  "GET /some/path HTTP/1.0"
                 ─┬─ ──────┬─────
                  │        └── target (truncated to 511 bytes)
                  └─────────── method (truncated to 7 bytes)

    fewer than two tokens  ──► MalformedRequestError  ──► 400

    Content-Length lookup: case-insensitive, leading blanks skipped,
    leading base-10 integer. Missing or unparsable ──► ABSENT (-1).
    Callers treat ABSENT and negative values alike: no valid length.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Tuple, Union
from urllib.parse import unquote
import re

from ..core.buffers import BoundedBuffer


ABSENT = -1
"""Sentinel returned by find_content_length() when no valid value exists."""


class ProtocolError(Exception):
    """
    Raised when the request stream cannot be turned into a request.

    status_code is None when no response should be sent at all (the
    connection is closed silently), or the status to answer with when
    a response is still possible.
    """

    status_code: Optional[int] = None

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class MalformedRequestError(ProtocolError):
    """The request line does not hold a method and a target."""

    status_code = 400


class IncompleteBodyError(Exception):
    """
    The peer stopped sending before the declared body length was reached.
    """

    def __init__(self, expected: int, received: int):
        super().__init__(
            f"Incomplete body: expected {expected} bytes, got {received}"
        )
        self.expected = expected
        self.received = received


# =============================================================================
# HEADER BOUNDARY
# =============================================================================

def find_header_boundary(data: Union[bytes, BoundedBuffer], start: int = 0) -> Optional[Tuple[int, int]]:
    """
    Locate the blank line that ends the header block.

    Both the standard CRLF CRLF and a bare LF LF are accepted; the
    earliest occurrence wins.

    Args:
        data: Bytes read so far (bytes or a BoundedBuffer).
        start: Offset to start searching from.

    Returns:
        (header_end, body_offset) or None if no boundary is present yet.
        header_end is the offset of the terminator, body_offset the first
        byte after it.
    """
    crlf = data.find(b"\r\n\r\n", start)
    lf = data.find(b"\n\n", start)

    if crlf == -1 and lf == -1:
        return None
    if lf == -1 or (crlf != -1 and crlf < lf):
        return crlf, crlf + 4
    return lf, lf + 2


@dataclass
class RequestHead:
    """
    Result of reading a request head off a connection.

    Attributes:
        data: Every byte read so far (header block, terminator, body prefix).
        header_end: Offset of the header terminator.
        body_offset: Offset of the first body byte.
    """

    data: bytes
    header_end: int
    body_offset: int

    @property
    def total(self) -> int:
        """Total number of bytes read."""
        return len(self.data)

    @property
    def header_block(self) -> bytes:
        """Request line and headers, without the terminator."""
        return self.data[:self.header_end]

    @property
    def body_prefix(self) -> bytes:
        """Body bytes that arrived together with the header block."""
        return self.data[self.body_offset:]


class RequestReader:
    """
    Reads a request head from a connection into a bounded buffer.

    =========================================================================
    READ LOOP
    =========================================================================

        ┌──────────────────────────┐
        │ buffer full?             │──yes──► ProtocolError (no reply)
        └────────────┬─────────────┘
                     │ no
        ┌────────────▼─────────────┐
        │ recv(space left)         │──b""──► ProtocolError (no reply)
        └────────────┬─────────────┘
                     │
        ┌────────────▼─────────────┐
        │ boundary in buffer?      │──no───► loop
        └────────────┬─────────────┘
                     │ yes
                     ▼
                RequestHead

    The buffer belongs to this one read; nothing is shared between
    connections.

    =========================================================================
    """

    def __init__(self, capacity: int = 16384):
        self.capacity = capacity

    def read(self, conn) -> RequestHead:
        """
        Read from conn until the header boundary is found.

        Args:
            conn: Anything with a recv(max_bytes) -> bytes method
                  (normally a core.connection.Connection).

        Raises:
            ProtocolError: Buffer exhausted or connection ended first.
        """
        buffer = BoundedBuffer(self.capacity)
        search_from = 0

        while True:
            if buffer.is_full:
                raise ProtocolError(
                    f"Header block exceeds {self.capacity} bytes"
                )

            chunk = conn.recv(buffer.space)
            if not chunk:
                raise ProtocolError(
                    f"Connection ended after {len(buffer)} bytes, "
                    f"before the header boundary"
                )
            buffer.append(chunk)

            boundary = find_header_boundary(buffer, search_from)
            if boundary is not None:
                header_end, body_offset = boundary
                return RequestHead(data=bytes(buffer), header_end=header_end, body_offset=body_offset)

            # A terminator may straddle two reads
            search_from = max(0, len(buffer) - 3)


@dataclass
class Request:
    """
    A parsed request.

    =========================================================================
    ATTRIBUTES
    =========================================================================

        method:          Method token as sent (router compares it
                         case-insensitively)

        raw_target:      Target token as sent, after length truncation

        path:            Target without query string or fragment,
                         percent-decoded. Used for routing and as the
                         base for filesystem paths.

        header_block:    Raw request line + headers

        body_prefix:     Body bytes already read with the header block

        declared_length: Content-Length, or None when absent/negative

        path_params:     Filled in by the router ("*path" remainder)

        connection:      Source of the body remainder

    =========================================================================
    """

    method: str
    raw_target: str
    path: str = "/"
    header_block: bytes = b""
    body_prefix: bytes = b""
    declared_length: Optional[int] = None

    # Router-injected parameters
    path_params: Dict[str, str] = field(default_factory=dict)

    # Metadata
    client_address: Tuple[str, int] = ("", 0)
    connection: Optional[Any] = field(default=None, repr=False)

    def iter_body(self, chunk_size: int = 4096) -> Iterator[bytes]:
        """
        Yield the body in chunks, exactly declared_length bytes in total.

        The body prefix comes first (capped at the declared length); the
        remainder is read from the connection in reads of at most
        chunk_size bytes.

        Raises:
            ValueError: No valid declared length.
            IncompleteBodyError: The peer stopped sending too early.
        """
        if self.declared_length is None:
            raise ValueError("Request has no valid Content-Length")

        expected = self.declared_length
        received = 0

        prefix = self.body_prefix[:expected]
        if prefix:
            received += len(prefix)
            yield prefix

        while received < expected:
            if self.connection is None:
                raise IncompleteBodyError(expected, received)
            chunk = self.connection.recv(min(chunk_size, expected - received))
            if not chunk:
                raise IncompleteBodyError(expected, received)
            received += len(chunk)
            yield chunk


# =============================================================================
# HEADER LOOKUP
# =============================================================================

_LEADING_INT = re.compile(rb"[+-]?\d+")


def find_header(header_block: bytes, name: str) -> Optional[str]:
    """
    Find a header value by name (case-insensitive).

    Scans the lines of the header block for "Name:" and returns the
    value with leading blanks removed. The first match wins.

    Returns:
        The raw value (latin-1 decoded), or None if not present.
    """
    key = name.lower().encode("latin-1") + b":"
    for line in header_block.split(b"\n"):
        if line[:len(key)].lower() == key:
            value = line[len(key):].lstrip(b" \t").rstrip(b"\r")
            return value.decode("latin-1")
    return None


def find_content_length(header_block: bytes) -> int:
    """
    Extract the Content-Length value.

    Only the leading base-10 integer of the value is used
    ("12abc" reads as 12).

    Returns:
        The parsed value, or ABSENT (-1) if the header is missing or
        its value has no digits. Negative values are returned as-is;
        callers treat any negative number as "no valid length".
    """
    value = find_header(header_block, "Content-Length")
    if value is None:
        return ABSENT
    match = _LEADING_INT.match(value.encode("latin-1"))
    if not match:
        return ABSENT
    return int(match.group())


def route_path(target: str) -> str:
    """
    Reduce a request target to the decoded path used for routing.

    "/file/a%20b.txt?x=1#top" → "/file/a b.txt"
    """
    path = target.split("?", 1)[0].split("#", 1)[0]
    return unquote(path, errors="surrogateescape")


class RequestParser:
    """
    Parses a RequestHead into a Request.

    The parser is narrow: it reads the method and target
    from the request line and, on demand, a single header. Everything
    else in the header block is ignored.
    """

    def __init__(self, max_method_length: int = 7, max_target_length: int = 511):
        """
        Args:
            max_method_length: Method tokens are truncated to this many bytes.
            max_target_length: Target tokens are truncated to this many bytes.
        """
        self.max_method_length = max_method_length
        self.max_target_length = max_target_length

    def parse_request_line(self, header_block: bytes) -> Tuple[str, str]:
        """
        Extract (method, target) from the first line of the header block.

        Tokens are separated by any run of whitespace; a third token
        (the protocol version) and anything after it are ignored.

        Raises:
            MalformedRequestError: Fewer than two tokens on the first line.
        """
        first_line = header_block.split(b"\n", 1)[0]
        tokens = first_line.split()
        if len(tokens) < 2:
            raise MalformedRequestError("Malformed request line")

        method = tokens[0][:self.max_method_length].decode("latin-1")
        target = tokens[1][:self.max_target_length].decode("utf-8", errors="surrogateescape")
        return method, target

    def parse(
        self,
        head: RequestHead,
        conn=None,
        client_address: Tuple[str, int] = ("", 0),
    ) -> Request:
        """
        Build a Request from a RequestHead.

        Args:
            head: Output of RequestReader.read().
            conn: Connection the body remainder will be read from.
            client_address: Client's (ip, port) for logging.

        Raises:
            MalformedRequestError: See parse_request_line().
        """
        header_block = head.header_block
        method, target = self.parse_request_line(header_block)

        length = find_content_length(header_block)

        return Request(
            method=method,
            raw_target=target,
            path=route_path(target),
            header_block=header_block,
            body_prefix=head.body_prefix,
            declared_length=length if length >= 0 else None,
            client_address=client_address,
            connection=conn,
        )
