"""
=============================================================================
RESPONSE FRAMING
=============================================================================

Builds the fixed-shape HTTP/1.0 responses filebridge sends.

=============================================================================
RESPONSE ANATOMY
=============================================================================

Every response has the same header set, in the same order:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        RESPONSE STRUCTURE                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    HTTP/1.0 200 OK\r\n                    ◄── status line            │
    │    Server: filebridge\r\n                                            │
    │    Content-Type: text/plain; charset=utf-8\r\n                       │
    │    Content-Length: 8\r\n                  ◄── always exact           │
    │    Connection: close\r\n                                             │
    │    Content-Disposition: ...\r\n           ◄── extra headers, in      │
    │    \r\n                                       the order given        │
    │    Deleted\n                              ◄── body                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The length is always known before the first byte goes out. A body is
either held in memory (body) or streamed from an open file
(body_stream + stream_length, used for downloads).

Extra headers are an ordered list of (name, value) pairs. Names are
not de-duplicated; callers add each header once.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import BinaryIO, List, Optional, Tuple, Union

from .status_codes import HTTPStatus


PROTOCOL_VERSION = "HTTP/1.0"

TEXT_PLAIN = "text/plain; charset=utf-8"
TEXT_HTML = "text/html; charset=utf-8"
OCTET_STREAM = "application/octet-stream"


@dataclass
class HTTPResponse:
    """
    Represents a response to be sent to the client.

    =========================================================================
    RESPONSE LIFECYCLE
    =========================================================================

        Handler returns         head_bytes()             Connection
        HTTPResponse   ─────►   status line +   ─────►   send_all(head)
            │                   headers                  send_all(body)
            │                                              or
            │                                          stream_from(file)
        HTTPResponse(
          status=200,
          content_type="text/plain; charset=utf-8",
          body=b"Deleted\\n",
        )

    =========================================================================
    """

    status: HTTPStatus = HTTPStatus.OK
    content_type: str = TEXT_PLAIN
    extra_headers: List[Tuple[str, str]] = field(default_factory=list)
    body: bytes = b""

    # Streamed body (downloads). Takes precedence over body when set.
    body_stream: Optional[BinaryIO] = field(default=None, repr=False)
    stream_length: int = 0

    @property
    def status_line(self) -> str:
        """e.g. "HTTP/1.0 404 Not Found" """
        return f"{PROTOCOL_VERSION} {int(self.status)} {self.status.phrase}"

    @property
    def length(self) -> int:
        """Value of the Content-Length header."""
        if self.body_stream is not None:
            return self.stream_length
        return len(self.body)

    def head_bytes(self, server_name: str = "filebridge") -> bytes:
        """
        Serialize the status line and headers, terminated by a blank line.

        Header values must not contain CR or LF; handlers sanitize
        anything derived from the request before it gets here.
        """
        lines = [
            self.status_line,
            f"Server: {server_name}",
            f"Content-Type: {self.content_type}",
            f"Content-Length: {self.length}",
            "Connection: close",
        ]
        for name, value in self.extra_headers:
            lines.append(f"{name}: {value}")
        lines.append("")
        lines.append("")
        return "\r\n".join(lines).encode("utf-8", errors="surrogateescape")


class ResponseBuilder:
    """
    Fluent builder for responses.

    Usage:
        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .content_type(OCTET_STREAM)
            .header("Content-Disposition", 'attachment; filename="a.txt"')
            .stream(fileobj, size)
            .build())

    Each method returns self except build().
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._content_type = TEXT_PLAIN
        self._headers: List[Tuple[str, str]] = []
        self._body = b""
        self._stream: Optional[BinaryIO] = None
        self._stream_length = 0

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = status
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        self._content_type = content_type
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        """Add an extra header (kept in insertion order)."""
        self._headers.append((name, value))
        return self

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """Set an in-memory body. Strings are encoded as UTF-8."""
        if isinstance(body, str):
            body = body.encode("utf-8")
        self._body = body
        self._stream = None
        return self

    def text(self, text: str) -> "ResponseBuilder":
        """Set a text/plain body."""
        return self.content_type(TEXT_PLAIN).body(text)

    def stream(self, source: BinaryIO, length: int) -> "ResponseBuilder":
        """
        Stream the body from an open binary file.

        Args:
            source: File positioned at the first byte to send.
            length: Exact number of bytes announced in Content-Length.
        """
        self._stream = source
        self._stream_length = length
        self._body = b""
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            content_type=self._content_type,
            extra_headers=list(self._headers),
            body=self._body,
            body_stream=self._stream,
            stream_length=self._stream_length,
        )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================
#
# One-liners for the plain-text responses the handlers send.
#
#     return ok("Deleted\n")
#     return bad_request("Invalid filename\n")
#
# =============================================================================

def text_response(status: HTTPStatus, message: str) -> HTTPResponse:
    """A text/plain response with the given status and body."""
    return ResponseBuilder().status(status).text(message).build()


def ok(message: str = "") -> HTTPResponse:
    """200 OK with a text body."""
    return text_response(HTTPStatus.OK, message)


def created(message: str = "Uploaded\n") -> HTTPResponse:
    """201 Created, sent after an upload is stored."""
    return text_response(HTTPStatus.CREATED, message)


def bad_request(message: str = "Bad Request\n") -> HTTPResponse:
    """400 Bad Request."""
    return text_response(HTTPStatus.BAD_REQUEST, message)


def not_found(message: str = "Not Found\n") -> HTTPResponse:
    """404 Not Found."""
    return text_response(HTTPStatus.NOT_FOUND, message)


def method_not_allowed(allowed_methods: List[str]) -> HTTPResponse:
    """
    405 Method Not Allowed.

    Includes an Allow header listing every method that has a route.
    """
    return (ResponseBuilder()
        .status(HTTPStatus.METHOD_NOT_ALLOWED)
        .header("Allow", ", ".join(allowed_methods))
        .text("Method Not Allowed\n")
        .build())


def internal_error(message: str = "Internal Server Error\n") -> HTTPResponse:
    """500 Internal Server Error. Keep the message generic."""
    return text_response(HTTPStatus.INTERNAL_SERVER_ERROR, message)
