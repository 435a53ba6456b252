"""
=============================================================================
PROTOCOL ENGINE
=============================================================================

The restricted HTTP/1.0 dialect filebridge speaks.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ request.py       bytes ──► RequestHead ──► Request                  │
    │                  (bounded header read, request-line parse,          │
    │                   Content-Length lookup, body streaming)            │
    ├─────────────────────────────────────────────────────────────────────┤
    │ router.py        (method, path) ──► handler                         │
    │                  exact and "*name" prefix patterns, 405 vs 404      │
    ├─────────────────────────────────────────────────────────────────────┤
    │ response.py      HTTPResponse ──► status line + fixed headers       │
    ├─────────────────────────────────────────────────────────────────────┤
    │ status_codes.py  the six status codes in use                        │
    └─────────────────────────────────────────────────────────────────────┘

One request per connection; no keep-alive, no chunked encoding, no
pipelining.

=============================================================================
"""

from .request import (
    ABSENT,
    IncompleteBodyError,
    MalformedRequestError,
    ProtocolError,
    Request,
    RequestHead,
    RequestParser,
    RequestReader,
    find_content_length,
    find_header,
    find_header_boundary,
)
from .response import (
    HTTPResponse,
    ResponseBuilder,
    bad_request,
    created,
    internal_error,
    method_not_allowed,
    not_found,
    ok,
    text_response,
)
from .router import Route, RouteMatch, Router
from .status_codes import HTTPStatus

__all__ = [
    # Request reading and parsing
    "ABSENT",
    "IncompleteBodyError",
    "MalformedRequestError",
    "ProtocolError",
    "Request",
    "RequestHead",
    "RequestParser",
    "RequestReader",
    "find_content_length",
    "find_header",
    "find_header_boundary",

    # Response framing
    "HTTPResponse",
    "ResponseBuilder",
    "bad_request",
    "created",
    "internal_error",
    "method_not_allowed",
    "not_found",
    "ok",
    "text_response",

    # Routing
    "Route",
    "RouteMatch",
    "Router",

    # Status codes
    "HTTPStatus",
]
