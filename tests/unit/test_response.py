"""
Unit tests for response framing.
"""

import io

import pytest

from filebridge.http.response import (
    HTTPResponse,
    ResponseBuilder,
    OCTET_STREAM,
    TEXT_PLAIN,
    bad_request,
    created,
    internal_error,
    method_not_allowed,
    not_found,
    ok,
)
from filebridge.http.status_codes import HTTPStatus


class TestHTTPResponse:
    """Tests for HTTPResponse."""

    def test_status_line(self):
        response = HTTPResponse(status=HTTPStatus.NOT_FOUND)
        assert response.status_line == "HTTP/1.0 404 Not Found"

    def test_head_bytes_layout(self):
        """Fixed header order, exact length, blank line at the end."""
        response = HTTPResponse(body=b"Deleted\n")
        assert response.head_bytes("filebridge") == (
            b"HTTP/1.0 200 OK\r\n"
            b"Server: filebridge\r\n"
            b"Content-Type: text/plain; charset=utf-8\r\n"
            b"Content-Length: 8\r\n"
            b"Connection: close\r\n"
            b"\r\n"
        )

    def test_extra_headers_in_order(self):
        response = ResponseBuilder().header("X-B", "2").header("X-A", "1").build()
        head = response.head_bytes()
        assert head.index(b"X-B: 2") < head.index(b"X-A: 1")
        assert head.index(b"Connection: close") < head.index(b"X-B: 2")
        assert head.endswith(b"X-A: 1\r\n\r\n")

    def test_empty_body(self):
        response = HTTPResponse(body=b"")
        assert b"Content-Length: 0\r\n" in response.head_bytes()

    def test_streamed_length(self):
        """A streamed body announces stream_length, not len(body)."""
        response = HTTPResponse(body_stream=io.BytesIO(b"abc"), stream_length=3)
        assert response.length == 3
        assert b"Content-Length: 3\r\n" in response.head_bytes()


class TestResponseBuilder:
    """Tests for ResponseBuilder."""

    def test_text(self):
        response = ResponseBuilder().text("Uploaded\n").build()
        assert response.content_type == TEXT_PLAIN
        assert response.body == b"Uploaded\n"

    def test_stream(self):
        source = io.BytesIO(b"data")
        response = (ResponseBuilder()
            .content_type(OCTET_STREAM)
            .header("Content-Disposition", 'attachment; filename="a"')
            .stream(source, 4)
            .build())
        assert response.body_stream is source
        assert response.length == 4
        assert response.extra_headers == [("Content-Disposition", 'attachment; filename="a"')]

    def test_builds_independent_header_lists(self):
        builder = ResponseBuilder().header("X-A", "1")
        first = builder.build()
        builder.header("X-B", "2")
        assert first.extra_headers == [("X-A", "1")]


class TestConvenienceFunctions:
    """Tests for the one-line response helpers."""

    def test_ok(self):
        response = ok("Deleted\n")
        assert response.status == HTTPStatus.OK
        assert response.body == b"Deleted\n"

    def test_created(self):
        response = created()
        assert response.status == 201
        assert response.body == b"Uploaded\n"

    def test_bad_request_default(self):
        assert bad_request().body == b"Bad Request\n"

    def test_bad_request_message(self):
        response = bad_request("Invalid filename\n")
        assert response.status == 400
        assert response.body == b"Invalid filename\n"

    def test_not_found(self):
        response = not_found()
        assert response.status == 404
        assert response.body == b"Not Found\n"

    def test_method_not_allowed(self):
        response = method_not_allowed(["GET", "PUT", "POST"])
        assert response.status == 405
        assert response.body == b"Method Not Allowed\n"
        assert ("Allow", "GET, PUT, POST") in response.extra_headers

    def test_internal_error(self):
        response = internal_error()
        assert response.status == 500
        assert response.body == b"Internal Server Error\n"


class TestHTTPStatus:
    """Tests for HTTPStatus."""

    @pytest.mark.parametrize("status,phrase", [
        (HTTPStatus.OK, "OK"),
        (HTTPStatus.CREATED, "Created"),
        (HTTPStatus.BAD_REQUEST, "Bad Request"),
        (HTTPStatus.NOT_FOUND, "Not Found"),
        (HTTPStatus.METHOD_NOT_ALLOWED, "Method Not Allowed"),
        (HTTPStatus.INTERNAL_SERVER_ERROR, "Internal Server Error"),
    ])
    def test_phrases(self, status, phrase):
        assert status.phrase == phrase

    def test_server_error(self):
        assert HTTPStatus.INTERNAL_SERVER_ERROR.is_server_error
        assert not HTTPStatus.NOT_FOUND.is_server_error
        assert not HTTPStatus.OK.is_server_error
