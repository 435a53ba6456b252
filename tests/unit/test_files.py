"""
Unit tests for download, upload and delete.
"""

import os

import pytest

from filebridge.handlers.files import FileHandler, display_name
from filebridge.http.status_codes import HTTPStatus

from conftest import make_request


@pytest.fixture
def files(tmp_path) -> FileHandler:
    return FileHandler(str(tmp_path), chunk_size=4)


def request_for(method, route, tail, **kwargs):
    """A request for route + tail with the router's "path" capture filled in."""
    return make_request(method, route + tail, path_params={"path": tail}, **kwargs)


def read_stream(response) -> bytes:
    try:
        return response.body_stream.read()
    finally:
        response.body_stream.close()


class TestDisplayName:
    """Tests for display_name()."""

    @pytest.mark.parametrize("remainder,expected", [
        ("docs/report.pdf", "report.pdf"),
        ("report.pdf", "report.pdf"),
        ("docs/", "docs/"),
        ('a"b.txt', 'a\\"b.txt'),
        ("a\\b", "a\\\\b"),
        ("evil\r\nSet-Cookie: x", "evilSet-Cookie: x"),
    ])
    def test_display_name(self, remainder, expected):
        assert display_name(remainder) == expected


class TestDownload:
    """Tests for FileHandler.download()."""

    def test_streams_file(self, files, tmp_path):
        (tmp_path / "docs").mkdir()
        (tmp_path / "docs" / "a.txt").write_bytes(b"hello world")

        response = files.download(request_for("GET", "/file/", "docs/a.txt"))
        assert response.status == HTTPStatus.OK
        assert response.content_type == "application/octet-stream"
        assert response.length == 11
        assert ("Content-Disposition", 'attachment; filename="a.txt"') in response.extra_headers
        assert read_stream(response) == b"hello world"

    def test_empty_file(self, files, tmp_path):
        (tmp_path / "empty").write_bytes(b"")
        response = files.download(request_for("GET", "/file/", "empty"))
        assert response.status == HTTPStatus.OK
        assert response.length == 0
        assert read_stream(response) == b""

    def test_missing_is_404(self, files):
        response = files.download(request_for("GET", "/file/", "nope.txt"))
        assert response.status == HTTPStatus.NOT_FOUND
        assert response.body == b"Not Found\n"

    def test_directory_is_404(self, files, tmp_path):
        (tmp_path / "sub").mkdir()
        assert files.download(request_for("GET", "/file/", "sub")).status == HTTPStatus.NOT_FOUND

    def test_root_is_404(self, files):
        assert files.download(request_for("GET", "/file/", "")).status == HTTPStatus.NOT_FOUND

    @pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="needs mkfifo")
    def test_fifo_is_404(self, files, tmp_path):
        """A FIFO with no writer must not block the server."""
        os.mkfifo(str(tmp_path / "pipe"))
        assert files.download(request_for("GET", "/file/", "pipe")).status == HTTPStatus.NOT_FOUND

    def test_traversal_is_400(self, files):
        response = files.download(request_for("GET", "/file/", "../etc/passwd"))
        assert response.status == HTTPStatus.BAD_REQUEST
        assert response.body == b"Invalid filename\n"


class TestUpload:
    """Tests for FileHandler.upload()."""

    def test_prefix_and_remainder(self, files, tmp_path):
        request = request_for(
            "PUT", "/upload/", "a.txt",
            body_prefix=b"hel", declared_length=11, remainder=(b"lo wo", b"rld"),
        )
        response = files.upload(request)
        assert response.status == HTTPStatus.CREATED
        assert response.body == b"Uploaded\n"
        assert (tmp_path / "a.txt").read_bytes() == b"hello world"

    def test_excess_prefix_ignored(self, files, tmp_path):
        request = request_for("PUT", "/upload/", "a.txt", body_prefix=b"abcdef", declared_length=3)
        assert files.upload(request).status == HTTPStatus.CREATED
        assert (tmp_path / "a.txt").read_bytes() == b"abc"

    def test_overwrites(self, files, tmp_path):
        (tmp_path / "a.txt").write_bytes(b"old contents that are longer")
        request = request_for("PUT", "/upload/", "a.txt", body_prefix=b"new", declared_length=3)
        assert files.upload(request).status == HTTPStatus.CREATED
        assert (tmp_path / "a.txt").read_bytes() == b"new"

    def test_zero_length(self, files, tmp_path):
        request = request_for("PUT", "/upload/", "empty.bin", declared_length=0)
        assert files.upload(request).status == HTTPStatus.CREATED
        assert (tmp_path / "empty.bin").read_bytes() == b""

    def test_missing_length_is_400(self, files, tmp_path):
        request = request_for("PUT", "/upload/", "a.txt", body_prefix=b"data")
        response = files.upload(request)
        assert response.status == HTTPStatus.BAD_REQUEST
        assert response.body == b"Missing Content-Length\n"
        assert not (tmp_path / "a.txt").exists()

    @pytest.mark.parametrize("remainder", ["", "/", "./"])
    def test_root_is_400(self, files, remainder):
        request = request_for("PUT", "/upload/", remainder, declared_length=0)
        response = files.upload(request)
        assert response.status == HTTPStatus.BAD_REQUEST
        assert response.body == b"Invalid filename\n"

    def test_traversal_is_400(self, files, tmp_path):
        request = request_for("PUT", "/upload/", "../escape.txt", declared_length=0)
        assert files.upload(request).status == HTTPStatus.BAD_REQUEST
        assert not (tmp_path.parent / "escape.txt").exists()

    def test_missing_directory_is_500(self, files):
        request = request_for("PUT", "/upload/", "nodir/a.txt", declared_length=0)
        assert files.upload(request).status == HTTPStatus.INTERNAL_SERVER_ERROR

    def test_short_body_is_500_partial_file_kept(self, files, tmp_path):
        request = request_for(
            "PUT", "/upload/", "a.txt",
            body_prefix=b"abc", declared_length=10, remainder=(b"def",),
        )
        response = files.upload(request)
        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert (tmp_path / "a.txt").read_bytes() == b"abcdef"

    def test_new_file_mode(self, files, tmp_path):
        old = os.umask(0o022)
        try:
            request = request_for("PUT", "/upload/", "m.txt", declared_length=0)
            files.upload(request)
        finally:
            os.umask(old)
        assert (tmp_path / "m.txt").stat().st_mode & 0o777 == 0o644


class TestDelete:
    """Tests for FileHandler.delete()."""

    def test_delete_then_404(self, files, tmp_path):
        (tmp_path / "a.txt").write_bytes(b"x")

        response = files.delete(request_for("GET", "/delete/", "a.txt"))
        assert response.status == HTTPStatus.OK
        assert response.body == b"Deleted\n"
        assert not (tmp_path / "a.txt").exists()

        response = files.delete(request_for("GET", "/delete/", "a.txt"))
        assert response.status == HTTPStatus.NOT_FOUND
        assert response.body == b"File not found or cannot delete\n"

    def test_directory_not_removed(self, files, tmp_path):
        (tmp_path / "sub").mkdir()
        response = files.delete(request_for("GET", "/delete/", "sub"))
        assert response.status == HTTPStatus.NOT_FOUND
        assert (tmp_path / "sub").is_dir()

    def test_root_is_400(self, files):
        assert files.delete(request_for("GET", "/delete/", "")).status == HTTPStatus.BAD_REQUEST

    def test_traversal_is_400(self, files):
        response = files.delete(request_for("GET", "/delete/", "a/../../b"))
        assert response.status == HTTPStatus.BAD_REQUEST
        assert response.body == b"Invalid filename\n"
