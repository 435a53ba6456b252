"""
=============================================================================
FILE OPERATIONS
=============================================================================

Download, upload and delete of single regular files under the service
root.

    ┌──────────────────────┬──────────────────────────────────────────────┐
    │ GET  /file/<path>    │ stream the file (application/octet-stream)  │
    │ PUT  /upload/<path>  │ store the request body at <path>            │
    │ GET  /delete/<path>  │ unlink <path>                               │
    └──────────────────────┴──────────────────────────────────────────────┘

=============================================================================
STATUS MAPPING
=============================================================================

    ┌───────────────────────────────┬──────────┬──────────┬──────────┐
    │ condition                     │ download │ upload   │ delete   │
    ├───────────────────────────────┼──────────┼──────────┼──────────┤
    │ path rejected by sanitizer    │ 400      │ 400      │ 400      │
    │ path is the root itself       │ 404 (*)  │ 400      │ 400      │
    │ missing / not a regular file  │ 404      │   -      │ 404      │
    │ Content-Length absent         │   -      │ 400      │   -      │
    │ open/create fails             │ 404      │ 500      │   -      │
    │ body ends early / write fails │ silent   │ 500      │   -      │
    │ unlink fails                  │   -      │   -      │ 404      │
    │ success                       │ 200      │ 201      │ 200      │
    └───────────────────────────────┴──────────┴──────────┴──────────┘

    (*) the root is a directory, so it is "not a regular file"

A download has committed its Content-Length before streaming starts, so
a failure mid-stream just ends the body early. A failed upload leaves
whatever was written so far on disk.

=============================================================================
"""

import logging
import os
import stat

from ..http.request import IncompleteBodyError, Request
from ..http.response import (
    HTTPResponse, ResponseBuilder, OCTET_STREAM,
    bad_request, created, internal_error, not_found, ok,
)
from .paths import PathError, is_root, normalize_path, resolve


logger = logging.getLogger(__name__)


def display_name(remainder: str) -> str:
    """
    File name offered to the client in Content-Disposition.

    The last segment of the requested path, or the whole path when it has
    no slash or ends with one. Quotes and backslashes are escaped and
    control characters dropped, so the value is safe inside a quoted
    header parameter.

        "docs/report.pdf"  → "report.pdf"
        'a"b.txt'          → 'a\\"b.txt'
    """
    cut = remainder.rfind("/")
    name = remainder[cut + 1:] if 0 <= cut < len(remainder) - 1 else remainder

    cleaned = []
    for ch in name:
        if ord(ch) < 32 or ord(ch) == 127:
            continue
        if ch in ('"', "\\"):
            cleaned.append("\\")
        cleaned.append(ch)
    return "".join(cleaned)


class FileHandler:
    """
    Handlers for the single-file routes.

    Usage:
        files = FileHandler(root_dir="/srv/share")
        router.add_route("GET", "/file/*path", files.download)
        router.add_route("GET", "/delete/*path", files.delete)
        router.add_route("PUT", "/upload/*path", files.upload)
    """

    def __init__(self, root_dir: str, max_path_length: int = 512, chunk_size: int = 4096):
        self.root_dir = root_dir
        self.max_path_length = max_path_length
        self.chunk_size = chunk_size

    def _target(self, request: Request) -> str:
        """
        Sanitize the route remainder into a root-relative path.

        Raises:
            PathError: The path is rejected.
        """
        remainder = request.path_params.get("path", "")
        try:
            return normalize_path(remainder, self.max_path_length)
        except PathError as e:
            logger.warning(
                f"Rejected path {remainder!r} from {request.client_address[0]}: {e}"
            )
            raise

    # =========================================================================
    # DOWNLOAD
    # =========================================================================

    def download(self, request: Request) -> HTTPResponse:
        """
        Stream a regular file.

        The file is opened non-blocking first so that a FIFO or device
        node cannot stall the server; only regular files are served.
        The returned response owns the open file; whoever sends it
        closes it.
        """
        try:
            normalized = self._target(request)
        except PathError:
            return bad_request("Invalid filename\n")

        fs_path = resolve(self.root_dir, normalized)
        try:
            fd = os.open(fs_path, os.O_RDONLY | os.O_NONBLOCK)
        except OSError as e:
            logger.debug(f"Cannot open {fs_path}: {e}")
            return not_found()

        try:
            st = os.fstat(fd)
        except OSError:
            os.close(fd)
            return not_found()
        if not stat.S_ISREG(st.st_mode):
            os.close(fd)
            return not_found()

        os.set_blocking(fd, True)
        source = os.fdopen(fd, "rb")

        name = display_name(request.path_params.get("path", ""))
        return (ResponseBuilder()
            .content_type(OCTET_STREAM)
            .header("Content-Disposition", f'attachment; filename="{name}"')
            .stream(source, st.st_size)
            .build())

    # =========================================================================
    # UPLOAD
    # =========================================================================

    def upload(self, request: Request) -> HTTPResponse:
        """
        Store the request body at the target path.

        Exactly declared_length bytes are written: the body prefix that
        arrived with the headers, then the rest in chunk_size reads. A
        zero length creates (or truncates to) an empty file.
        """
        try:
            normalized = self._target(request)
        except PathError:
            return bad_request("Invalid filename\n")
        if is_root(normalized):
            return bad_request("Invalid filename\n")

        if request.declared_length is None:
            return bad_request("Missing Content-Length\n")

        fs_path = resolve(self.root_dir, normalized)
        try:
            fd = os.open(fs_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
        except OSError as e:
            logger.error(f"Cannot create {fs_path}: {e}")
            return internal_error()

        written = 0
        try:
            with os.fdopen(fd, "wb") as target:
                for chunk in request.iter_body(self.chunk_size):
                    target.write(chunk)
                    written += len(chunk)
        except IncompleteBodyError as e:
            logger.warning(f"Upload to {fs_path} aborted: {e}")
            return internal_error()
        except OSError as e:
            logger.error(f"Upload to {fs_path} failed after {written} bytes: {e}")
            return internal_error()

        logger.info(f"Stored {written} bytes at {fs_path}")
        return created("Uploaded\n")

    # =========================================================================
    # DELETE
    # =========================================================================

    def delete(self, request: Request) -> HTTPResponse:
        """Unlink a regular file. Directories are never removed."""
        try:
            normalized = self._target(request)
        except PathError:
            return bad_request("Invalid filename\n")
        if is_root(normalized):
            return bad_request("Invalid filename\n")

        fs_path = resolve(self.root_dir, normalized)
        try:
            st = os.stat(fs_path)
        except OSError:
            return not_found("File not found or cannot delete\n")
        if not stat.S_ISREG(st.st_mode):
            return not_found("File not found or cannot delete\n")

        try:
            os.unlink(fs_path)
        except OSError as e:
            logger.warning(f"Cannot delete {fs_path}: {e}")
            return not_found("File not found or cannot delete\n")

        logger.info(f"Deleted {fs_path}")
        return ok("Deleted\n")
