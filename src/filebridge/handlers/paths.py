"""
=============================================================================
PATH SANITIZER
=============================================================================

Turns a client-supplied URL path into a root-relative filesystem path
that can never leave the service root.

=============================================================================
NORMALIZATION
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │   input                       output                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │   None, "", "/"               "."                                    │
    │   "/docs/a.txt"               "./docs/a.txt"                         │
    │   "//docs///a.txt/"           "./docs/a.txt"                         │
    │   "./docs/./a.txt"            "./docs/a.txt"                         │
    │   "/docs/../etc/passwd"       TraversalError                         │
    │   "a\\x00b"                   InvalidPathError                       │
    │   600 x "a"                   PathTooLongError                       │
    └─────────────────────────────────────────────────────────────────────┘

The check is purely lexical: no filesystem access, and ".." is never
resolved, only rejected. Normalizing an already normalized path
returns it unchanged.

Symbolic links inside the root are followed by the handlers that open
the resulting path; the sanitizer does not look at them.

=============================================================================
"""

import os
from typing import Optional


ROOT_MARKER = "."


class PathError(ValueError):
    """Base class for rejected paths."""


class TraversalError(PathError):
    """A ".." segment was present."""


class InvalidPathError(PathError):
    """A segment contains a byte that cannot appear in a filename."""


class PathTooLongError(PathError):
    """The normalized path would not fit the configured capacity."""

    def __init__(self, max_length: int):
        super().__init__(f"Normalized path exceeds {max_length} bytes")
        self.max_length = max_length


def _byte_length(segment: str) -> int:
    return len(os.fsencode(segment))


def normalize_path(url_path: Optional[str], max_length: int = 512) -> str:
    """
    Normalize a URL path into a root-relative path.

    Args:
        url_path: Decoded path from the request (may be None or empty).
        max_length: Capacity of the result in bytes. A result must stay
                    strictly below it.

    Returns:
        "." or "./seg1/seg2/...", with no empty, "." or ".." segments.

    Raises:
        TraversalError: A segment is "..".
        InvalidPathError: A segment contains a NUL byte.
        PathTooLongError: The result would reach max_length bytes.
    """
    out = ROOT_MARKER
    if not url_path:
        return out

    length = len(out)
    for segment in url_path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            raise TraversalError(f"Parent reference in path: {url_path!r}")
        if "\x00" in segment:
            raise InvalidPathError("NUL byte in path segment")

        seg_length = _byte_length(segment)
        if length + 1 + seg_length >= max_length:
            raise PathTooLongError(max_length)

        out += "/" + segment
        length += 1 + seg_length

    return out


def is_root(path: str) -> bool:
    """True if path is the bare root marker."""
    return path == ROOT_MARKER


def resolve(root: str, path: str) -> str:
    """
    Join a normalized path onto the service root.

        resolve("/srv", ".")            → "/srv"
        resolve("/srv", "./docs/a.txt") → "/srv/docs/a.txt"
    """
    if is_root(path):
        return root
    return os.path.join(root, path[len(ROOT_MARKER) + 1:])
