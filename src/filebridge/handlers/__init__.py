"""
=============================================================================
HANDLERS
=============================================================================

Request handlers. Each one maps its own failures to a status code and
never lets a filesystem or process error escape as an exception.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ paths.py     normalize_path(): URL path ──► "./a/b" (or error)      │
    │ listing.py   GET *path          directory listing page              │
    │ files.py     GET /file/*path    download                            │
    │              PUT /upload/*path  upload                              │
    │              GET /delete/*path  delete                              │
    │ command.py   POST /exec         run a shell command                 │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .command import CommandBridge, CommandResult, TRUNCATION_MARKER
from .files import FileHandler, display_name
from .listing import (
    DirectoryEntry,
    DirectoryListingHandler,
    ListingPage,
    child_url,
    collect_entries,
    parent_url,
    sort_entries,
)
from .paths import (
    InvalidPathError,
    PathError,
    PathTooLongError,
    TraversalError,
    is_root,
    normalize_path,
    resolve,
)

__all__ = [
    "CommandBridge",
    "CommandResult",
    "TRUNCATION_MARKER",
    "FileHandler",
    "display_name",
    "DirectoryEntry",
    "DirectoryListingHandler",
    "ListingPage",
    "child_url",
    "collect_entries",
    "parent_url",
    "sort_entries",
    "InvalidPathError",
    "PathError",
    "PathTooLongError",
    "TraversalError",
    "is_root",
    "normalize_path",
    "resolve",
]
