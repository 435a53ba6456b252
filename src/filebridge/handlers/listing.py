"""
=============================================================================
DIRECTORY LISTING
=============================================================================

Renders a directory of the service root as an HTML page: a file table
with download/delete links, an upload form and a remote terminal pane.

=============================================================================
FLOW
=============================================================================

    GET /docs/
        │
        ▼
    normalize_path("/docs/")  ──fails──►  400 "Invalid path"
        │ "./docs"
        ▼
    scandir(root/docs)        ──fails──►  500 (missing, not a directory,
        │                                     permission: all the same)
        ▼
    stat() every member       ──fails──►  member skipped
        │
        ▼
    sort: case-insensitive name, directory before file on equal names
        │
        ▼
    ListingPage.render()      ──►  200 text/html, exact Content-Length

=============================================================================
PAGE LAYOUT
=============================================================================

    ┌──────────────────────────────────────┬──────────────────────────────┐
    │ filebridge: /docs/                   │ Remote Terminal              │
    │ [choose file] [Upload]               │ ┌──────────────────────────┐ │
    │                                      │ │ > ls                     │ │
    │ Name        Size (bytes)  Actions    │ │ a.txt                    │ │
    │ ..          -                        │ │                          │ │
    │ img/        -                        │ └──────────────────────────┘ │
    │ a.txt       12            download | │ [command        ] [Run]      │
    │                           delete     │                              │
    └──────────────────────────────────────┴──────────────────────────────┘

Every file name and URL is HTML-escaped before it is placed in the page;
hrefs are percent-encoded. Names longer than 200 characters and URLs
longer than 700 characters are cut for display.

=============================================================================
"""

from dataclasses import dataclass
from html import escape
from typing import Iterable, List
from urllib.parse import quote
import logging
import os
import stat

from ..http.request import Request
from ..http.response import (
    HTTPResponse, ResponseBuilder, TEXT_HTML,
    bad_request, internal_error,
)
from .paths import PathError, normalize_path, resolve


logger = logging.getLogger(__name__)


MAX_NAME_DISPLAY = 200
MAX_URL_DISPLAY = 700


@dataclass
class DirectoryEntry:
    """One member of a listed directory."""
    name: str
    is_directory: bool
    size_bytes: int


def collect_entries(fs_path: str) -> List[DirectoryEntry]:
    """
    Stat every member of a directory.

    Links are followed. Members that cannot be stat'ed (dangling links,
    races with deletion) are skipped.

    Raises:
        OSError: The directory itself cannot be opened.
    """
    entries = []
    with os.scandir(fs_path) as it:
        for member in it:
            if member.name in (".", ".."):
                continue
            try:
                st = member.stat()
            except OSError:
                logger.debug(f"Skipping unreadable entry: {member.path}")
                continue
            entries.append(DirectoryEntry(
                name=member.name,
                is_directory=stat.S_ISDIR(st.st_mode),
                size_bytes=st.st_size,
            ))
    return entries


def sort_entries(entries: Iterable[DirectoryEntry]) -> List[DirectoryEntry]:
    """
    Sort by case-insensitive name; on equal names the directory comes first.

        ["B", "a", "a"(dir)]  →  ["a"(dir), "a", "B"]
    """
    return sorted(entries, key=lambda e: (e.name.lower(), not e.is_directory))


# =============================================================================
# URL HELPERS
# =============================================================================

def parent_url(current_url: str) -> str:
    """
    URL of the parent listing.

    At most one trailing slash is stripped, then the URL is cut back to
    (and including) the previous slash. Anything of length 1 or less is
    the root.

        "/"          → "/"
        "/docs"      → "/"
        "/docs/"     → "/"
        "/docs/img/" → "/docs/"
    """
    if not current_url or current_url == "/":
        return "/"

    url = current_url[:-1] if current_url.endswith("/") else current_url
    cut = url.rfind("/")
    parent = url[:cut + 1] if cut >= 0 else ""
    if len(parent) <= 1:
        return "/"
    return parent


def child_url(current_url: str, name: str, is_directory: bool) -> str:
    """
    URL of a member of the current listing.

        child_url("/docs", "a.txt", False) → "/docs/a.txt"
        child_url("/docs/", "img", True)   → "/docs/img/"
    """
    base = current_url or "/"
    sep = "" if base.endswith("/") else "/"
    return f"{base}{sep}{name}{'/' if is_directory else ''}"


def _href(url: str) -> str:
    """Percent-encode a URL for an href attribute (display-truncated)."""
    return escape(quote(url[:MAX_URL_DISPLAY], safe="/", errors="surrogateescape"))


def _text(value: str, limit: int = MAX_NAME_DISPLAY) -> str:
    return escape(value[:limit])


# =============================================================================
# PAGE BUILDER
# =============================================================================

_STYLE = (
    "body{font-family:monospace;background:#f5f5f5;color:#111;padding:16px;margin:0;}"
    ".layout{display:flex;gap:16px;align-items:flex-start;}"
    ".pane{flex:1;background:#fff;border:1px solid #ddd;border-radius:6px;"
    "padding:12px;box-shadow:0 2px 4px rgba(0,0,0,0.06);}"
    "table{border-collapse:collapse;width:100%;}"
    "th,td{border-bottom:1px solid #eee;padding:6px;text-align:left;}"
    "a{color:#004fa3;text-decoration:none;}a:hover{text-decoration:underline;}"
    "#console-log{background:#0b0b0b;color:#00e676;height:320px;overflow:auto;"
    "padding:8px;border-radius:4px;white-space:pre-wrap;}"
    "#console-input{width:100%;box-sizing:border-box;padding:6px;margin-top:6px;"
    "font-family:monospace;}"
)

# Upload: PUT /upload<current dir, percent-encoded>/<file name>, then reload.
# Terminal: POST /exec with the command as the body, append the output.
_SCRIPT = (
    "const form=document.getElementById('upload-form');"
    "const fileInput=document.getElementById('upload-file');"
    "const currentPath=document.body.dataset.path||'/';"
    "form.addEventListener('submit',async(e)=>{e.preventDefault();"
    "const f=fileInput.files[0];if(!f){alert('Choose a file first');return;}"
    "let base=currentPath.endsWith('/')?currentPath.slice(0,-1):currentPath;"
    "const target=base+'/'+encodeURIComponent(f.name);"
    "const res=await fetch('/upload'+target,{method:'PUT',body:f});"
    "if(res.ok){location.reload();}else{alert('Upload failed: '+res.status);}});"
    "const clog=document.getElementById('console-log');"
    "const cform=document.getElementById('console-form');"
    "const cinput=document.getElementById('console-input');"
    "function appendLog(text){clog.textContent+=text+'\\n';clog.scrollTop=clog.scrollHeight;}"
    "cform.addEventListener('submit',async(e)=>{e.preventDefault();"
    "const cmd=cinput.value.trim();if(!cmd){return;}appendLog('> '+cmd);cinput.value='';"
    "const body=new TextEncoder().encode(cmd);"
    "const res=await fetch('/exec',{method:'POST',body:body});"
    "appendLog(await res.text());});"
)


class ListingPage:
    """
    Structured builder for the listing page.

    Usage:
        page = ListingPage("/docs/")
        page.add_parent_row()
        for entry in sort_entries(entries):
            page.add_entry(entry)
        html = page.render()
    """

    def __init__(self, current_url: str, title: str = "filebridge"):
        self.current_url = current_url or "/"
        self.title = title
        self._rows: List[str] = []

    def add_parent_row(self) -> "ListingPage":
        self._rows.append(
            f'<tr><td><a href="{_href(parent_url(self.current_url))}">..</a></td>'
            f'<td>-</td><td></td></tr>'
        )
        return self

    def add_entry(self, entry: DirectoryEntry) -> "ListingPage":
        url = child_url(self.current_url, entry.name, entry.is_directory)
        if entry.is_directory:
            self._rows.append(
                f'<tr><td><a href="{_href(url)}">{_text(entry.name)}/</a></td>'
                f'<td>-</td><td></td></tr>'
            )
        else:
            self._rows.append(
                f'<tr><td>{_text(entry.name)}</td><td>{entry.size_bytes}</td>'
                f'<td><a href="{_href("/file" + url)}">download</a> | '
                f'<a href="{_href("/delete" + url)}">delete</a></td></tr>'
            )
        return self

    def render(self) -> str:
        current = _text(self.current_url, MAX_URL_DISPLAY)
        # Full percent-encoded path: the script joins the upload URL onto it
        data_path = escape(quote(self.current_url, safe="/", errors="surrogateescape"))
        title = escape(self.title)
        return "".join([
            '<!doctype html><html><head><meta charset="utf-8">',
            f"<title>{title}</title>",
            f"<style>{_STYLE}</style>",
            f'</head><body data-path="{data_path}">',
            '<div class="layout">',
            '<div class="pane">',
            f"<h1>{title}: {current}</h1>",
            '<form id="upload-form"><input type="file" id="upload-file"/>',
            '<button type="submit">Upload</button></form>',
            f"<p>Listing directory: <code>{current}</code></p>",
            '<table id="file-table"><tr><th>Name</th><th>Size (bytes)</th><th>Actions</th></tr>',
            *self._rows,
            "</table>",
            "<p>Upload via the form above or: ",
            "<code>curl -T file.bin http://&lt;host&gt;/upload/path/file.bin</code></p>",
            "</div>",
            '<div class="pane">',
            "<h2>Remote Terminal</h2>",
            '<div id="console-log"></div>',
            '<form id="console-form">',
            '<input id="console-input" type="text" placeholder="Command" autocomplete="off" />',
            '<button type="submit">Run</button>',
            "</form>",
            "</div>",
            "</div>",
            f"<script>{_SCRIPT}</script>",
            "</body></html>",
        ])


# =============================================================================
# HANDLER
# =============================================================================

class DirectoryListingHandler:
    """
    Handler for GET on any path not claimed by another route.

    Registered as:
        router.add_route("GET", "*path", listing.handle)
    """

    def __init__(self, root_dir: str, max_path_length: int = 512, title: str = "filebridge"):
        self.root_dir = root_dir
        self.max_path_length = max_path_length
        self.title = title

    def handle(self, request: Request) -> HTTPResponse:
        url_path = request.path_params.get("path", request.path)

        try:
            normalized = normalize_path(url_path, self.max_path_length)
        except PathError as e:
            logger.warning(f"Rejected listing path {url_path!r}: {e}")
            return bad_request("Invalid path\n")

        fs_path = resolve(self.root_dir, normalized)
        try:
            entries = collect_entries(fs_path)
        except OSError as e:
            logger.error(f"Cannot open directory {fs_path}: {e}")
            return internal_error()

        page = ListingPage(url_path or "/", title=self.title)
        page.add_parent_row()
        for entry in sort_entries(entries):
            page.add_entry(entry)

        body = page.render().encode("utf-8", errors="surrogateescape")
        return ResponseBuilder().content_type(TEXT_HTML).body(body).build()
