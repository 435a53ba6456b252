"""
=============================================================================
FILEBRIDGE - Remote File Browser and Command Bridge
=============================================================================

A single-process service that exposes a directory tree and a shell over
a minimal HTTP/1.0 dialect, built directly on sockets.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         WHAT IT SERVES                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   GET  /any/dir/          HTML listing (+ upload form, terminal)    │
    │   GET  /file/<path>       download a file                           │
    │   GET  /delete/<path>     delete a file                             │
    │   PUT  /upload/<path>     upload a file                             │
    │   POST /exec              run the body as a shell command           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

There is no authentication. Anyone who can reach the port can read,
write and delete files under the root and run commands as the server's
user. Run it only on networks where that is acceptable.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    filebridge/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m filebridge)
    ├── server.py            # FileBridgeServer: per-connection flow
    ├── config.py            # ServerConfig dataclass
    ├── core/
    │   ├── buffers.py       # BoundedBuffer, CapacityError
    │   ├── connection.py    # Connection wrapper
    │   └── socket_server.py # Listener and accept loop
    ├── http/
    │   ├── request.py       # RequestReader, RequestParser, Request
    │   ├── response.py      # HTTPResponse and helpers
    │   ├── router.py        # Router
    │   └── status_codes.py  # HTTPStatus
    └── handlers/
        ├── paths.py         # Path sanitizer
        ├── listing.py       # Directory listing page
        ├── files.py         # Download, upload, delete
        └── command.py       # Command bridge

=============================================================================
QUICK START
=============================================================================

    from filebridge import FileBridgeServer, ServerConfig

    server = FileBridgeServer(ServerConfig(port=8080, root_dir="/srv/share"))
    server.run()

=============================================================================
"""

__version__ = "1.0.0"

from .server import FileBridgeServer
from .config import ServerConfig

__all__ = ["FileBridgeServer", "ServerConfig", "__version__"]
