"""
=============================================================================
FILESERVER - Static File Server on a Fixed Worker Pool
=============================================================================

Serves files and directory listings from one root directory over HTTP,
to any number of concurrent clients, with a fixed number of threads.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   1. BOUNDED CONCURRENCY                                            │
    │      - n worker threads, never more                                 │
    │      - bounded job queue, accept loop blocks when it is full        │
    │                                                                      │
    │   2. ONE REQUEST PER CONNECTION                                     │
    │      - read head (timeout + byte budget), parse, answer, close      │
    │                                                                      │
    │   3. SAFE PATH RESOLUTION                                           │
    │      - strict percent-decoding, lexical normalization               │
    │      - nothing outside the root is ever opened                      │
    │                                                                      │
    │   4. STREAMED FILES                                                 │
    │      - fixed-size chunks, memory independent of file size           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    fileserver/
    ├── __init__.py            # This file - package exports
    ├── __main__.py            # CLI entry point (python -m fileserver)
    ├── server.py              # FileServer orchestrator
    ├── config.py              # ServerConfig dataclass
    ├── access_log.py          # Per-connection access log records
    ├── core/
    │   ├── socket_server.py   # Listening socket, accept loop
    │   ├── connection.py      # Client socket wrapper
    │   └── thread_pool.py     # WorkerPool, Worker, Job
    ├── http/
    │   ├── status_codes.py    # HTTPStatus
    │   ├── errors.py          # ServerError taxonomy
    │   ├── request.py         # HTTPRequest, RequestParser
    │   ├── response.py        # HTTPResponse, FileBody, error pages
    │   └── mime_types.py      # Content-Type detection
    └── handlers/
        ├── path_resolver.py   # Request path → file inside the root
        ├── static.py          # Listings and file bodies
        └── connection_handler.py  # The per-connection state machine

=============================================================================
QUICK START
=============================================================================

    from fileserver import FileServer, ServerConfig

    FileServer(ServerConfig(root="./public", port=8123, workers=4)).run()

or from a shell:

    python -m fileserver 8123 4 --root ./public

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .server import FileServer, create_server

__all__ = ["FileServer", "ServerConfig", "create_server", "__version__"]
