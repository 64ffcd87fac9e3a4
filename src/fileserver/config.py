"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Every tunable of the file server, in one dataclass.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m fileserver 9000 8 --root /srv/www                │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── FILESERVER_PORT=9000 python -m fileserver                  │
    │                                                                      │
    │   3. Default values (in this dataclass)                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

validate() runs before anything binds a socket or starts a thread: a bad
value should stop the process at startup with a clear message, not show
up as a strange failure on the first request.

=============================================================================
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import __version__
from .access_log import LOG_FORMATS


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ServerConfig:
    """
    Configuration for the file server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK
    - host, port, backlog

    CONCURRENCY
    - workers, queue_size, submit_timeout

    REQUESTS AND RESPONSES
    - root, read_timeout, max_header_bytes, chunk_size, server_name

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """
    Address to bind. "0.0.0.0" exposes the root to the whole network.
    """

    port: int = 8123
    """
    Port to listen on. 0 picks a free ephemeral port (tests).
    """

    backlog: int = 128
    """
    Kernel listen queue. Clients wait here while the worker pool is full.
    """

    # ─────────────────────────────────────────────────────────────────────
    # CONCURRENCY
    # ─────────────────────────────────────────────────────────────────────

    workers: int = 4
    """
    Number of worker threads, fixed for the life of the server.
    """

    queue_size: Optional[int] = None
    """
    Connections allowed to wait for a worker.
    None = 4 * workers. 0 = unbounded (no backpressure at all).
    """

    submit_timeout: Optional[float] = None
    """
    How long the accept loop waits for room in a full queue.
    None = wait as long as it takes (pure backpressure).
    Set = after that many seconds the client gets 503 and is closed.
    """

    # ─────────────────────────────────────────────────────────────────────
    # REQUESTS AND RESPONSES
    # ─────────────────────────────────────────────────────────────────────

    root: Optional[str] = None
    """
    Directory to serve. None = current working directory.
    """

    read_timeout: float = 5.0
    """
    Seconds a client may stay silent while sending its request head.
    """

    max_header_bytes: int = 8 * 1024
    """
    Largest request head accepted; beyond it the answer is 431.
    """

    chunk_size: int = 64 * 1024
    """
    Bytes per read when streaming a file. Bounds memory per download.
    """

    server_name: str = f"fileserver/{__version__}"
    """
    Value of the Server response header.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """
    DEBUG, INFO, WARNING, ERROR or CRITICAL.
    """

    log_format: str = "text"
    """
    Access log format: "text" (combined-log-like) or "json".
    """

    @property
    def effective_queue_size(self) -> int:
        """Queue bound actually used by the worker pool."""
        if self.queue_size is None:
            return 4 * self.workers
        return self.queue_size

    @property
    def resolved_root(self) -> Path:
        """Absolute path of the served directory."""
        return Path(self.root or os.getcwd()).resolve()

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        FILESERVER_HOST          Bind address (default: 127.0.0.1)
        FILESERVER_PORT          Port (default: 8123)
        FILESERVER_ROOT          Served directory (default: cwd)
        FILESERVER_WORKERS       Worker threads (default: 4)
        FILESERVER_QUEUE_SIZE    Queue bound (default: 4 * workers)
        FILESERVER_READ_TIMEOUT  Head read timeout, seconds (default: 5)
        FILESERVER_LOG_LEVEL     Logging level (default: INFO)

        =====================================================================

        Raises:
            ValueError: A numeric variable does not parse.
        """
        queue_size = os.getenv("FILESERVER_QUEUE_SIZE")
        return cls(
            host=os.getenv("FILESERVER_HOST", "127.0.0.1"),
            port=int(os.getenv("FILESERVER_PORT", "8123")),
            root=os.getenv("FILESERVER_ROOT") or None,
            workers=int(os.getenv("FILESERVER_WORKERS", "4")),
            queue_size=int(queue_size) if queue_size else None,
            read_timeout=float(os.getenv("FILESERVER_READ_TIMEOUT", "5")),
            log_level=os.getenv("FILESERVER_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Check every value; raise ValueError on the first bad one.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")

        if self.queue_size is not None and self.queue_size < 0:
            raise ValueError(f"queue_size must be >= 0, got {self.queue_size}")

        if self.submit_timeout is not None and self.submit_timeout <= 0:
            raise ValueError(f"submit_timeout must be > 0, got {self.submit_timeout}")

        if self.read_timeout <= 0:
            raise ValueError(f"read_timeout must be > 0, got {self.read_timeout}")

        if self.max_header_bytes < 256:
            raise ValueError(f"max_header_bytes must be >= 256, got {self.max_header_bytes}")

        if self.chunk_size < 1024:
            raise ValueError(f"chunk_size must be >= 1024, got {self.chunk_size}")

        if self.backlog < 1:
            raise ValueError(f"backlog must be >= 1, got {self.backlog}")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {self.log_level}")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"Invalid log_format: {self.log_format}. Must be one of {LOG_FORMATS}")

        if not self.resolved_root.is_dir():
            raise ValueError(f"Root is not a directory: {self.resolved_root}")
