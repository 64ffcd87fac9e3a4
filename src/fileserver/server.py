"""
=============================================================================
FILE SERVER
=============================================================================

The orchestrator: wires configuration, the listening socket, the worker
pool and the per-connection pipeline together.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │   FileServer    │                          │
    │                        └────────┬────────┘                          │
    │            ┌────────────────────┼────────────────────┐              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌──────────────┐    ┌──────────────────┐    │
    │    │ SocketServer │    │  WorkerPool  │    │ConnectionHandler │    │
    │    │ accept loop  │──► │  n workers   │──► │ read → resolve → │    │
    │    └──────────────┘    └──────────────┘    │ render → write   │    │
    │                                            └──────────────────┘    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    1. SocketServer accepts a TCP connection (main thread)
    2. _dispatch() submits it to the WorkerPool
         └── queue full: block (backpressure), or 503 after submit_timeout
    3. A worker runs ConnectionHandler(conn)
    4. One request, one response, close

=============================================================================
SHUTDOWN
=============================================================================

    Ctrl+C / SIGTERM / shutdown()
        └── accept loop stops (within 1s)
        └── WorkerPool.shutdown(wait=True, timeout=30s)
              └── queued connections drain or are closed
              └── workers joined

=============================================================================
"""

import logging
import threading
from typing import Optional

from . import __version__
from .config import ServerConfig
from .core import Connection, SocketServer, WorkerPool
from .handlers import ConnectionHandler, PathResolver, StaticFileHandler
from .http import HTTPStatus, RequestParser, TransportError, error_response


logger = logging.getLogger(__name__)


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s"
SHUTDOWN_DRAIN_TIMEOUT = 30.0


class FileServer:
    """
    Static file server with a fixed worker pool.

    =========================================================================
    USAGE
    =========================================================================

        server = FileServer(ServerConfig(root="/srv/www", workers=8))
        server.run()        # blocks until Ctrl+C / SIGTERM / shutdown()

        # from a test, in a background thread:
        threading.Thread(target=server.run, daemon=True).start()
        server.wait_until_ready(5.0)
        host, port = server.server_address
        ...
        server.shutdown()

    =========================================================================
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        """
        Args:
            config: Server configuration. Defaults if not provided.

        Raises:
            ValueError: The configuration is invalid.
        """
        self.config = config or ServerConfig()
        self.config.validate()

        self.root = self.config.resolved_root

        self._socket_server = SocketServer(self.config)

        self.handler = ConnectionHandler(
            resolver=PathResolver(self.root),
            writer=StaticFileHandler(chunk_size=self.config.chunk_size, root=self.root),
            parser=RequestParser(max_header_bytes=self.config.max_header_bytes),
            server_name=self.config.server_name,
            log_format=self.config.log_format,
        )

        self.pool = WorkerPool(
            self.handler,
            workers=self.config.workers,
            queue_size=self.config.effective_queue_size,
        )

        self._stopped = threading.Event()

    @property
    def server_address(self) -> tuple[str, int]:
        """(host, port) actually bound; port is real once ready."""
        return self._socket_server.server_address

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self, configure_logging: bool = True):
        """
        Start workers and serve until shutdown. Blocks.

        Args:
            configure_logging: Call logging.basicConfig from the config.
                               Embedding applications pass False.

        Raises:
            OSError: The listening socket could not be bound.
        """
        if configure_logging:
            self._setup_logging()

        self.pool.start()
        logger.info(f"Serving {self.root} with {self.config.workers} workers")

        try:
            self._socket_server.start(self._dispatch, on_ready=self._print_startup_banner)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self):
        """Ask the server to stop. Thread-safe and idempotent."""
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening. False on timeout."""
        return self._socket_server.wait_until_ready(timeout)

    def wait_until_stopped(self, timeout: Optional[float] = None) -> bool:
        """Block until run() has finished shutting down. False on timeout."""
        return self._stopped.wait(timeout)

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._socket_server.shutdown()
        self.pool.shutdown(wait=True, timeout=SHUTDOWN_DRAIN_TIMEOUT)
        self._stopped.set()
        logger.info("Server stopped")

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        logging.getLogger("fileserver").setLevel(level)

    def _print_startup_banner(self):
        host, port = self.server_address
        print()
        print("=" * 64)
        print(f"  fileserver {__version__}")
        print(f"  Serving {self.root}")
        print(f"  http://{host}:{port}/")
        print(f"  Workers: {self.config.workers}   Queue: {self.config.effective_queue_size or 'unbounded'}")
        print("  Press Ctrl+C to stop")
        print("=" * 64)
        print()

    # =========================================================================
    # DISPATCH (accept thread)
    # =========================================================================

    def _dispatch(self, conn: Connection):
        """
        Hand an accepted connection to the worker pool.

        Blocks while the queue is full. With submit_timeout set, a
        connection that still finds no room gets 503 and is closed here,
        in the accept thread.
        """
        try:
            submitted = self.pool.submit(conn, timeout=self.config.submit_timeout)
        except RuntimeError as e:
            logger.debug(f"[{conn.id}] Not dispatched: {e}")
            conn.close()
            return

        if not submitted:
            logger.warning(f"[{conn.id}] Worker pool full, rejecting {conn.client_ip} with 503")
            self._reject(conn)

    def _reject(self, conn: Connection):
        response = error_response(HTTPStatus.SERVICE_UNAVAILABLE)
        with conn:
            try:
                conn.send_all(response.to_bytes(self.config.server_name))
            except TransportError as e:
                logger.debug(f"[{conn.id}] 503 not delivered: {e}")


def create_server(config: Optional[ServerConfig] = None, **overrides) -> FileServer:
    """
    Build a FileServer from a config and/or keyword overrides.

        server = create_server(root="/srv/www", port=0, workers=2)
    """
    config = config or ServerConfig()
    for name, value in overrides.items():
        if not hasattr(config, name):
            raise TypeError(f"Unknown config option: {name}")
        setattr(config, name, value)
    return FileServer(config)
