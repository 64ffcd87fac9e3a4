"""
=============================================================================
LISTENING SOCKET AND ACCEPT LOOP
=============================================================================

Owns the listening TCP socket. Accepts connections, wraps each one in a
Connection and hands it to a callback (the server's dispatch into the
worker pool). It never reads from a client socket itself.

    ┌───────────────────────┐
    │   Listening socket    │ ◄── created once, bound to host:port
    └───────────┬───────────┘
                │ accept()
        ┌───────┼───────┐
        ▼       ▼       ▼
      conn    conn    conn  ──► on_connection(conn) ──► WorkerPool.submit()

=============================================================================
INTERRUPTIBLE ACCEPT
=============================================================================

accept() blocks. To notice shutdown() (called from a signal handler or
another thread) we give the listening socket a 1 second timeout and loop:

    while running:
        try:
            accept()          # at most 1s
        except timeout:
            continue          # re-check running

If on_connection() blocks (the worker pool is full), we simply stop
accepting: new clients queue in the kernel's listen backlog. That is the
backpressure path.

=============================================================================
"""

import logging
import signal
import socket
import threading
import time
from typing import Callable, Optional

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


ACCEPT_POLL_INTERVAL = 1.0


class SocketServer:
    """
    TCP accept loop.

    Usage:
        server = SocketServer(config)
        server.start(on_connection)   # blocks until shutdown()

    Port 0 binds an ephemeral port; read the real one from
    ``server_address`` once ``wait_until_ready()`` returns True.
    """

    def __init__(self, config: ServerConfig):
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._bound_address: Optional[tuple[str, int]] = None

        self._ready_event = threading.Event()
        self._shutdown_event = threading.Event()

        self._original_handlers: dict = {}

    @property
    def server_address(self) -> tuple[str, int]:
        """Bound (host, port); the configured one before binding."""
        if self._bound_address is not None:
            return self._bound_address
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # restart without waiting for TIME_WAIT to expire
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # small responses (error pages, listings) go out immediately
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        sock.settimeout(ACCEPT_POLL_INTERVAL)
        return sock

    # =========================================================================
    # SIGNALS
    # =========================================================================

    def _setup_signals(self):
        """
        Route SIGINT/SIGTERM to shutdown().

        signal.signal() only works in the main thread; a server started
        from any other thread (tests, embedding) leaves signals alone.
        """
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in main thread, leaving signal handlers alone")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(
        self,
        on_connection: Callable[[Connection], None],
        on_ready: Optional[Callable[[], None]] = None,
    ):
        """
        Bind, listen and run the accept loop. Blocks until shutdown().

        Args:
            on_connection: Called in the accept thread for each new
                           Connection. It owns the connection from then on.
            on_ready: Called once, after listen() and before the first accept().

        Raises:
            OSError: bind() or listen() failed.
        """
        if self._shutdown_event.is_set():
            logger.info("Shutdown requested before start, not listening")
            return

        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
            self._socket.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            self._shutdown_event.set()
            raise

        host, port = self._socket.getsockname()[:2]
        self._bound_address = (host, port)
        self._running = True
        self._setup_signals()

        logger.info(f"Listening on {host}:{port}")
        self._ready_event.set()

        try:
            if on_ready is not None:
                on_ready()
            self._accept_loop(on_connection)
        finally:
            self._cleanup()

    def _accept_loop(self, on_connection: Callable[[Connection], None]):
        while not self._shutdown_event.is_set():
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._shutdown_event.is_set():
                    break
                # EMFILE, ECONNABORTED, ...: the listener itself is fine
                logger.error(f"Accept failed: {e}")
                time.sleep(0.1)
                continue

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address[:2],
                read_timeout=self.config.read_timeout,
            )
            on_connection(conn)

    def shutdown(self):
        """Stop the accept loop. Safe to call from any thread, more than once."""
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False
        self._shutdown_event.set()

    def _cleanup(self):
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError as e:
                logger.debug(f"Closing listening socket failed: {e}")
            self._socket = None

        self._running = False
        self._shutdown_event.set()
        logger.info("Socket server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening. False on timeout."""
        return self._ready_event.wait(timeout)
