"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket. A Connection is owned by exactly one
worker from the moment it is dequeued until it is closed.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL
=============================================================================

TCP does not preserve message boundaries. A request head may arrive in
any number of pieces:

    Client sends:   "GET /a.txt HTTP/1.0\r\nHost: x\r\n\r\n"

    Server might see:
        recv() → "GET /a.t"
        recv() → "xt HTTP/1.0\r\nHo"
        recv() → "st: x\r\n\r\n"

So we buffer until the blank line that ends the head (\r\n\r\n) shows up.
Because this server never reads request bodies, that blank line is the
ONLY delimiter we care about.

=============================================================================
BOUNDED READS
=============================================================================

A client that opens a socket and then says nothing (or trickles one byte
a minute, or sends an endless header) must not pin a worker forever:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  Guard                 Trigger                      Outcome          │
    ├─────────────────────────────────────────────────────────────────────┤
    │  read deadline         whole head > read_timeout    408 Timeout      │
    │  header budget         > max_bytes before \r\n\r\n  431 Too Large    │
    │  EOF before any byte   client connected, left       close, no reply  │
    │  EOF mid-head          half a request, then FIN     400 Bad Request  │
    │  reset / OS error      RST, EPIPE, ...              close, no reply  │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──► READING ──► RESOLVING ──► RENDERING ──► WRITING ──► CLOSING ──► CLOSED
             │              │              │                      ▲
             │              └──────────────┴── error response ────┤
             └── transport error ──────────────────────────────────┘

=============================================================================
"""

import logging
import socket
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..http.errors import (
    MalformedRequestError,
    RequestTimeoutError,
    RequestTooLargeError,
    TransportError,
)


logger = logging.getLogger(__name__)


HEAD_TERMINATOR = b"\r\n\r\n"

# Unread request bytes we are willing to swallow on close
MAX_DRAIN_BYTES = 64 * 1024

# Total time close() may spend draining them
DRAIN_TIMEOUT = 0.5


class ConnectionState(Enum):
    """Connection lifecycle states (logging and tests)."""
    NEW = "new"                # Accepted, nothing read yet
    READING = "reading"        # Reading the request head
    RESOLVING = "resolving"    # Mapping the path onto the root
    RENDERING = "rendering"    # Building the response
    WRITING = "writing"        # Sending the response
    CLOSING = "closing"        # Shutdown sequence in progress
    CLOSED = "closed"          # Socket released


@dataclass
class Connection:
    """
    A client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short unique identifier (for logging).
        state: Current connection state.
        created_at: Timestamp when the connection was accepted.
        read_timeout: Seconds allowed for the whole request head.
        buffer_size: Bytes requested per recv() call.
        bytes_sent: Total bytes written to the peer.
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)

    read_timeout: float = 5.0
    buffer_size: int = 4096

    bytes_sent: int = 0

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.read_timeout:
            self.socket.settimeout(self.read_timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def age(self) -> float:
        """Seconds since the connection was accepted."""
        return time.time() - self.created_at

    @property
    def closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # READING
    # =========================================================================

    def read_head(self, max_bytes: int) -> bytes:
        """
        Read the request head, up to and including the terminating blank line.

        Anything the client sent after the blank line (a body, a pipelined
        request) is dropped: exactly one request is served per connection.

        Args:
            max_bytes: Header byte budget.

        Returns:
            The head bytes, ending in ``\\r\\n\\r\\n``.

        Raises:
            RequestTimeoutError: The head was not complete read_timeout
                                 seconds after reading started.
            RequestTooLargeError: No blank line within max_bytes.
            MalformedRequestError: Peer closed in the middle of the head.
            TransportError: Peer closed before sending anything, or the
                            socket failed.
        """
        self.state = ConnectionState.READING
        buffer = b""

        # one deadline for the whole head, so trickling bytes cannot extend it
        deadline = time.monotonic() + self.read_timeout if self.read_timeout else None

        try:
            while True:
                end = buffer.find(HEAD_TERMINATOR)
                if end != -1:
                    head = buffer[:end + len(HEAD_TERMINATOR)]
                    if len(head) > max_bytes:
                        raise RequestTooLargeError(
                            f"Request head exceeds {max_bytes} bytes"
                        )
                    return head

                if len(buffer) > max_bytes:
                    raise RequestTooLargeError(f"Request head exceeds {max_bytes} bytes")

                chunk = self._recv(deadline)
                if not chunk:
                    if not buffer:
                        raise TransportError("Peer closed before sending a request")
                    raise MalformedRequestError("Peer closed in the middle of the request head")
                buffer += chunk
        finally:
            # writes get the plain per-operation timeout back
            self.socket.settimeout(self.read_timeout or None)

    def _recv(self, deadline: Optional[float]) -> bytes:
        """recv() bounded by ``deadline``, errors translated into our taxonomy."""
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise RequestTimeoutError(
                    f"No complete request head from {self.client_ip} "
                    f"within {self.read_timeout}s"
                )
            self.socket.settimeout(remaining)

        try:
            return self.socket.recv(self.buffer_size)
        except socket.timeout as e:
            raise RequestTimeoutError(
                f"No complete request head from {self.client_ip} "
                f"within {self.read_timeout}s"
            ) from e
        except OSError as e:
            raise TransportError(f"Receive failed: {e}") from e

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_all(self, data: bytes) -> None:
        """
        Send every byte of ``data``.

        Raises:
            TransportError: The peer went away or the socket failed.
        """
        try:
            self.socket.sendall(data)
        except OSError as e:
            raise TransportError(f"Send failed: {e}") from e
        self.bytes_sent += len(data)

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection. Safe to call more than once.

            shutdown(SHUT_WR)  → FIN to the client, response is complete
            drain briefly      → don't RST a client still sending headers
                                 (at most MAX_DRAIN_BYTES, DRAIN_TIMEOUT in total)
            close()            → release the file descriptor
        """
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # peer already gone

        deadline = time.monotonic() + DRAIN_TIMEOUT
        try:
            drained = 0
            while drained < MAX_DRAIN_BYTES:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self.socket.settimeout(remaining)
                chunk = self.socket.recv(4096)
                if not chunk:
                    break
                drained += len(chunk)
        except OSError:
            pass  # socket.timeout is an OSError

        try:
            self.socket.close()
        except OSError as e:
            logger.debug(f"[{self.id}] close failed: {e}")

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age:.3f}s")

    def __enter__(self):
        """
        Context manager entry:

            with conn:
                head = conn.read_head(8192)
                conn.send_all(response)
            # closed here, whatever happened
        """
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
