"""
=============================================================================
CONNECTION HANDLER
=============================================================================

Runs one connection from accept to close. This is the Job a worker
executes: read one request, answer it, close.

=============================================================================
THE PIPELINE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   READING      conn.read_head()          408 / 431 / 400             │
    │      │         parser.parse()            400                         │
    │      │         method check              405                         │
    │      ▼                                                               │
    │   RESOLVING    resolver.resolve()        400 / 403 / 404 / 500       │
    │      │                                                               │
    │      ▼                                                               │
    │   RENDERING    writer.render()           404 / 500                   │
    │      │                                                               │
    │      ▼                                                               │
    │   WRITING      head, then body chunks    (errors here: truncate)     │
    │      │                                                               │
    │      ▼                                                               │
    │   CLOSED       always, exactly once                                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Every stage RAISES a ServerError subclass on failure; this class is the
ONE place where those become HTTP responses (error_response()). Stages
never build error pages themselves.

Two failures never produce a response:

    • TransportError while reading: the peer is gone, nobody to answer
    • Any failure while WRITING: the status line may already be on the
      wire, so the only honest thing left is to stop and close

Anything else (a bug) propagates to the worker pool's per-Job boundary,
which logs it with a traceback. The `with conn:` block still closes the
socket on the way out.

=============================================================================
"""

import logging
from typing import Optional

from ..access_log import AccessLogRecord, log_access, now_timestamp
from ..core.connection import Connection, ConnectionState
from ..http.errors import (
    MethodNotAllowedError,
    ServerError,
    TransportError,
    TraversalError,
)
from ..http.request import HTTPRequest, RequestParser
from ..http.response import DEFAULT_SERVER_NAME, HTTPResponse, HTTPStatus, error_response
from .path_resolver import PathResolver
from .static import StaticFileHandler


logger = logging.getLogger(__name__)


class ConnectionHandler:
    """
    Callable that processes a single Connection.

    Usage:
        handler = ConnectionHandler(PathResolver("/srv/www"))
        pool = WorkerPool(handler, workers=4)
    """

    allowed_methods = ("GET",)

    def __init__(
        self,
        resolver: PathResolver,
        writer: Optional[StaticFileHandler] = None,
        parser: Optional[RequestParser] = None,
        server_name: str = DEFAULT_SERVER_NAME,
        log_format: str = "text",
    ):
        """
        Args:
            resolver: Maps request paths onto the served root.
            writer: Renders resolved paths (default chunk size, same root,
                    if omitted).
            parser: Request head parser; its max_header_bytes is also the
                    read budget for the socket.
            server_name: Value of the Server header.
            log_format: Access log format, "text" or "json".
        """
        self.resolver = resolver
        self.writer = writer or StaticFileHandler(root=resolver.root)
        self.parser = parser or RequestParser()
        self.server_name = server_name
        self.log_format = log_format

    def __call__(self, conn: Connection) -> Optional[HTTPStatus]:
        return self.handle(conn)

    def handle(self, conn: Connection) -> Optional[HTTPStatus]:
        """
        Serve one request on ``conn`` and close it.

        Returns:
            The status that was sent, or None if no response was sent.
        """
        request: Optional[HTTPRequest] = None
        status: Optional[HTTPStatus] = None
        try:
            with conn:
                request, response = self._build_response(conn)
                if response is not None:
                    status = response.status
                    self._write(conn, response)
        finally:
            self._log_access(conn, request, status)
        return status

    # =========================================================================
    # READING → RESOLVING → RENDERING
    # =========================================================================

    def _build_response(
        self, conn: Connection
    ) -> tuple[Optional[HTTPRequest], Optional[HTTPResponse]]:
        request = None
        try:
            head = conn.read_head(self.parser.max_header_bytes)
            request = self.parser.parse(head, conn.address)

            if request.method not in self.allowed_methods:
                raise MethodNotAllowedError(request.method, self.allowed_methods)

            conn.state = ConnectionState.RESOLVING
            resolved = self.resolver.resolve(request.path)

            conn.state = ConnectionState.RENDERING
            return request, self.writer.render(request, resolved)

        except TransportError as e:
            logger.debug(f"[{conn.id}] {e}")
            return request, None

        except TraversalError as e:
            logger.warning(
                f"[{conn.id}] Potential path traversal attack from "
                f"{conn.client_ip}:{conn.client_port}: {e.message}"
            )
            return request, error_response(e.status)

        except MethodNotAllowedError as e:
            logger.debug(f"[{conn.id}] {e}")
            return request, error_response(e.status, allow=e.allowed)

        except ServerError as e:
            logger.debug(f"[{conn.id}] {e}")
            return request, error_response(e.status)

    # =========================================================================
    # WRITING
    # =========================================================================

    def _write(self, conn: Connection, response: HTTPResponse) -> None:
        """Send head and body. Failures truncate the response; never raise."""
        conn.state = ConnectionState.WRITING
        try:
            conn.send_all(response.head_bytes(self.server_name))
            for chunk in response.iter_body():
                conn.send_all(chunk)
        except TransportError as e:
            logger.info(f"[{conn.id}] Client went away mid-response: {e}")
        except OSError as e:
            # reading the file failed after the head was sent
            logger.error(f"[{conn.id}] Response truncated, read failed: {e}")
        finally:
            response.close()

    # =========================================================================
    # ACCESS LOG
    # =========================================================================

    def _log_access(
        self,
        conn: Connection,
        request: Optional[HTTPRequest],
        status: Optional[HTTPStatus],
    ) -> None:
        record = AccessLogRecord(
            connection_id=conn.id,
            client_ip=conn.client_ip,
            method=request.method if request else "-",
            target=request.target if request else "-",
            status=int(status) if status is not None else 0,
            bytes_sent=conn.bytes_sent,
            duration_ms=conn.age * 1000,
            timestamp=now_timestamp(),
            user_agent=(request.user_agent if request else "") or "-",
        )
        log_access(record, self.log_format)
