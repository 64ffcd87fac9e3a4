"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every stage of the per-connection pipeline (read, parse, resolve, render)
signals failure by raising one of these exceptions. The ConnectionHandler
catches them in ONE place and turns them into an HTTP response:

    ┌──────────────────────────┬────────┬──────────────────────────────────┐
    │ Exception                │ Status │ Meaning                          │
    ├──────────────────────────┼────────┼──────────────────────────────────┤
    │ TransportError           │   -    │ Socket read/write failed         │
    │ MalformedRequestError    │  400   │ Bad request line, header, escape │
    │ RequestTimeoutError      │  408   │ Head not received in time        │
    │ RequestTooLargeError     │  431   │ Head exceeded the byte budget    │
    │ TraversalError           │  403   │ Path would escape the root       │
    │ NotFoundError            │  404   │ Nothing at that path             │
    │ MethodNotAllowedError    │  405   │ Only GET is served               │
    │ FilesystemError          │  500   │ stat/open/list failed otherwise  │
    └──────────────────────────┴────────┴──────────────────────────────────┘

TransportError has no status: if the socket is broken there is nobody
to send a response to, so the connection is just closed.

=============================================================================
"""

from typing import Optional

from .status_codes import HTTPStatus


class ServerError(Exception):
    """
    Base class for errors that end the processing of one connection.

    Attributes:
        status: HTTP status to answer with, or None if no response can be sent.
        message: Human-readable description (logged, never sent verbatim).
    """

    status: Optional[HTTPStatus] = None

    def __init__(self, message: Optional[str] = None):
        self.message = message or (self.status.phrase if self.status else "Server error")
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"{int(self.status)} {self.message}"


class TransportError(ServerError):
    """The connection could not be read from or written to."""

    status = None


class MalformedRequestError(ServerError):
    """The request line, a header line or a percent escape is invalid."""

    status = HTTPStatus.BAD_REQUEST


class RequestTimeoutError(ServerError):
    """The client did not finish sending its request head in time."""

    status = HTTPStatus.REQUEST_TIMEOUT


class RequestTooLargeError(ServerError):
    """The request head exceeded the configured byte budget."""

    status = HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE


class TraversalError(ServerError):
    """The request path would resolve outside the served root."""

    status = HTTPStatus.FORBIDDEN


class NotFoundError(ServerError):
    """Nothing servable exists at the resolved path."""

    status = HTTPStatus.NOT_FOUND


class MethodNotAllowedError(ServerError):
    """The request used a method other than GET."""

    status = HTTPStatus.METHOD_NOT_ALLOWED

    def __init__(self, method: str, allowed: tuple[str, ...] = ("GET",)):
        self.method = method
        self.allowed = allowed
        super().__init__(f"Method not allowed: {method}")


class FilesystemError(ServerError):
    """A filesystem call failed for a reason other than "does not exist"."""

    status = HTTPStatus.INTERNAL_SERVER_ERROR
