"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes this server can put on a status line, with their reason
phrases.

    ┌───────┬───────────────────────────────┬──────────────────────────────┐
    │ Code  │ Phrase                        │ When we send it              │
    ├───────┼───────────────────────────────┼──────────────────────────────┤
    │ 200   │ OK                            │ File or directory served     │
    │ 400   │ Bad Request                   │ Malformed request line/path  │
    │ 403   │ Forbidden                     │ Path escapes the root        │
    │ 404   │ Not Found                     │ Nothing at that path         │
    │ 405   │ Method Not Allowed            │ Anything but GET             │
    │ 408   │ Request Timeout               │ Client too slow to send head │
    │ 431   │ Request Header Fields Too ... │ Head exceeds the byte budget │
    │ 500   │ Internal Server Error         │ Filesystem failure           │
    │ 503   │ Service Unavailable           │ Queue full (if configured)   │
    └───────┴───────────────────────────────┴──────────────────────────────┘

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes used by the server.

    IntEnum, so members compare equal to plain integers:

        >>> HTTPStatus.NOT_FOUND == 404
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    OK = 200

    BAD_REQUEST = 400
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    REQUEST_HEADER_FIELDS_TOO_LARGE = 431

    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503

    @property
    def phrase(self) -> str:
        """Reason phrase for the status line (``HTTP/1.1 404 Not Found``)."""
        return _STATUS_PHRASES.get(self, "Unknown")


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE: "Request Header Fields Too Large",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
}
