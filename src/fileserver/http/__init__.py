"""
=============================================================================
HTTP PROTOCOL COMPONENTS
=============================================================================

Everything that knows about the HTTP wire format, and nothing about
sockets, threads or the filesystem:

    status_codes.py   HTTPStatus enum and reason phrases
    errors.py         Exceptions that map to error responses
    request.py        HTTPRequest + RequestParser
    response.py       HTTPResponse, FileBody, ResponseBuilder
    mime_types.py     Extension → Content-Type

A response on the wire:

    HTTP/1.1 200 OK\r\n              ← status line
    Content-Type: text/html\r\n      ← headers
    Content-Length: 123\r\n
    Connection: close\r\n
    \r\n                             ← blank line
    <!DOCTYPE html>...               ← body

=============================================================================
"""

from .status_codes import HTTPStatus
from .errors import (
    ServerError,
    TransportError,
    MalformedRequestError,
    RequestTimeoutError,
    RequestTooLargeError,
    TraversalError,
    NotFoundError,
    MethodNotAllowedError,
    FilesystemError,
)
from .request import HTTPRequest, RequestParser, parse_request
from .response import (
    HTTPResponse,
    FileBody,
    ResponseBuilder,
    error_response,
    format_http_date,
)
from .mime_types import get_mime_type, get_content_type

__all__ = [
    "HTTPStatus",

    # Errors
    "ServerError",
    "TransportError",
    "MalformedRequestError",
    "RequestTimeoutError",
    "RequestTooLargeError",
    "TraversalError",
    "NotFoundError",
    "MethodNotAllowedError",
    "FilesystemError",

    # Requests
    "HTTPRequest",
    "RequestParser",
    "parse_request",

    # Responses
    "HTTPResponse",
    "FileBody",
    "ResponseBuilder",
    "error_response",
    "format_http_date",

    # MIME types
    "get_mime_type",
    "get_content_type",
]
