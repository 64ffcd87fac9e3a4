"""
=============================================================================
HTTP RESPONSE
=============================================================================

Response objects and their serialization.

=============================================================================
TWO KINDS OF BODY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        RESPONSE BODIES                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   IN-MEMORY (bytes)               STREAMED (FileBody)                │
    │   ─────────────────               ───────────────────                │
    │                                                                      │
    │   • Directory listings            • File contents                    │
    │   • Error pages                   • Read chunk by chunk              │
    │   • Small, built in one go        • Memory use = one chunk,          │
    │                                     whatever the file size           │
    │                                                                      │
    │   head_bytes() + body             head_bytes() + chunk + chunk + ... │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The writer never needs to know which kind it has: iter_body() yields
bytes in both cases.

A FileBody is SINGLE PASS. It owns an open file, yields at most
chunk_size bytes per step, stops at the size announced in Content-Length,
and closes the file when exhausted or when close() is called. Always call
HTTPResponse.close() when done (even if the body was never iterated),
otherwise the file descriptor leaks.

=============================================================================
SERIALIZED FORM
=============================================================================

    HTTP/1.1 200 OK\r\n
    Content-Type: text/plain; charset=utf-8\r\n
    Content-Length: 5\r\n
    Connection: close\r\n
    Date: Fri, 16 Oct 2026 12:00:00 GMT\r\n
    Server: fileserver/1.0.0\r\n
    \r\n
    hello

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from html import escape
from typing import BinaryIO, Dict, Iterator, Optional, Union

from .status_codes import HTTPStatus


DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_SERVER_NAME = "fileserver"


class FileBody:
    """
    Lazy, finite, single-pass sequence of file chunks.

    Iterating yields successive reads of at most ``chunk_size`` bytes and
    never more than ``size`` bytes in total, so the body always matches the
    Content-Length computed when the file was opened (a file that grows while
    being sent is truncated to that size; one that shrinks just ends early).

    Usage:
        body = FileBody(open(path, "rb"), size=os.fstat(f.fileno()).st_size)
        try:
            for chunk in body:
                sock.sendall(chunk)
        finally:
            body.close()
    """

    def __init__(self, fileobj: BinaryIO, size: int, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")
        self._file = fileobj
        self.size = size
        self.chunk_size = chunk_size
        self._consumed = False

    def __iter__(self) -> Iterator[bytes]:
        if self._consumed:
            raise RuntimeError("FileBody can only be iterated once")
        self._consumed = True
        return self._chunks()

    def _chunks(self) -> Iterator[bytes]:
        remaining = self.size
        try:
            while remaining > 0:
                chunk = self._file.read(min(self.chunk_size, remaining))
                if not chunk:
                    break
                remaining -= len(chunk)
                yield chunk
        finally:
            self.close()

    @property
    def closed(self) -> bool:
        return self._file.closed

    def close(self) -> None:
        """Release the underlying file. Safe to call more than once."""
        if not self._file.closed:
            self._file.close()


Body = Union[bytes, FileBody]


@dataclass
class HTTPResponse:
    """
    An HTTP response ready to be written to a connection.

    Attributes:
        status: Status code (enum).
        headers: Response headers in insertion order.
        body: In-memory bytes or a streamed FileBody.
        version: Protocol version on the status line.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: Body = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """e.g. ``HTTP/1.1 404 Not Found``"""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def content_length(self) -> int:
        """Number of body bytes announced to the client."""
        if isinstance(self.body, FileBody):
            return self.body.size
        return len(self.body)

    @property
    def is_streamed(self) -> bool:
        return isinstance(self.body, FileBody)

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def head_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """
        Serialize the status line and headers, including the blank line.

        Content-Length, Connection, Date and Server are filled in when the
        caller has not set them. Connection is always "close": one request
        per connection.
        """
        headers = dict(self.headers)
        headers.setdefault("Content-Length", str(self.content_length))
        headers["Connection"] = "close"
        headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        headers.setdefault("Server", server_name)

        lines = [self.status_line]
        lines.extend(f"{name}: {value}" for name, value in headers.items())
        lines.append("")
        lines.append("")
        return "\r\n".join(lines).encode("latin-1")

    def iter_body(self) -> Iterator[bytes]:
        """Yield the body as a sequence of byte strings."""
        if isinstance(self.body, FileBody):
            yield from self.body
        elif self.body:
            yield self.body

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """
        Serialize the whole response in memory.

        Only meant for small in-memory bodies and tests; streamed bodies
        should be written chunk by chunk instead.
        """
        return self.head_bytes(server_name) + b"".join(self.iter_body())

    def close(self) -> None:
        """Release resources held by the body (open files)."""
        if isinstance(self.body, FileBody):
            self.body.close()


class ResponseBuilder:
    """
    Fluent builder for HTTPResponse objects.

        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .html("<h1>Hi</h1>")
            .build())
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: Body = b""

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        if isinstance(body, str):
            body = body.encode("utf-8")
        self._body = body
        return self

    def html(self, html: str) -> "ResponseBuilder":
        return self.content_type("text/html; charset=utf-8").body(html)

    def text(self, text: str) -> "ResponseBuilder":
        return self.content_type("text/plain; charset=utf-8").body(text)

    def stream(self, body: FileBody, content_type: str) -> "ResponseBuilder":
        """Use a streamed file body; Content-Length comes from its size."""
        self._body = body
        return self.content_type(content_type)

    def build(self) -> HTTPResponse:
        return HTTPResponse(status=self._status, headers=self._headers, body=self._body)


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def format_http_date(dt: datetime) -> str:
    """
    Format a UTC datetime as an HTTP-date (RFC 7231).

    Example: Fri, 16 Oct 2026 12:00:00 GMT
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def error_response(status: HTTPStatus, allow: Optional[tuple[str, ...]] = None) -> HTTPResponse:
    """
    Build the response for a failed request.

    405 carries an Allow header and no body. Every other status gets a tiny
    HTML page, ``<h1>404 Not Found</h1>``. The page never includes details
    from the exception; those go to the log only.
    """
    builder = ResponseBuilder().status(status)
    if status == HTTPStatus.METHOD_NOT_ALLOWED:
        return builder.header("Allow", ", ".join(allow or ("GET",))).build()

    title = escape(f"{int(status)} {status.phrase}")
    page = (
        "<!DOCTYPE html>\n"
        f"<html><head><title>{title}</title></head>"
        f"<body><h1>{title}</h1></body></html>\n"
    )
    return builder.html(page).build()
