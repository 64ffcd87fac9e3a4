"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Turns the raw head of an HTTP request into an immutable HTTPRequest.

This server handles exactly one request per connection and never reads a
body, so the parser only cares about the HEAD of the message:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       WHAT WE PARSE                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    GET /docs/a%20b.txt?download=1 HTTP/1.0\r\n   ← request line      │
    │    ─┬─ ───────────┬────────────── ────┬───                           │
    │     │             │                   │                              │
    │   Method        Target             Version                           │
    │                   │                                                  │
    │          ┌────────┴─────────┐                                        │
    │        Path              Query (kept, ignored for files)             │
    │   /docs/a%20b.txt        download=1                                  │
    │                                                                      │
    │    Host: localhost:8123\r\n                      ← headers           │
    │    User-Agent: curl/8.0\r\n                                          │
    │    \r\n                                          ← end of head       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The path is kept PERCENT-ENCODED here. Decoding belongs to the path
resolver, which must reject broken escapes as a malformed request and
must see the decoded segments before normalizing them.

=============================================================================
WHAT COUNTS AS MALFORMED
=============================================================================

    "GET /a.txt HTTP/1.0"        ✓ well formed
    "POST /a.txt HTTP/1.1"       ✓ well formed (answered with 405 later)
    "GET /a.txt"                 ✗ missing version        → 400
    "GET  /a.txt HTTP/1.0"       ✗ double space           → 400
    "GET /a.txt HTTP/1.0 extra"  ✗ trailing garbage       → 400
    "GE(T /a.txt HTTP/1.0"       ✗ method is not a token  → 400
    "Host localhost"             ✗ header without colon   → 400

=============================================================================
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Optional

from .errors import MalformedRequestError, RequestTooLargeError


DEFAULT_MAX_HEADER_BYTES = 8 * 1024


@dataclass(frozen=True)
class HTTPRequest:
    """
    A parsed HTTP request head.

    Frozen: once parsed, nothing downstream can rewrite what the client asked
    for. It lives only as long as the connection that produced it.

    Attributes:
        method: Request method exactly as sent ("GET", "POST", ...).
        target: Raw request target ("/a%20b.txt?x=1").
        path: Target without query/fragment, still percent-encoded.
        query: Raw query string ("" if none).
        version: HTTP version string ("HTTP/1.0").
        headers: Header names lowercased to their (stripped) values.
        client_address: Peer (ip, port), for logging.
    """

    method: str
    target: str
    path: str
    query: str = ""
    version: str = "HTTP/1.0"
    headers: Dict[str, str] = field(default_factory=dict)
    client_address: tuple[str, int] = ("", 0)

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")


class RequestParser:
    """
    Parses raw request-head bytes into HTTPRequest objects.

    ==========================================================================
    REGEX PATTERNS
    ==========================================================================

    REQUEST_LINE_PATTERN: ^([!#$%&'*+.^_`|~0-9A-Za-z-]+) (\\S+) (HTTP/\\d\\.\\d)$

        ([...]+)       - METHOD: an RFC 7230 "token"
        ` `            - exactly one space
        (\\S+)          - TARGET: anything without whitespace
        ` `            - exactly one space
        (HTTP/\\d\\.\\d)  - VERSION

    HEADER_PATTERN: ^([!#$%&'*+.^_`|~0-9A-Za-z-]+):[ \\t]*(.*?)[ \\t]*$

    ==========================================================================
    """

    REQUEST_LINE_PATTERN = re.compile(
        r"^([!#$%&'*+.^_`|~0-9A-Za-z-]+) (\S+) (HTTP/\d\.\d)$"
    )
    HEADER_PATTERN = re.compile(r"^([!#$%&'*+.^_`|~0-9A-Za-z-]+):[ \t]*(.*?)[ \t]*$")

    def __init__(self, max_header_bytes: int = DEFAULT_MAX_HEADER_BYTES):
        """
        Args:
            max_header_bytes: Upper bound on the size of the request head.
                              Larger input raises RequestTooLargeError.
        """
        self.max_header_bytes = max_header_bytes

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0),
    ) -> HTTPRequest:
        """
        Parse a request head.

        Args:
            data: Bytes up to and including the blank line that ends the head.
                  A missing terminator is tolerated (the request line and
                  headers are parsed from whatever is there).
            client_address: Peer (ip, port).

        Returns:
            The parsed HTTPRequest.

        Raises:
            MalformedRequestError: Request line or a header line is invalid.
            RequestTooLargeError: data exceeds max_header_bytes.
        """
        if len(data) > self.max_header_bytes:
            raise RequestTooLargeError(
                f"Request head too large: {len(data)} > {self.max_header_bytes} bytes"
            )

        head_end = data.find(b"\r\n\r\n")
        if head_end != -1:
            data = data[:head_end]

        # ISO-8859-1 maps every byte to a character, so decoding never fails
        # and non-ASCII bytes survive until the resolver decodes escapes.
        text = data.decode("iso-8859-1")
        lines = text.split("\r\n")
        if not lines or not lines[0]:
            raise MalformedRequestError("Empty request line")

        method, target, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])
        path, query = self._split_target(target)

        return HTTPRequest(
            method=method,
            target=target,
            path=path,
            query=query,
            version=version,
            headers=headers,
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> tuple[str, str, str]:
        """Split ``METHOD SP target SP version`` or raise MalformedRequestError."""
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise MalformedRequestError(f"Invalid request line: {line[:200]!r}")
        method, target, version = match.groups()
        return method, target, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse header lines into a dict keyed by lowercase name.

        Repeated headers are joined with ", " as RFC 7230 allows.
        """
        headers: Dict[str, str] = {}
        for line in lines:
            if not line:
                continue
            match = self.HEADER_PATTERN.match(line)
            if not match:
                raise MalformedRequestError(f"Invalid header line: {line[:200]!r}")
            name, value = match.groups()
            name = name.lower()
            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value
        return headers

    @staticmethod
    def _split_target(target: str) -> tuple[str, str]:
        """Separate "/path?query#fragment" into ("/path", "query")."""
        target = target.split("#", 1)[0]
        path, _, query = target.partition("?")
        return path, query


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_header_bytes: Optional[int] = None,
) -> HTTPRequest:
    """Parse a request head with a one-off RequestParser."""
    parser = RequestParser(max_header_bytes or DEFAULT_MAX_HEADER_BYTES)
    return parser.parse(data, client_address)
