"""
Unit tests for HTTP response building and file bodies.
"""

import io
from datetime import datetime, timezone

import pytest

from fileserver.http.mime_types import get_content_type, get_mime_type
from fileserver.http.response import (
    FileBody,
    HTTPResponse,
    HTTPStatus,
    ResponseBuilder,
    error_response,
    format_http_date,
)


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_status_line(self):
        response = HTTPResponse(status=HTTPStatus.OK)
        assert response.status_line == "HTTP/1.1 200 OK"

        response = HTTPResponse(status=HTTPStatus.NOT_FOUND)
        assert response.status_line == "HTTP/1.1 404 Not Found"

    def test_head_bytes_defaults(self):
        """Content-Length, Connection, Date and Server are always present."""
        response = HTTPResponse(body=b"hello")
        head = response.head_bytes("fileserver/test")

        assert head.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"Content-Length: 5\r\n" in head
        assert b"Connection: close\r\n" in head
        assert b"Date: " in head
        assert b"Server: fileserver/test\r\n" in head
        assert head.endswith(b"\r\n\r\n")

    def test_connection_close_is_forced(self):
        response = HTTPResponse(headers={"Connection": "keep-alive"})
        assert b"Connection: close\r\n" in response.head_bytes()

    def test_to_bytes(self):
        response = HTTPResponse(headers={"X-Custom": "value"}, body=b"test")
        result = response.to_bytes()

        assert b"X-Custom: value\r\n" in result
        assert result.endswith(b"\r\n\r\ntest")

    def test_set_header_chaining(self):
        response = (HTTPResponse()
            .set_header("X-One", "1")
            .set_header("X-Two", "2"))

        assert response.headers["X-One"] == "1"
        assert response.headers["X-Two"] == "2"

    def test_streamed_content_length_comes_from_size(self):
        body = FileBody(io.BytesIO(b"0123456789"), size=10, chunk_size=4)
        response = HTTPResponse(body=body)

        assert response.is_streamed
        assert response.content_length == 10
        assert b"Content-Length: 10\r\n" in response.head_bytes()
        assert b"".join(response.iter_body()) == b"0123456789"


class TestFileBody:
    """Tests for the streamed file body."""

    def test_chunks_are_bounded(self):
        data = bytes(range(256)) * 40
        body = FileBody(io.BytesIO(data), size=len(data), chunk_size=1000)

        chunks = list(body)

        assert b"".join(chunks) == data
        assert all(len(chunk) <= 1000 for chunk in chunks)
        assert len(chunks) == 11

    def test_stops_at_announced_size(self):
        """A file that grew after fstat is cut at Content-Length."""
        body = FileBody(io.BytesIO(b"hello world"), size=5, chunk_size=64)
        assert b"".join(body) == b"hello"

    def test_ends_early_if_file_shrank(self):
        body = FileBody(io.BytesIO(b"hi"), size=10, chunk_size=4)
        assert b"".join(body) == b"hi"

    def test_closes_file_when_exhausted(self):
        fileobj = io.BytesIO(b"abc")
        body = FileBody(fileobj, size=3)

        list(body)

        assert fileobj.closed
        assert body.closed

    def test_single_pass(self):
        body = FileBody(io.BytesIO(b"abc"), size=3)
        list(body)

        with pytest.raises(RuntimeError):
            iter(body)

    def test_close_without_iterating(self):
        fileobj = io.BytesIO(b"abc")
        response = HTTPResponse(body=FileBody(fileobj, size=3))

        response.close()
        response.close()

        assert fileobj.closed

    def test_empty_file(self):
        assert list(FileBody(io.BytesIO(b""), size=0)) == []

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            FileBody(io.BytesIO(b""), size=0, chunk_size=0)


class TestResponseBuilder:
    """Tests for ResponseBuilder class."""

    def test_html_body(self):
        response = ResponseBuilder().html("<h1>Hi</h1>").build()

        assert response.headers["Content-Type"] == "text/html; charset=utf-8"
        assert response.body == b"<h1>Hi</h1>"

    def test_text_body(self):
        response = ResponseBuilder().status(HTTPStatus.OK).text("plain").build()
        assert response.headers["Content-Type"] == "text/plain; charset=utf-8"

    def test_stream(self):
        body = FileBody(io.BytesIO(b"abc"), size=3)
        response = ResponseBuilder().stream(body, "application/octet-stream").build()

        assert response.body is body
        assert response.headers["Content-Type"] == "application/octet-stream"


class TestErrorResponse:
    """Tests for error pages."""

    @pytest.mark.parametrize("status", [
        HTTPStatus.BAD_REQUEST,
        HTTPStatus.FORBIDDEN,
        HTTPStatus.NOT_FOUND,
        HTTPStatus.REQUEST_TIMEOUT,
        HTTPStatus.INTERNAL_SERVER_ERROR,
    ])
    def test_html_page(self, status: HTTPStatus):
        response = error_response(status)

        assert response.status == status
        assert response.headers["Content-Type"] == "text/html; charset=utf-8"
        assert f"<h1>{int(status)} {status.phrase}</h1>".encode() in response.body

    def test_405_has_allow_and_no_body(self):
        response = error_response(HTTPStatus.METHOD_NOT_ALLOWED, allow=("GET",))

        assert response.headers["Allow"] == "GET"
        assert response.body == b""
        assert b"Content-Length: 0\r\n" in response.head_bytes()


class TestUtilities:
    """Tests for date formatting and MIME detection."""

    def test_format_http_date(self):
        dt = datetime(2026, 10, 16, 12, 0, 5, tzinfo=timezone.utc)
        assert format_http_date(dt) == "Fri, 16 Oct 2026 12:00:05 GMT"

    @pytest.mark.parametrize("name, expected", [
        ("index.html", "text/html"),
        ("notes.txt", "text/plain"),
        ("logo.png", "image/png"),
        ("UPPER.JSON", "application/json"),
        ("blob.unknownext", "application/octet-stream"),
        ("Makefile", "application/octet-stream"),
    ])
    def test_get_mime_type(self, name: str, expected: str):
        assert get_mime_type(name) == expected

    def test_text_types_get_charset(self):
        assert get_content_type("a.txt") == "text/plain; charset=utf-8"
        assert get_content_type("a.png") == "image/png"
