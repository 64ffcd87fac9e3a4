"""
Unit tests for the static file handler (files and directory listings).
"""

import os
from pathlib import Path

import pytest

from fileserver.handlers.path_resolver import PathResolver
from fileserver.handlers.static import DirectoryEntry, StaticFileHandler
from fileserver.http.errors import FilesystemError, NotFoundError
from fileserver.http.request import parse_request
from fileserver.http.response import FileBody
from fileserver.http.status_codes import HTTPStatus


@pytest.fixture
def resolver(site_root: Path) -> PathResolver:
    return PathResolver(site_root)


@pytest.fixture
def handler() -> StaticFileHandler:
    return StaticFileHandler(chunk_size=4)


def get(path: str):
    return parse_request(f"GET {path} HTTP/1.0\r\n\r\n".encode())


class TestDirectoryEntry:
    """Tests for listing entries."""

    def test_file_entry(self):
        entry = DirectoryEntry("a.txt", is_dir=False, size=5)
        assert entry.href == "a.txt"
        assert entry.label == "a.txt"

    def test_dir_entry_gets_slash(self):
        entry = DirectoryEntry("sub", is_dir=True)
        assert entry.href == "sub/"
        assert entry.label == "sub/"

    def test_href_is_quoted(self):
        entry = DirectoryEntry("with space.txt", is_dir=False)
        assert entry.href == "with%20space.txt"
        assert entry.label == "with space.txt"


class TestRenderFile:
    """Tests for streamed file responses."""

    def test_streams_exact_bytes(self, handler, resolver):
        response = handler.render(get("/a.txt"), resolver.resolve("/a.txt"))

        assert response.status == HTTPStatus.OK
        assert isinstance(response.body, FileBody)
        assert response.content_length == 5
        assert response.headers["Content-Type"] == "text/plain; charset=utf-8"

        chunks = list(response.iter_body())
        assert b"".join(chunks) == b"hello"
        assert all(len(chunk) <= 4 for chunk in chunks)

    def test_large_file_is_chunked(self, resolver, site_root: Path):
        data = os.urandom(200_000)
        (site_root / "big.bin").write_bytes(data)
        handler = StaticFileHandler(chunk_size=65536)

        response = handler.render(get("/big.bin"), resolver.resolve("/big.bin"))
        chunks = list(response.iter_body())

        assert b"".join(chunks) == data
        assert max(len(chunk) for chunk in chunks) <= 65536
        assert response.headers["Content-Type"] == "application/octet-stream"

    def test_empty_file(self, handler, resolver, site_root: Path):
        (site_root / "empty.txt").write_bytes(b"")

        response = handler.render(get("/empty.txt"), resolver.resolve("/empty.txt"))

        assert response.content_length == 0
        assert b"".join(response.iter_body()) == b""

    def test_file_vanished_before_open(self, handler, resolver, site_root: Path):
        resolved = resolver.resolve("/a.txt")
        (site_root / "a.txt").unlink()

        with pytest.raises(NotFoundError):
            handler.render(get("/a.txt"), resolved)

    def test_open_failure_is_500(self, handler, resolver, monkeypatch):
        resolved = resolver.resolve("/a.txt")

        def broken_open(*args, **kwargs):
            raise PermissionError(13, "Permission denied")

        monkeypatch.setattr("builtins.open", broken_open)

        with pytest.raises(FilesystemError) as exc_info:
            handler.render_file(resolved)

        assert exc_info.value.status == HTTPStatus.INTERNAL_SERVER_ERROR

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            StaticFileHandler(chunk_size=0)


class TestRenderDirectory:
    """Tests for HTML directory listings."""

    def test_list_directory_is_sorted(self, handler, resolver):
        entries = handler.list_directory(resolver.resolve("/"))

        assert [entry.name for entry in entries] == ["a.txt", "sub", "with space.txt"]
        assert entries[0].size == 5
        assert entries[1].is_dir

    def test_root_listing(self, handler, resolver):
        response = handler.render(get("/"), resolver.resolve("/"))
        page = response.body.decode("utf-8")

        assert response.status == HTTPStatus.OK
        assert response.headers["Content-Type"] == "text/html; charset=utf-8"
        assert "Index of /" in page
        assert '<base href="/">' in page
        assert 'href="../"' not in page
        assert '<a href="a.txt">a.txt</a>' in page
        assert '<a href="sub/">sub/</a>' in page
        assert '<a href="with%20space.txt">with space.txt</a>' in page
        assert "5 bytes" in page
        assert "&lt;DIR&gt;" in page

    def test_subdirectory_listing(self, handler, resolver):
        response = handler.render(get("/sub"), resolver.resolve("/sub"))
        page = response.body.decode("utf-8")

        assert "Index of /sub/" in page
        assert '<base href="/sub/">' in page
        assert '<a href="../">../</a>' in page
        assert '<a href="b.txt">b.txt</a>' in page

    def test_names_are_escaped(self, handler, resolver, site_root: Path):
        (site_root / "<b>&.txt").write_bytes(b"x")

        page = handler.render(get("/"), resolver.resolve("/")).body.decode("utf-8")

        assert "&lt;b&gt;&amp;.txt" in page
        assert "<b>&.txt" not in page

    def test_empty_directory(self, handler, resolver, site_root: Path):
        (site_root / "empty").mkdir()

        entries = handler.list_directory(resolver.resolve("/empty"))

        assert entries == []

    @pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="needs mkfifo")
    def test_special_files_left_out(self, handler, resolver, site_root: Path):
        os.mkfifo(site_root / "pipe")

        names = [entry.name for entry in handler.list_directory(resolver.resolve("/"))]

        assert "pipe" not in names

    def test_dangling_symlink_left_out(self, handler, resolver, site_root: Path):
        os.symlink(site_root / "nowhere", site_root / "dangling")

        names = [entry.name for entry in handler.list_directory(resolver.resolve("/"))]

        assert "dangling" not in names

    def test_directory_vanished(self, handler, resolver, site_root: Path):
        (site_root / "gone").mkdir()
        resolved = resolver.resolve("/gone")
        (site_root / "gone").rmdir()

        with pytest.raises(NotFoundError):
            handler.render(get("/gone"), resolved)

    def test_scandir_failure_is_500(self, handler, resolver, monkeypatch):
        resolved = resolver.resolve("/sub")

        def broken_scandir(path):
            raise PermissionError(13, "Permission denied")

        monkeypatch.setattr("fileserver.handlers.static.os.scandir", broken_scandir)

        with pytest.raises(FilesystemError):
            handler.render(get("/sub"), resolved)


class TestListingSymlinks:
    """Tests for symlinks in listings of a handler that knows its root."""

    def test_links_out_of_root_are_hidden(self, resolver, site_root: Path, tmp_path_factory):
        outside = tmp_path_factory.mktemp("outside")
        (outside / "secret.txt").write_bytes(b"secret")
        os.symlink(outside / "secret.txt", site_root / "leak.txt")
        os.symlink(outside, site_root / "escape")
        os.symlink(site_root / "a.txt", site_root / "alias.txt")
        handler = StaticFileHandler(root=site_root)

        names = [entry.name for entry in handler.list_directory(resolver.resolve("/"))]

        assert "leak.txt" not in names
        assert "escape" not in names
        assert "alias.txt" in names

    def test_without_root_links_are_listed(self, resolver, site_root: Path, tmp_path_factory):
        outside = tmp_path_factory.mktemp("outside")
        os.symlink(outside, site_root / "escape")

        names = [entry.name for entry in StaticFileHandler().list_directory(resolver.resolve("/"))]

        assert "escape" in names
