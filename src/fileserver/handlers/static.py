"""
=============================================================================
STATIC FILE HANDLER (RESPONSE WRITER)
=============================================================================

Turns a ResolvedPath into an HTTPResponse: a directory listing page for
directories, a streamed body for regular files.

=============================================================================
DIRECTORY LISTINGS
=============================================================================

    GET /sub/

    ┌─────────────────────────────────────────────────────────────────────┐
    │  Index of /sub/                                                      │
    │  ────────────────────────────────────────────────────────────────── │
    │  ../                                                                 │
    │  images/                                     <DIR>                   │
    │  notes.txt                                   5 bytes                 │
    └─────────────────────────────────────────────────────────────────────┘

    • Entries sorted by name so the page is stable between requests
    • href is the entry name itself (URL-quoted), "/" appended for dirs
    • A <base href="/sub/"> tag makes those relative links work even
      when the browser asked for "/sub" without the trailing slash
    • Symlinks whose target lies outside the root are left out; following
      them would only get a 403 from the resolver

=============================================================================
STREAMING FILES
=============================================================================

Reading the whole file into memory (path.read_bytes()) is fine for a
favicon and fatal for a 4 GB ISO with 16 concurrent downloads. Instead:

    open() ──► fstat() for Content-Length ──► FileBody(file, size, chunk)
                                                   │
                        ConnectionHandler pulls ───┘ one chunk at a time

Memory per download = one chunk (64 KiB by default), whatever the size.

Error mapping:

    open() raises FileNotFoundError   → 404 (deleted between stat and open)
    open() raises anything else       → 500 (permissions, EISDIR, EIO, ...)
    scandir() raises FileNotFoundError → 404
    scandir() raises anything else     → 500

=============================================================================
"""

import logging
import os
from dataclasses import dataclass
from html import escape
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from ..http.errors import FilesystemError, NotFoundError
from ..http.mime_types import get_content_type
from ..http.request import HTTPRequest
from ..http.response import (
    DEFAULT_CHUNK_SIZE,
    FileBody,
    HTTPResponse,
    HTTPStatus,
    ResponseBuilder,
)
from .path_resolver import ResolvedPath, is_within_root


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectoryEntry:
    """One line of a directory listing."""
    name: str
    is_dir: bool
    size: int = 0

    @property
    def href(self) -> str:
        return quote(self.name) + ("/" if self.is_dir else "")

    @property
    def label(self) -> str:
        return self.name + ("/" if self.is_dir else "")


class StaticFileHandler:
    """
    Renders responses for resolved paths.

    =========================================================================
    USAGE
    =========================================================================

        writer = StaticFileHandler(chunk_size=64 * 1024)
        response = writer.render(request, resolver.resolve(request.path))
        try:
            conn.send_all(response.head_bytes())
            for chunk in response.iter_body():
                conn.send_all(chunk)
        finally:
            response.close()

    =========================================================================
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE, root: Optional[Path] = None):
        """
        Args:
            chunk_size: Maximum bytes per streamed file chunk.
            root: Served root. When given, listings leave out symlinks
                  that lead outside it.
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")
        self.chunk_size = chunk_size
        self.root = Path(root).resolve() if root is not None else None

    def render(self, request: HTTPRequest, resolved: ResolvedPath) -> HTTPResponse:
        """
        Build the 200 response for a resolved path.

        Raises:
            NotFoundError: The entry vanished after it was resolved.
            FilesystemError: Listing or opening failed for another reason.
        """
        if resolved.is_dir:
            return self.render_directory(resolved)
        return self.render_file(resolved)

    # =========================================================================
    # FILES
    # =========================================================================

    def render_file(self, resolved: ResolvedPath) -> HTTPResponse:
        """Open the file and wrap it in a streamed body."""
        try:
            fileobj = open(resolved.path, "rb")
        except FileNotFoundError as e:
            raise NotFoundError(f"File vanished before open: {resolved.url_path}") from e
        except OSError as e:
            logger.error(f"Cannot open {resolved.path}: {e}")
            raise FilesystemError(f"Cannot open {resolved.url_path}") from e

        try:
            size = os.fstat(fileobj.fileno()).st_size
        except OSError as e:
            fileobj.close()
            logger.error(f"Cannot fstat {resolved.path}: {e}")
            raise FilesystemError(f"Cannot stat {resolved.url_path}") from e

        body = FileBody(fileobj, size=size, chunk_size=self.chunk_size)
        return (ResponseBuilder()
            .status(HTTPStatus.OK)
            .stream(body, get_content_type(resolved.path))
            .build())

    # =========================================================================
    # DIRECTORIES
    # =========================================================================

    def render_directory(self, resolved: ResolvedPath) -> HTTPResponse:
        """Render an HTML index of the directory's immediate entries."""
        entries = self.list_directory(resolved)
        html = self._listing_page(resolved, entries)
        return ResponseBuilder().status(HTTPStatus.OK).html(html).build()

    def list_directory(self, resolved: ResolvedPath) -> list[DirectoryEntry]:
        """
        List files and subdirectories, sorted by name.

        Entries that are neither (sockets, fifos) are left out, as are
        entries that disappear or dangle while we look at them and, when a
        root is set, symlinks that lead outside it.
        """
        entries = []
        try:
            with os.scandir(resolved.path) as it:
                for dir_entry in it:
                    try:
                        if self._escapes_root(dir_entry):
                            logger.debug(f"Hiding symlink out of root: {dir_entry.path}")
                            continue
                        if dir_entry.is_dir():
                            entries.append(DirectoryEntry(dir_entry.name, is_dir=True))
                        elif dir_entry.is_file():
                            size = dir_entry.stat().st_size
                            entries.append(DirectoryEntry(dir_entry.name, is_dir=False, size=size))
                    except FileNotFoundError:
                        logger.debug(f"Skipping vanished entry {dir_entry.path}")
        except FileNotFoundError as e:
            raise NotFoundError(f"Directory vanished: {resolved.url_path}") from e
        except OSError as e:
            logger.error(f"Cannot list {resolved.path}: {e}")
            raise FilesystemError(f"Cannot list {resolved.url_path}") from e

        entries.sort(key=lambda entry: entry.name)
        return entries

    def _escapes_root(self, dir_entry: os.DirEntry) -> bool:
        if self.root is None or not dir_entry.is_symlink():
            return False
        return not is_within_root(Path(os.path.realpath(dir_entry.path)), self.root)

    def _listing_page(self, resolved: ResolvedPath, entries: list[DirectoryEntry]) -> str:
        display_path = resolved.url_path.rstrip("/") + "/"
        base_href = quote(display_path)
        title = escape(f"Index of {display_path}")

        items = []
        if not resolved.is_root:
            items.append('<li class="dir"><a href="../">../</a><span class="size"></span></li>')
        for entry in entries:
            css_class = "dir" if entry.is_dir else "file"
            size = "&lt;DIR&gt;" if entry.is_dir else f"{entry.size} bytes"
            items.append(
                f'<li class="{css_class}">'
                f'<a href="{escape(entry.href)}">{escape(entry.label)}</a>'
                f'<span class="size">{size}</span></li>'
            )

        return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <base href="{escape(base_href)}">
    <title>{title}</title>
    <style>
        body {{ font-family: monospace; padding: 20px; }}
        h1 {{ border-bottom: 1px solid #ccc; padding-bottom: 10px; }}
        ul {{ list-style: none; padding: 0; }}
        li {{ display: flex; justify-content: space-between; padding: 5px 0; }}
        a {{ text-decoration: none; color: #0066cc; }}
        .dir a {{ font-weight: bold; }}
        .size {{ color: #888; }}
    </style>
</head>
<body>
    <h1>{title}</h1>
    <ul>
        {''.join(items)}
    </ul>
</body>
</html>
"""
