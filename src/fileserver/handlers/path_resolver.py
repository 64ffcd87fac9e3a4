"""
=============================================================================
PATH RESOLVER
=============================================================================

Maps a request path to a file or directory INSIDE the served root, or
refuses.

=============================================================================
SECURITY: PATH TRAVERSAL
=============================================================================

    ATTACK ATTEMPTS:
    ┌─────────────────────────────────────────────────────────────────────┐
    │  GET /../../etc/passwd           dot-dot segments                    │
    │  GET /%2e%2e/%2e%2e/etc/passwd   the same, percent-encoded           │
    │  GET /sub/../../etc/passwd       climbs out after going in           │
    │  GET //etc/passwd                absolute-path override              │
    │  GET /..%5c..%5cwindows          backslash separators                │
    └─────────────────────────────────────────────────────────────────────┘

    Our protection, in order:

    1. DECODE STRICTLY
       "%zz", "%4", invalid UTF-8 or a NUL byte → 400 Bad Request.
       We never guess what a broken escape was supposed to mean.

    2. NORMALIZE LEXICALLY (no filesystem calls)
       Walk the decoded segments with a stack:

           "/sub/./x/../a.txt"
               sub    → [sub]
               .      → [sub]          (skip)
               x      → [sub, x]
               ..     → [sub]          (pop)
               a.txt  → [sub, a.txt]

       A ".." with an EMPTY stack would leave the root → 403 Forbidden.
       It is NOT clamped to the root: "/../a.txt" is refused, not served
       as "/a.txt". Attack traffic should look like an error, not succeed.

    3. CHECK THE INVARIANT
       root / segments must equal root or have root among its parents.
       With step 2 this always holds; the check guards against future edits.

    4. STAT
       Only now do we touch the disk, to learn whether the path is a
       regular file or a directory.

    5. CONFINE SYMLINKS
       A symlink inside the root may point anywhere. The real path
       (os.path.realpath) must lie under the root as well, or → 403.

Why lexical first instead of Path.resolve() alone? Traversal is decided
from the request bytes, so "/../a.txt" is refused even where a symlink
would make it harmless. Step 5 follows links at the moment of the call;
a link swapped between that check and open() is not caught (a symlink
race), so do not serve trees that untrusted users can write to.

=============================================================================
"""

import logging
import os
import re
import stat
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from urllib.parse import unquote_to_bytes

from ..http.errors import (
    FilesystemError,
    MalformedRequestError,
    NotFoundError,
    TraversalError,
)


logger = logging.getLogger(__name__)


# "%" not followed by two hex digits
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")

# "C:", "c:foo"
_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")


class EntryKind(Enum):
    """What a resolved path points at."""
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class ResolvedPath:
    """
    A filesystem path proven to lie within the served root.

    Attributes:
        path: Absolute filesystem path.
        kind: FILE or DIRECTORY, from the stat call during resolution.
        url_path: Normalized, decoded URL path ("/" or "/sub/a.txt").
        size: st_size at resolution time.
    """

    path: Path
    kind: EntryKind
    url_path: str
    size: int = 0

    @property
    def is_dir(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    @property
    def is_file(self) -> bool:
        return self.kind is EntryKind.FILE

    @property
    def is_root(self) -> bool:
        return self.url_path == "/"


def percent_decode(raw_path: str) -> str:
    """
    Strictly percent-decode a request path.

    ``+`` is left alone (that rule only applies to query strings).

    Raises:
        MalformedRequestError: Invalid escape, invalid UTF-8 or a NUL byte.
    """
    if _BAD_ESCAPE.search(raw_path):
        raise MalformedRequestError(f"Invalid percent escape in {raw_path!r}")

    # The parser decoded the head as ISO-8859-1, so this round-trips the
    # exact bytes the client sent.
    try:
        raw_bytes = unquote_to_bytes(raw_path.encode("iso-8859-1"))
        decoded = raw_bytes.decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError) as e:
        raise MalformedRequestError(f"Path is not valid UTF-8: {raw_path!r}") from e

    if "\x00" in decoded:
        raise MalformedRequestError("NUL byte in path")
    return decoded


def is_within_root(path: Path, root: Path) -> bool:
    """True if ``path`` is ``root`` or lies below it (both absolute)."""
    return path == root or root in path.parents


class PathResolver:
    """
    Resolves request paths against a fixed root directory.

    Usage:
        resolver = PathResolver("/srv/www")
        resolved = resolver.resolve("/docs/a%20b.txt")
        resolved.path    # PosixPath('/srv/www/docs/a b.txt')
        resolved.kind    # EntryKind.FILE
    """

    def __init__(self, root: str | Path):
        """
        Args:
            root: Directory to serve. Made absolute once, here.

        Raises:
            ValueError: root is not an existing directory.
        """
        self.root = Path(root).resolve()
        if not self.root.is_dir():
            raise ValueError(f"Root directory does not exist: {root}")

    def resolve(self, raw_path: str) -> ResolvedPath:
        """
        Resolve a raw (percent-encoded) request path.

        Args:
            raw_path: Path part of the request target, without the query.

        Returns:
            ResolvedPath inside the root.

        Raises:
            MalformedRequestError: Not origin-form, or broken escapes.
            TraversalError: The path would escape the root, lexically or
                            through a symlink.
            NotFoundError: Nothing (servable) exists there.
            FilesystemError: stat failed for another reason.
        """
        if not raw_path.startswith("/"):
            raise MalformedRequestError(f"Request target must start with '/': {raw_path!r}")

        decoded = percent_decode(raw_path)
        segments = self._normalize(decoded)

        path = self.root.joinpath(*segments)
        if not is_within_root(path, self.root):
            raise TraversalError(f"Resolved path escapes root: {raw_path!r}")

        url_path = "/" + "/".join(segments)
        kind, size = self._stat(path, url_path)

        real_path = Path(os.path.realpath(path))
        if not is_within_root(real_path, self.root):
            raise TraversalError(f"Symlink leads outside root: {url_path} -> {real_path}")
        return ResolvedPath(path=path, kind=kind, url_path=url_path, size=size)

    def _normalize(self, decoded: str) -> list[str]:
        """Collapse ".", ".." and empty segments; refuse to climb above the root."""
        if decoded.startswith("//"):
            raise TraversalError(f"Absolute path override: {decoded!r}")

        segments: list[str] = []
        for segment in decoded.split("/"):
            if segment in ("", "."):
                continue
            if segment == "..":
                if not segments:
                    raise TraversalError(f"Path climbs above root: {decoded!r}")
                segments.pop()
                continue
            if "\\" in segment or _DRIVE_PREFIX.match(segment):
                raise TraversalError(f"Path segment overrides root: {segment!r}")
            segments.append(segment)
        return segments

    @staticmethod
    def _stat(path: Path, url_path: str) -> tuple[EntryKind, int]:
        try:
            st = os.stat(path)
        except (FileNotFoundError, NotADirectoryError) as e:
            raise NotFoundError(f"No such file or directory: {url_path}") from e
        except OSError as e:
            logger.error(f"stat failed for {path}: {e}")
            raise FilesystemError(f"Cannot stat {url_path}") from e

        if stat.S_ISDIR(st.st_mode):
            return EntryKind.DIRECTORY, 0
        if stat.S_ISREG(st.st_mode):
            return EntryKind.FILE, st.st_size
        # fifos, sockets, devices: never served
        raise NotFoundError(f"Not a regular file or directory: {url_path}")
