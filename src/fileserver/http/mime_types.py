"""
=============================================================================
MIME TYPE DETECTION
=============================================================================

Maps file extensions to Content-Type values for served files.

Lookup order:

    1. Our own table (MIME_TYPES) - small, predictable, platform independent
    2. The stdlib mimetypes registry - covers the long tail of extensions
    3. application/octet-stream - "unknown binary, download it"

Text types get a charset parameter so browsers decode them as UTF-8:

    >>> get_content_type("notes.txt")
    'text/plain; charset=utf-8'
    >>> get_content_type("photo.png")
    'image/png'
    >>> get_content_type("blob.unknownext")
    'application/octet-stream'

=============================================================================
"""

import mimetypes
from pathlib import Path
from typing import Optional


MIME_TYPES = {
    # Text
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".json": "application/json",
    ".xml": "application/xml",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",
    ".log": "text/plain",

    # Images
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".bmp": "image/bmp",

    # Fonts
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",

    # Audio / video
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".mp4": "video/mp4",
    ".webm": "video/webm",

    # Documents and archives
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".tar": "application/x-tar",
    ".gz": "application/gzip",
    ".wasm": "application/wasm",

    # Source code is served as text for viewing, never executed
    ".py": "text/x-python",
    ".c": "text/x-c",
    ".h": "text/x-c",
    ".rs": "text/x-rust",
    ".go": "text/x-go",
    ".sh": "text/x-shellscript",
    ".yaml": "text/yaml",
    ".yml": "text/yaml",
    ".toml": "text/x-toml",
}

DEFAULT_MIME_TYPE = "application/octet-stream"

# Non text/* types that are still text and deserve a charset
_TEXT_APPLICATION_TYPES = {
    "application/json",
    "application/xml",
    "application/javascript",
    "image/svg+xml",
}


def get_mime_type(path: str | Path, default: Optional[str] = None) -> str:
    """
    Get the MIME type for a file based on its extension.

    Args:
        path: File path or bare file name.
        default: Returned when the extension is unknown.
                 application/octet-stream if not given.
    """
    if isinstance(path, str):
        path = Path(path)

    extension = path.suffix.lower()
    if extension in MIME_TYPES:
        return MIME_TYPES[extension]

    guessed, _encoding = mimetypes.guess_type(path.name)
    return guessed or default or DEFAULT_MIME_TYPE


def is_text_type(mime_type: str) -> bool:
    """Check whether a MIME type should carry a charset parameter."""
    return mime_type.startswith("text/") or mime_type in _TEXT_APPLICATION_TYPES


def get_content_type(path: str | Path, charset: str = "utf-8") -> str:
    """Get the full Content-Type header value for a file."""
    mime_type = get_mime_type(path)
    if is_text_type(mime_type):
        return f"{mime_type}; charset={charset}"
    return mime_type
