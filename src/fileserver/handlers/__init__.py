"""
=============================================================================
HANDLERS
=============================================================================

The per-connection pipeline, one stage per module:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   ConnectionHandler                                                  │
    │       │                                                              │
    │       ├── RequestParser     (http.request)      bytes → HTTPRequest  │
    │       ├── PathResolver      (path_resolver)     path  → ResolvedPath │
    │       └── StaticFileHandler (static)            ResolvedPath →       │
    │                                                   HTTPResponse       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .path_resolver import EntryKind, PathResolver, ResolvedPath, percent_decode
from .static import DirectoryEntry, StaticFileHandler
from .connection_handler import ConnectionHandler

__all__ = [
    "PathResolver",
    "ResolvedPath",
    "EntryKind",
    "percent_decode",
    "StaticFileHandler",
    "DirectoryEntry",
    "ConnectionHandler",
]
