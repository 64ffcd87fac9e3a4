"""
=============================================================================
FILESERVER CLI ENTRY POINT
=============================================================================

=============================================================================
USAGE
=============================================================================

    # Serve the current directory on 127.0.0.1:8123 with 4 workers
    python -m fileserver

    # Port and worker count, positionally
    python -m fileserver 9000 8

    # Everything else is a flag
    python -m fileserver 9000 8 --root ./public --host 0.0.0.0
    python -m fileserver --queue-size 0 --submit-timeout 2.5
    python -m fileserver --log-level DEBUG --log-format json

Anything not given on the command line comes from the environment
(FILESERVER_PORT, FILESERVER_ROOT, ...; see ServerConfig.from_env), then
from the defaults.

Exit status: 0 after a clean shutdown, 1 if the port cannot be bound,
2 for invalid arguments or configuration.

=============================================================================
"""

import argparse
import sys
from typing import Optional

from . import __version__
from .config import LOG_LEVELS, ServerConfig
from .access_log import LOG_FORMATS
from .server import FileServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fileserver",
        description="Serve files and directory listings over HTTP with a fixed worker pool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m fileserver                         # cwd on 127.0.0.1:8123, 4 workers
  python -m fileserver 9000 8                  # port 9000, 8 workers
  python -m fileserver --root ./public         # serve another directory
  python -m fileserver --host 0.0.0.0          # listen on all interfaces
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # POSITIONAL
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "port",
        nargs="?",
        type=int,
        default=None,
        help="Port to listen on (default: 8123, 0 = any free port)",
    )

    parser.add_argument(
        "workers",
        nargs="?",
        type=int,
        default=None,
        help="Number of worker threads (default: 4)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK AND FILES
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--host", "-H", default=None,
                        help="Address to bind (default: 127.0.0.1)")

    parser.add_argument("--root", "-r", default=None,
                        help="Directory to serve (default: current directory)")

    # ─────────────────────────────────────────────────────────────────────
    # LIMITS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--queue-size", type=int, default=None,
                        help="Connections waiting for a worker (default: 4 x workers, 0 = unbounded)")

    parser.add_argument("--read-timeout", type=float, default=None,
                        help="Seconds to wait for the request head (default: 5)")

    parser.add_argument("--chunk-size", type=int, default=None,
                        help="Bytes per streamed file chunk (default: 65536)")

    parser.add_argument("--submit-timeout", type=float, default=None,
                        help="Answer 503 if no worker frees up within this many seconds "
                             "(default: wait)")

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING AND META
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--log-level", "-l", type=str.upper, choices=LOG_LEVELS, default=None,
                        help="Logging level (default: INFO)")

    parser.add_argument("--log-format", choices=LOG_FORMATS, default=None,
                        help="Access log format (default: text)")

    parser.add_argument("--version", "-V", action="version",
                        version=f"fileserver {__version__}")

    return parser


# argparse dest → ServerConfig field
_OVERRIDES = (
    "port", "workers", "host", "root", "queue_size", "read_timeout",
    "chunk_size", "submit_timeout", "log_level", "log_format",
)


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """
    Environment first, then every option the user actually passed.

    Raises:
        ValueError: An environment variable does not parse.
    """
    config = ServerConfig.from_env()
    for name in _OVERRIDES:
        value = getattr(args, name)
        if value is not None:
            setattr(config, name, value)
    return config


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        server = FileServer(config_from_args(args))
    except ValueError as e:
        parser.error(str(e))

    try:
        server.run()
    except OSError as e:
        print(f"fileserver: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
