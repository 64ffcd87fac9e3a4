"""
=============================================================================
ACCESS LOG
=============================================================================

One record per connection, emitted after the connection is closed, on the
"fileserver.access" logger so it can be routed separately from the
diagnostic logs:

    logging.getLogger("fileserver.access").addHandler(file_handler)

    TEXT (default), close to the Apache combined format:
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 127.0.0.1 - - [16/Oct/2026:12:00:00 +0000] "GET /a.txt" 200 5 1.3ms │
    │ ─────────     ──────────────────────────  ────────────  ─── ─ ───── │
    │ client        timestamp                   request       st  bytes   │
    └─────────────────────────────────────────────────────────────────────┘

    JSON (for log aggregators):
        {"connection_id": "a1b2c3d4", "client_ip": "127.0.0.1", ...}

A connection that never produced a request (the client went away before
sending anything) is logged with method and target "-" and status 0.

=============================================================================
"""

import json
import logging
import time
from dataclasses import asdict, dataclass


logger = logging.getLogger("fileserver.access")


LOG_FORMATS = ("text", "json")


@dataclass
class AccessLogRecord:
    """
    Structured access log entry.

    Attributes:
        connection_id: Short id of the Connection.
        client_ip: Peer address.
        method: Request method, "-" if no request was parsed.
        target: Raw request target, "-" if no request was parsed.
        status: Status code sent, 0 if no response was sent.
        bytes_sent: Bytes written to the socket (head + body).
        duration_ms: Time from accept to close.
        timestamp: Local time, "%d/%b/%Y:%H:%M:%S %z".
        user_agent: User-Agent header, "-" if absent.
    """

    connection_id: str
    client_ip: str
    method: str
    target: str
    status: int
    bytes_sent: int
    duration_ms: float
    timestamp: str
    user_agent: str = "-"

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {self.target}" {self.status} '
            f'{self.bytes_sent} {self.duration_ms:.2f}ms'
        )


def log_access(record: AccessLogRecord, log_format: str = "text") -> None:
    """Emit ``record`` on the access logger in the requested format."""
    if not logger.isEnabledFor(logging.INFO):
        return
    if log_format == "json":
        logger.info(json.dumps(record.to_dict()))
    else:
        logger.info(record.to_text())


def now_timestamp() -> str:
    return time.strftime("%d/%b/%Y:%H:%M:%S %z")
