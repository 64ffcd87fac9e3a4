"""
pytest configuration and fixtures.
"""

import socket
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Generator, Optional

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fileserver import FileServer, ServerConfig


@pytest.fixture
def site_root(tmp_path: Path) -> Path:
    """
    A small tree to serve:

        a.txt            "hello"
        sub/
            b.txt        "world"
        with space.txt   "spaced"
    """
    (tmp_path / "a.txt").write_bytes(b"hello")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "b.txt").write_bytes(b"world")
    (tmp_path / "with space.txt").write_bytes(b"spaced")
    return tmp_path


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request head."""
    return (
        b"GET /docs/a%20b.txt?download=1 HTTP/1.0\r\n"
        b"Host: localhost:8123\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: */*\r\n"
        b"\r\n"
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@dataclass
class RawResponse:
    """A response as read off the socket."""
    status: int
    headers: dict = field(default_factory=dict)
    body: bytes = b""

    @classmethod
    def parse(cls, raw: bytes) -> "RawResponse":
        head, _, body = raw.partition(b"\r\n\r\n")
        lines = head.decode("latin-1").split("\r\n")
        status = int(lines[0].split(" ")[1])
        headers = {}
        for line in lines[1:]:
            name, _, value = line.partition(":")
            headers[name.strip().lower()] = value.strip()
        return cls(status=status, headers=headers, body=body)


def send_raw(address: tuple[str, int], data: bytes, timeout: float = 5.0) -> bytes:
    """Send ``data`` on a fresh connection and read until the server closes."""
    with socket.create_connection(address, timeout=timeout) as s:
        s.sendall(data)
        chunks = []
        while True:
            chunk = s.recv(65536)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


class ServerHarness:
    """Runs a FileServer in a background thread."""

    def __init__(self, server: FileServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def address(self) -> tuple[str, int]:
        return self.server.server_address

    def start(self):
        self._thread = threading.Thread(
            target=self.server.run,
            kwargs={"configure_logging": False},
            daemon=True,
        )
        self._thread.start()
        if not self.server.wait_until_ready(5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)

    def request(self, data: bytes) -> RawResponse:
        return RawResponse.parse(send_raw(self.address, data))

    def get(self, target: str) -> RawResponse:
        return self.request(f"GET {target} HTTP/1.0\r\nHost: test\r\n\r\n".encode("latin-1"))


@pytest.fixture
def running_server(site_root: Path) -> Generator[ServerHarness, None, None]:
    """A FileServer on an ephemeral port serving ``site_root``."""
    server = FileServer(ServerConfig(
        host="127.0.0.1",
        port=0,
        root=str(site_root),
        workers=2,
        read_timeout=2.0,
        log_level="WARNING",
    ))

    harness = ServerHarness(server)
    harness.start()

    yield harness

    harness.stop()
