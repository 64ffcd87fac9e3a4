"""
Integration tests: a real FileServer on an ephemeral port, real sockets.
"""

import socket
import threading
import time
from pathlib import Path

import pytest

from conftest import RawResponse, ServerHarness, send_raw
from fileserver import FileServer, ServerConfig, create_server


class TestServing:
    """Tests for the basic request/response scenarios."""

    def test_get_file(self, running_server):
        response = running_server.get("/a.txt")

        assert response.status == 200
        assert response.body == b"hello"
        assert response.headers["content-type"] == "text/plain; charset=utf-8"

    def test_standard_headers(self, running_server):
        response = running_server.get("/a.txt")

        assert response.headers["content-length"] == "5"
        assert response.headers["connection"] == "close"
        assert response.headers["server"].startswith("fileserver/")
        assert response.headers["date"].endswith("GMT")

    def test_root_listing(self, running_server):
        response = running_server.get("/")

        assert response.status == 200
        assert response.headers["content-type"] == "text/html; charset=utf-8"
        assert b'href="a.txt"' in response.body
        assert b'href="sub/"' in response.body
        assert b'href="with%20space.txt"' in response.body

    def test_subdirectory_listing_without_slash(self, running_server):
        response = running_server.get("/sub")

        assert response.status == 200
        assert b'<base href="/sub/">' in response.body
        assert b'href="b.txt"' in response.body

    def test_follow_listing_link(self, running_server):
        response = running_server.get("/sub/b.txt")
        assert response.body == b"world"

    def test_percent_encoded_name(self, running_server):
        response = running_server.get("/with%20space.txt")

        assert response.status == 200
        assert response.body == b"spaced"

    def test_binary_file(self, running_server, site_root: Path):
        data = bytes(range(256)) * 1024
        (site_root / "blob.bin").write_bytes(data)

        response = running_server.get("/blob.bin")

        assert response.status == 200
        assert response.body == data
        assert response.headers["content-length"] == str(len(data))


class TestErrors:
    """Tests for error statuses over the wire."""

    @pytest.mark.parametrize("target", [
        "/../etc/passwd",
        "/%2e%2e/%2e%2e/etc/passwd",
        "/sub/../../a.txt",
    ])
    def test_traversal_forbidden(self, running_server, target: str):
        response = running_server.get(target)

        assert response.status == 403
        assert b"root:" not in response.body

    def test_symlink_out_of_root_forbidden(self, running_server, site_root: Path, tmp_path_factory):
        outside = tmp_path_factory.mktemp("outside")
        (outside / "secret.txt").write_bytes(b"secret")
        (site_root / "leak.txt").symlink_to(outside / "secret.txt")

        response = running_server.get("/leak.txt")

        assert response.status == 403
        assert b"secret" not in response.body
        assert b"leak.txt" not in running_server.get("/").body

    def test_missing_file(self, running_server):
        assert running_server.get("/missing.txt").status == 404

    def test_post_not_allowed(self, running_server):
        response = running_server.request(b"POST /a.txt HTTP/1.1\r\nHost: t\r\n\r\n")

        assert response.status == 405
        assert response.headers["allow"] == "GET"

    def test_malformed_request(self, running_server):
        response = running_server.request(b"NOT A VALID REQUEST LINE\r\n\r\n")
        assert response.status == 400

    def test_client_that_leaves_gets_nothing(self, running_server):
        with socket.create_connection(running_server.address, timeout=5.0) as s:
            s.shutdown(socket.SHUT_WR)
            assert s.recv(1024) == b""

        assert running_server.get("/a.txt").status == 200


class TestConcurrency:
    """Tests for the fixed pool under load."""

    def test_more_clients_than_workers(self, running_server, site_root: Path):
        count = 12
        for i in range(count):
            (site_root / f"file{i}.txt").write_bytes(f"content-{i}".encode())

        results = {}
        lock = threading.Lock()

        def fetch(i):
            response = running_server.get(f"/file{i}.txt")
            with lock:
                results[i] = response

        threads = [threading.Thread(target=fetch, args=(i,)) for i in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(10.0)

        assert len(results) == count
        for i, response in results.items():
            assert response.status == 200
            assert response.body == f"content-{i}".encode()

        pool = running_server.server.pool
        assert pool.alive_workers == 2
        assert pool.stats["workers"]["total"] == 2

    def test_slow_client_does_not_block_others(self, running_server):
        """One silent connection ties up one worker; the other keeps serving."""
        with socket.create_connection(running_server.address, timeout=5.0):
            start = time.time()
            response = running_server.get("/a.txt")

        assert response.status == 200
        assert time.time() - start < 1.5

    def test_silent_client_times_out(self, running_server):
        with socket.create_connection(running_server.address, timeout=5.0) as s:
            s.sendall(b"GET /a.txt HTTP/1.0\r\n")
            raw = b""
            while True:
                chunk = s.recv(4096)
                if not chunk:
                    break
                raw += chunk

        assert RawResponse.parse(raw).status == 408

    def test_full_pool_answers_503(self, site_root: Path):
        server = FileServer(ServerConfig(
            host="127.0.0.1",
            port=0,
            root=str(site_root),
            workers=1,
            queue_size=1,
            submit_timeout=0.2,
            read_timeout=2.0,
        ))
        harness = ServerHarness(server)
        harness.start()
        try:
            # one silent client on the worker, one in the queue
            busy = socket.create_connection(harness.address, timeout=5.0)
            time.sleep(0.2)
            queued = socket.create_connection(harness.address, timeout=5.0)
            time.sleep(0.2)

            response = harness.get("/a.txt")

            assert response.status == 503
            busy.close()
            queued.close()
        finally:
            harness.stop()


class TestLifecycle:
    """Tests for startup and shutdown."""

    def test_ephemeral_port(self, running_server):
        host, port = running_server.address
        assert host == "127.0.0.1"
        assert port != 0

    def test_fixed_port(self, site_root: Path, free_port: int):
        server = create_server(host="127.0.0.1", port=free_port, root=str(site_root), workers=1)
        harness = ServerHarness(server)
        harness.start()
        try:
            assert harness.address == ("127.0.0.1", free_port)
            assert harness.get("/sub/b.txt").body == b"world"
        finally:
            harness.stop()

    def test_create_server(self, site_root: Path):
        server = create_server(root=str(site_root), port=0, workers=3)

        assert server.pool.size == 3
        assert server.root == site_root.resolve()

    def test_create_server_unknown_option(self, site_root: Path):
        with pytest.raises(TypeError):
            create_server(root=str(site_root), colour="blue")

    def test_invalid_config_fails_at_construction(self, tmp_path: Path):
        with pytest.raises(ValueError):
            FileServer(ServerConfig(root=str(tmp_path / "missing")))

    def test_shutdown_joins_workers(self, site_root: Path):
        server = FileServer(ServerConfig(host="127.0.0.1", port=0, root=str(site_root), workers=2))
        harness = ServerHarness(server)
        harness.start()

        assert harness.get("/a.txt").status == 200

        harness.stop()

        assert server.wait_until_stopped(5.0)
        assert server.pool.alive_workers == 0
        with pytest.raises(OSError):
            send_raw(harness.address, b"GET / HTTP/1.0\r\n\r\n", timeout=1.0)

    def test_port_in_use(self, running_server, site_root: Path):
        _, port = running_server.address
        server = FileServer(ServerConfig(host="127.0.0.1", port=port, root=str(site_root)))

        with pytest.raises(OSError):
            server.run(configure_logging=False)

        assert server.pool.alive_workers == 0
