"""
End-to-end tests for the gateway server over real sockets.
"""

import socket
import threading

import pytest

from agentgateway import GatewayConfig, GatewayServer
from agentgateway.core.workers import WorkerPool
from agentgateway.handlers import gateway as handlers_module
from agentgateway.http.router import RouteKind, Router


def split_response(raw: bytes):
    head, _, body = raw.partition(b"\r\n\r\n")
    lines = head.decode("utf-8").split("\r\n")
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()
    return lines[0], headers, body


def raw_request(port: int, data: bytes, timeout: float = 10.0) -> bytes:
    with socket.create_connection(("127.0.0.1", port), timeout=timeout) as s:
        s.sendall(data)
        chunks = []
        while True:
            chunk = s.recv(65536)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


class TestGatewayServer:
    """Tests against a running gateway."""

    def test_health(self, gateway):
        """Test the liveness route end to end."""
        status, headers, body = split_response(gateway.get("/health"))

        assert status == "HTTP/1.1 200 OK"
        assert body == b"ok"
        assert headers["content-type"].startswith("text/plain")
        assert headers["content-length"] == "2"
        assert headers["connection"] == "close"
        assert len(headers["x-request-id"]) == 8

    def test_bad_request(self, gateway):
        """Test that an unparseable request line gets a 400."""
        status, _, body = split_response(gateway.request(b"garbage\r\n\r\n"))
        assert status == "HTTP/1.1 400 Bad Request"
        assert body.startswith(b"400 Bad Request:")

    def test_unknown_method(self, gateway):
        status, _, _ = split_response(gateway.request(b"BREW / HTTP/1.1\r\n\r\n"))
        assert status == "HTTP/1.1 405 Method Not Allowed"

    def test_too_large(self, config, free_port):
        """Test that an oversized request is answered with 413."""
        config.port = free_port
        config.max_request_size = 256
        server = GatewayServer(config)
        thread = threading.Thread(target=server.run, kwargs={"setup_logging": False}, daemon=True)
        thread.start()
        try:
            assert server.wait_until_ready(timeout=5.0)
            raw = b"GET /" + b"a" * 1024 + b" HTTP/1.1\r\n\r\n"
            status, _, _ = split_response(raw_request(free_port, raw))
            assert status.startswith("HTTP/1.1 413 ")
        finally:
            server.shutdown()
            thread.join(timeout=5.0)

    def test_tcp_send_through_gateway(self, gateway, echo_server):
        """Test a full /tcp/send exchange against a local echo server."""
        _, _, body = split_response(
            gateway.get(f"/tcp/send?host=127.0.0.1&port={echo_server.port}&msg=ping")
        )
        text = body.decode("utf-8")
        assert text.startswith(f"✅ Sent to 127.0.0.1:{echo_server.port}")
        assert "< ping" in text

    def test_post_body_read_fully(self, gateway, monkeypatch):
        """Test that the body arrives intact even when sent separately."""
        monkeypatch.setattr(handlers_module, "complete", lambda text, config: f"re: {text}")
        body = b"text=split+body&response_url="
        head = (
            b"POST /slack/command HTTP/1.1\r\n"
            b"Content-Type: application/x-www-form-urlencoded\r\n"
            b"Content-Length: " + str(len(body)).encode() + b"\r\n\r\n"
        )

        with socket.create_connection(("127.0.0.1", gateway.port), timeout=10.0) as s:
            s.sendall(head)
            s.sendall(body)
            data = b""
            while True:
                chunk = s.recv(65536)
                if not chunk:
                    break
                data += chunk

        _, _, reply = split_response(data)
        assert reply == b"ack"

    def test_overloaded(self, config, free_port):
        """Test that a request beyond the worker count gets a 503."""
        entered = threading.Event()
        release = threading.Event()

        def blocking(request):
            entered.set()
            release.wait(10.0)
            return "done"

        router = Router()
        router.set_default(RouteKind.HEALTH, blocking)

        config.port = free_port
        config.workers = 1
        server = GatewayServer(config, router=router)
        thread = threading.Thread(target=server.run, kwargs={"setup_logging": False}, daemon=True)
        thread.start()

        first = {}
        client = threading.Thread(
            target=lambda: first.update(raw=raw_request(free_port, b"GET /a HTTP/1.1\r\n\r\n")),
            daemon=True,
        )
        try:
            assert server.wait_until_ready(timeout=5.0)
            client.start()
            assert entered.wait(5.0)

            status, _, body = split_response(raw_request(free_port, b"GET /b HTTP/1.1\r\n\r\n"))
            assert status == "HTTP/1.1 503 Service Unavailable"
            assert b"gateway overloaded" in body

            release.set()
            client.join(timeout=5.0)
            assert split_response(first["raw"])[2] == b"done"
        finally:
            release.set()
            server.shutdown()
            thread.join(timeout=5.0)

    def test_invalid_config_rejected(self):
        with pytest.raises(ValueError):
            GatewayServer(GatewayConfig(port=0))

    def test_routes_printed_at_startup(self, config, free_port, capsys):
        config.port = free_port
        server = GatewayServer(config)
        thread = threading.Thread(target=server.run, kwargs={"setup_logging": False}, daemon=True)
        thread.start()
        try:
            assert server.wait_until_ready(timeout=5.0)
        finally:
            server.shutdown()
            thread.join(timeout=5.0)

        out = capsys.readouterr().out
        assert "Routes:" in out
        assert "/tcp/send" in out
        assert "(default)" in out


class TestWorkerPool:
    """Tests for WorkerPool."""

    def test_rejects_when_full(self):
        release = threading.Event()
        pool = WorkerPool(max_workers=1)
        try:
            assert pool.submit(release.wait, 5.0) is True
            assert pool.submit(lambda: None) is False
            assert pool.stats["rejected"] == 1
        finally:
            release.set()
            pool.shutdown(wait=True, timeout=5.0)

    def test_failures_counted(self):
        done = threading.Event()
        pool = WorkerPool(max_workers=2)

        def boom():
            try:
                raise RuntimeError("bad")
            finally:
                done.set()

        pool.submit(boom)
        done.wait(5.0)
        pool.shutdown(wait=True, timeout=5.0)
        assert pool.stats["failed"] == 1
        assert pool.busy == 0

    def test_submit_after_shutdown(self):
        pool = WorkerPool(max_workers=1)
        pool.shutdown()
        with pytest.raises(RuntimeError):
            pool.submit(lambda: None)

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            WorkerPool(max_workers=0)
