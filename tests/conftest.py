"""
pytest configuration and fixtures.

Every fixture that talks to the network stays on 127.0.0.1: an echo
server, a server that never answers, and a small HTTP origin built on
http.server.
"""

import json
import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Generator, List

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from agentgateway import GatewayConfig, GatewayServer
from agentgateway.core.host import create_executor
from agentgateway.core.network import Network


@pytest.fixture
def config() -> GatewayConfig:
    """Gateway configuration with short engine timings."""
    return GatewayConfig(
        host="127.0.0.1",
        port=8081,
        workers=4,
        tcp_read_polls=20,
        tcp_poll_interval=0.05,
        http_timeout=5.0,
        log_level="WARNING",
    )


@pytest.fixture
def network() -> Generator[Network, None, None]:
    """A private Network capability with its own host executor."""
    net = Network(create_executor(4))
    yield net
    net.shutdown()


@pytest.fixture
def free_port() -> int:
    """A port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def socket_pair():
    """Connected non-blocking socket pair (local, peer)."""
    local, peer = socket.socketpair()
    local.setblocking(False)
    yield local, peer
    local.close()
    peer.close()


# ─────────────────────────────────────────────────────────────────────────────
# RAW TCP SERVERS
# ─────────────────────────────────────────────────────────────────────────────

class BackgroundTCPServer:
    """Accepts connections on a background thread and hands each to `serve`."""

    def __init__(self, serve):
        self._serve = serve
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(16)
        self._sock.settimeout(0.2)
        self.host, self.port = self._sock.getsockname()
        self._running = True
        self.received: List[bytes] = []
        self._thread = threading.Thread(target=self._accept_loop, daemon=True)
        self._thread.start()

    def _accept_loop(self):
        while self._running:
            try:
                client, _ = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            threading.Thread(target=self._handle, args=(client,), daemon=True).start()

    def _handle(self, client: socket.socket):
        with client:
            client.settimeout(5.0)
            try:
                self._serve(self, client)
            except OSError:
                pass

    def stop(self):
        self._running = False
        self._thread.join(timeout=2.0)
        self._sock.close()


def _echo_lines(server: BackgroundTCPServer, client: socket.socket):
    buffer = b""
    while True:
        data = client.recv(4096)
        if not data:
            return
        buffer += data
        while b"\n" in buffer:
            line, buffer = buffer.split(b"\n", 1)
            server.received.append(line)
            client.sendall(line + b"\n")


def _never_answer(server: BackgroundTCPServer, client: socket.socket):
    client.settimeout(10.0)
    try:
        while client.recv(4096):
            pass
    except socket.timeout:
        pass


def _reply_nul_padded(server: BackgroundTCPServer, client: socket.socket):
    line = client.recv(4096)
    server.received.append(line)
    client.sendall(b"pong\n\x00\x00\x00")


@pytest.fixture
def echo_server() -> Generator[BackgroundTCPServer, None, None]:
    """Line echo server: every "\\n"-terminated line is sent back."""
    server = BackgroundTCPServer(_echo_lines)
    yield server
    server.stop()


@pytest.fixture
def silent_server() -> Generator[BackgroundTCPServer, None, None]:
    """Accepts and reads, never writes."""
    server = BackgroundTCPServer(_never_answer)
    yield server
    server.stop()


@pytest.fixture
def padded_server() -> Generator[BackgroundTCPServer, None, None]:
    """Answers every connection with "pong\\n" followed by NUL padding."""
    server = BackgroundTCPServer(_reply_nul_padded)
    yield server
    server.stop()


# ─────────────────────────────────────────────────────────────────────────────
# HTTP ORIGIN
# ─────────────────────────────────────────────────────────────────────────────

class OriginHandler(BaseHTTPRequestHandler):
    """
    GET  /ok        200 "hello from origin"
    GET  /missing   404 {"error":"x"}
    GET  /slow      sleeps 2 s, then 200
    GET  /drip      headers and "hello", 1 s later "world"
    POST /echo      200, echoes the body; request recorded
    POST /v1/chat   200, a chat completion
    POST /bad-chat  200, not a chat completion
    """

    def log_message(self, format, *args):
        pass

    def _reply(self, status: int, body: bytes, content_type: str = "text/plain"):
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self):
        if self.path == "/ok":
            self._reply(200, b"hello from origin")
        elif self.path == "/missing":
            self._reply(404, b'{"error":"x"}', "application/json")
        elif self.path == "/slow":
            time.sleep(2.0)
            self._reply(200, b"late")
        elif self.path == "/drip":
            self.send_response(200)
            self.send_header("Content-Type", "text/plain")
            self.send_header("Content-Length", "10")
            self.end_headers()
            self.wfile.write(b"hello")
            time.sleep(1.0)
            self.wfile.write(b"world")
        elif self.path == "/":
            self._reply(200, b"root page")
        else:
            self._reply(404, b"not found")

    def do_POST(self):
        length = int(self.headers.get("Content-Length", "0"))
        body = self.rfile.read(length)
        self.server.requests.append(
            {"path": self.path, "headers": dict(self.headers), "body": body}
        )

        if self.path == "/echo":
            self._reply(200, body)
        elif self.path == "/v1/chat":
            completion = {"choices": [{"message": {"role": "assistant", "content": " hi there "}}]}
            self._reply(200, json.dumps(completion).encode(), "application/json")
        elif self.path == "/bad-chat":
            self._reply(200, b'{"nope": 1}', "application/json")
        else:
            self._reply(404, b"not found")


class Origin:
    def __init__(self):
        self.server = ThreadingHTTPServer(("127.0.0.1", 0), OriginHandler)
        self.server.daemon_threads = True
        self.server.requests = []
        self.port = self.server.server_address[1]
        self.url = f"http://127.0.0.1:{self.port}"
        self._thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self._thread.start()

    @property
    def requests(self) -> list:
        return self.server.requests

    def stop(self):
        self.server.shutdown()
        self.server.server_close()


@pytest.fixture
def origin() -> Generator[Origin, None, None]:
    """Local HTTP origin server."""
    srv = Origin()
    yield srv
    srv.stop()


# ─────────────────────────────────────────────────────────────────────────────
# GATEWAY
# ─────────────────────────────────────────────────────────────────────────────

class RunningGateway:
    """A GatewayServer running in a background thread."""

    def __init__(self, server: GatewayServer, port: int):
        self.server = server
        self.port = port
        self._thread = threading.Thread(
            target=server.run, kwargs={"setup_logging": False}, daemon=True
        )

    def start(self):
        self._thread.start()
        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Gateway failed to start")

    def request(self, raw: bytes, timeout: float = 10.0) -> bytes:
        """Send raw request bytes, return the whole response."""
        with socket.create_connection(("127.0.0.1", self.port), timeout=timeout) as s:
            s.sendall(raw)
            chunks = []
            while True:
                data = s.recv(65536)
                if not data:
                    break
                chunks.append(data)
        return b"".join(chunks)

    def get(self, target: str) -> bytes:
        return self.request(
            f"GET {target} HTTP/1.1\r\nHost: 127.0.0.1\r\n\r\n".encode()
        )

    def stop(self):
        self.server.shutdown()
        self._thread.join(timeout=5.0)


@pytest.fixture
def gateway(config: GatewayConfig, free_port: int) -> Generator[RunningGateway, None, None]:
    """The full gateway, listening on a free port."""
    config.port = free_port
    running = RunningGateway(GatewayServer(config), free_port)
    running.start()
    yield running
    running.stop()
