"""
Unit tests for the gateway route handlers.

Outbound operations are replaced with fakes, except where a local echo
server or origin stands in for the remote side.
"""

import json

import pytest

from agentgateway.core.errors import ConnectFailed, HttpStatusError, MissingCredential
from agentgateway.handlers import gateway
from agentgateway.handlers.gateway import GatewayHandlers, build_router, parse_port
from agentgateway.http.request import HTTPRequest, parse_query_params
from agentgateway.http.router import RouteKind


def get(path: str, query: str = "") -> HTTPRequest:
    return HTTPRequest(
        method="GET",
        path=path,
        query_string=query or None,
        query_params=parse_query_params(query),
    )


def slack(body: bytes) -> HTTPRequest:
    return HTTPRequest(
        method="POST",
        path="/slack/command",
        headers={"content-type": "application/x-www-form-urlencoded"},
        body=body,
    )


@pytest.fixture
def handlers(config, network):
    return GatewayHandlers(config, network)


class TestParsePort:
    """Tests for parse_port()."""

    @pytest.mark.parametrize("value,expected", [
        ("8080", 8080),
        ("0", 0),
        ("65535", 65535),
        ("65536", 80),
        ("-1", 80),
        ("", 80),
        ("80a", 80),
        ("٨٠", 80),
        (None, 80),
    ])
    def test_parse(self, value, expected):
        assert parse_port(value, 80) == expected


class TestRouting:
    """Tests for the gateway routing table."""

    def test_route_table(self, config):
        router = build_router(config)
        assert router.match("/health").kind is RouteKind.HEALTH
        assert router.match("/slack/command").kind is RouteKind.SLACK_COMMAND
        assert router.match("/tcp/send").kind is RouteKind.TCP_SEND
        assert router.match("/debug/httpget").kind is RouteKind.DEBUG_HTTP_GET
        assert router.match("/debug/openai").kind is RouteKind.DEBUG_OPENAI_PROBE
        assert router.match("/").kind is RouteKind.TCP_DEFAULT_FETCH
        assert router.match("/unknown").kind is RouteKind.TCP_DEFAULT_FETCH

    def test_health(self, config):
        response = build_router(config).handle(get("/health"))
        assert response.status == 200
        assert response.text() == "ok"


class TestTcpSend:
    """Tests for /tcp/send."""

    def test_defaults(self, handlers, monkeypatch):
        calls = []

        def fake_send(host, port, msg, config, network=None):
            calls.append((host, port, msg))
            return "pong"

        monkeypatch.setattr(gateway, "send_message", fake_send)
        text = handlers.tcp_send(get("/tcp/send"))

        assert calls == [("127.0.0.1", 9090, "hello from gateway")]
        assert text == "✅ Sent to 127.0.0.1:9090\n\n> hello from gateway\n\n< pong\n"

    def test_bad_port_uses_default(self, handlers, monkeypatch):
        calls = []
        monkeypatch.setattr(gateway, "send_message", lambda h, p, m, c, n=None: calls.append(p) or "")
        handlers.tcp_send(get("/tcp/send", "port=65536"))
        assert calls == [9090]

    def test_failure_rendered(self, handlers, monkeypatch):
        def refuse(*args, **kwargs):
            raise ConnectFailed("Connection refused")

        monkeypatch.setattr(gateway, "send_message", refuse)
        text = handlers.tcp_send(get("/tcp/send", "host=10.1.2.3&port=1"))

        assert text == "⚠️  Send failed: connect failed: Connection refused\nTarget: 10.1.2.3:1\n"

    def test_against_echo_server(self, handlers, echo_server):
        query = f"host=127.0.0.1&port={echo_server.port}&msg=hi%20there"
        text = handlers.tcp_send(get("/tcp/send", query))

        assert text.startswith(f"✅ Sent to 127.0.0.1:{echo_server.port}")
        assert "> hi there" in text
        assert "< hi there\n" in text


class TestDebugHttpGet:
    """Tests for /debug/httpget."""

    def test_success(self, handlers, origin):
        url = f"{origin.url}/ok"
        text = handlers.debug_http_get(get("/debug/httpget", f"url={url}"))
        assert text == f"✅ HTTP GET {url}\n\nhello from origin\n"

    def test_status_error(self, handlers, monkeypatch):
        def fail(url, timeout=None):
            raise HttpStatusError(500, "boom")

        monkeypatch.setattr(gateway, "http_get", fail)
        text = handlers.debug_http_get(get("/debug/httpget", "url=http://x/"))
        assert text == "⚠️  HTTP GET failed: http status 500: boom\nURL: http://x/\n"

    def test_not_a_url(self, handlers):
        text = handlers.debug_http_get(get("/debug/httpget", "url=not-a-url"))
        assert text.startswith("⚠️  HTTP GET failed: unsupported scheme")


class TestDebugOpenAI:
    """Tests for /debug/openai."""

    def test_skipped_without_key(self, handlers, monkeypatch):
        monkeypatch.setattr(gateway, "probe", lambda config: pytest.fail("probe called"))
        handlers.config.openai_api_key = None

        text = handlers.debug_openai(get("/debug/openai"))

        assert text.startswith("⚠️  OpenAI probe skipped: OPENAI_API_KEY is not set")
        assert f"Model: {handlers.config.llm_model}" in text

    def test_success_masks_key(self, handlers, monkeypatch):
        handlers.config.openai_api_key = "sk-abcdef1234567890wxyz"
        monkeypatch.setattr(gateway, "probe", lambda config: '{"id": "x"}')

        text = handlers.debug_openai(get("/debug/openai"))

        assert text.startswith("✅ OpenAI probe succeeded")
        assert "Key: sk-abc...wxyz" in text
        assert "sk-abcdef1234567890wxyz" not in text
        assert text.endswith('{"id": "x"}\n')

    def test_failure(self, handlers, monkeypatch):
        handlers.config.openai_api_key = "sk-abcdef1234567890wxyz"

        def fail(config):
            raise HttpStatusError(401, "bad key")

        monkeypatch.setattr(gateway, "probe", fail)
        text = handlers.debug_openai(get("/debug/openai"))
        assert text.startswith("⚠️  OpenAI probe failed: http status 401: bad key")


class TestSlackCommand:
    """Tests for /slack/command."""

    def test_reply_posted_to_response_url(self, handlers, monkeypatch):
        posts = []
        monkeypatch.setattr(gateway, "complete", lambda text, config: f"answer to {text}")
        monkeypatch.setattr(
            gateway, "http_post", lambda url, body, **kwargs: posts.append((url, body)) or ""
        )

        text = handlers.slack_command(
            slack(b"text=what+time&response_url=https%3A%2F%2Fhooks.example%2Fr")
        )

        assert text == "ack"
        assert len(posts) == 1
        url, body = posts[0]
        assert url == "https://hooks.example/r"
        assert json.loads(body) == {"response_type": "in_channel", "text": "answer to what time"}

    def test_echo_when_completion_unavailable(self, handlers, monkeypatch):
        posts = []

        def no_key(text, config):
            raise MissingCredential("OPENAI_API_KEY")

        monkeypatch.setattr(gateway, "complete", no_key)
        monkeypatch.setattr(
            gateway, "http_post", lambda url, body, **kwargs: posts.append(body) or ""
        )

        handlers.slack_command(slack(b"text=hello&response_url=https%3A%2F%2Fh%2Fr"))

        reply = json.loads(posts[0])["text"]
        assert reply == "(echo) hello [ai unavailable: OPENAI_API_KEY is not set]"

    def test_no_response_url(self, handlers, monkeypatch):
        monkeypatch.setattr(gateway, "complete", lambda text, config: "x")
        monkeypatch.setattr(gateway, "http_post", lambda *a, **k: pytest.fail("posted"))

        assert handlers.slack_command(slack(b"text=hi&response_url=")) == "ack"

    def test_callback_failure_still_acks(self, handlers, monkeypatch):
        def fail(*args, **kwargs):
            raise HttpStatusError(404, "no_service")

        monkeypatch.setattr(gateway, "complete", lambda text, config: "x")
        monkeypatch.setattr(gateway, "http_post", fail)

        assert handlers.slack_command(slack(b"text=hi&response_url=https%3A%2F%2Fh%2Fr")) == "ack"

    def test_callback_to_origin(self, handlers, origin, monkeypatch):
        monkeypatch.setattr(gateway, "complete", lambda text, config: "done")
        body = f"text=go&response_url={origin.url}/echo".encode()

        assert handlers.slack_command(slack(body)) == "ack"
        assert json.loads(origin.requests[-1]["body"])["text"] == "done"


class TestTcpDefaultFetch:
    """Tests for the default route."""

    def test_out_of_range_port_uses_default(self, handlers, monkeypatch):
        calls = []

        def fake_fetch(host, port, config, network=None):
            calls.append((host, port))
            return "HTTP/1.1 200 OK"

        monkeypatch.setattr(gateway, "fetch_raw", fake_fetch)
        text = handlers.tcp_default_fetch(get("/", "host=127.0.0.1&port=65536"))

        assert calls == [("127.0.0.1", 80)]
        assert "Target: 127.0.0.1:80" in text

    def test_success(self, handlers, origin):
        text = handlers.tcp_default_fetch(get("/", f"host=127.0.0.1&port={origin.port}"))

        assert text.startswith(f"✅ TCP fetch successful!\n\nTarget: 127.0.0.1:{origin.port}\n\nHTTP/1.")
        assert text.endswith("root page\n")

    def test_failure_hint(self, handlers, free_port):
        text = handlers.tcp_default_fetch(get("/", f"host=127.0.0.1&port={free_port}"))

        assert text.startswith("⚠️  TCP fetch failed: connect failed:")
        assert "🔧 This is expected in some environments." in text
        assert text.endswith("Try: /?host=127.0.0.1&port=8082 after starting a local server.\n")
