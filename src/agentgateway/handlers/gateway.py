"""
=============================================================================
GATEWAY ROUTE HANDLERS
=============================================================================

One function per route. Each reads its parameters, runs one outbound
operation, and renders the outcome (success OR failure) as text:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     Handler Contract                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   request ──► parameters with defaults                               │
    │                    │                                                 │
    │                    ▼                                                 │
    │               outbound operation                                     │
    │                    │                                                 │
    │          ┌─────────┴──────────┐                                      │
    │          ▼                    ▼                                      │
    │     "✅ ..." text       GatewayError ──► "⚠️  ... failed: <error>"   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A GatewayError never escapes a handler: the client always receives a
readable explanation with status 200.

=============================================================================
"""

import json
import logging
from typing import Optional

from ..agent import health_check
from ..client.http_client import http_get, http_post
from ..client.openai import complete, key_excerpt, probe
from ..client.tcp_client import fetch_raw, send_message
from ..config import GatewayConfig
from ..core.errors import GatewayError
from ..core.network import Network
from ..http.request import HTTPRequest
from ..http.router import RouteKind, Router


logger = logging.getLogger(__name__)


def parse_port(value: Optional[str], default: int) -> int:
    """
    Parse a port number (0-65535); anything else gives `default`.

    Example:
        >>> parse_port("8080", 80), parse_port("65536", 80), parse_port("x", 80)
        (8080, 80, 80)
    """
    if value is None or not value.isdigit() or not value.isascii():
        return default
    port = int(value)
    return port if port <= 65535 else default


class GatewayHandlers:
    """
    Route handlers bound to one configuration.

    The network capability is optional; when omitted the process-wide
    instance is used.
    """

    def __init__(self, config: GatewayConfig, network: Optional[Network] = None):
        self.config = config
        self.network = network

    # ─────────────────────────────────────────────────────────────────────
    # /health
    # ─────────────────────────────────────────────────────────────────────

    def health(self, request: HTTPRequest) -> str:
        return health_check()

    # ─────────────────────────────────────────────────────────────────────
    # /slack/command
    # ─────────────────────────────────────────────────────────────────────

    def slack_command(self, request: HTTPRequest) -> str:
        """
        Slack slash command.

        Answers "ack" right away in the response body; the actual reply
        (AI completion, or an echo when the completion is unavailable) is
        POSTed to response_url when one is given.
        """
        form = request.form()
        text = form.get("text", "")
        response_url = form.get("response_url", "")

        try:
            reply = complete(text, self.config)
        except GatewayError as e:
            logger.info(f"Completion unavailable, echoing: {e}")
            reply = f"(echo) {text} [ai unavailable: {e}]"

        if response_url:
            envelope = json.dumps({"response_type": "in_channel", "text": reply})
            try:
                http_post(
                    response_url,
                    envelope.encode("utf-8"),
                    content_type="application/json",
                    timeout=self.config.http_timeout,
                )
            except GatewayError as e:
                logger.warning(f"Slack callback to {response_url} failed: {e}")

        return "ack"

    # ─────────────────────────────────────────────────────────────────────
    # /tcp/send
    # ─────────────────────────────────────────────────────────────────────

    def tcp_send(self, request: HTTPRequest) -> str:
        host = request.get_query("host", self.config.default_tcp_host)
        port = parse_port(request.get_query("port"), self.config.default_tcp_port)
        msg = request.get_query("msg", self.config.default_message)

        try:
            reply = send_message(host, port, msg, self.config, self.network)
        except GatewayError as e:
            return f"⚠️  Send failed: {e}\nTarget: {host}:{port}\n"
        return f"✅ Sent to {host}:{port}\n\n> {msg}\n\n< {reply}\n"

    # ─────────────────────────────────────────────────────────────────────
    # /debug/httpget
    # ─────────────────────────────────────────────────────────────────────

    def debug_http_get(self, request: HTTPRequest) -> str:
        url = request.get_query("url", self.config.default_get_url)

        try:
            body = http_get(url, timeout=self.config.http_timeout)
        except GatewayError as e:
            return f"⚠️  HTTP GET failed: {e}\nURL: {url}\n"
        return f"✅ HTTP GET {url}\n\n{body}\n"

    # ─────────────────────────────────────────────────────────────────────
    # /debug/openai
    # ─────────────────────────────────────────────────────────────────────

    def debug_openai(self, request: HTTPRequest) -> str:
        key = self.config.openai_api_key
        model = self.config.llm_model

        if not key:
            return (
                "⚠️  OpenAI probe skipped: OPENAI_API_KEY is not set\n"
                f"Model: {model}\n"
                f"Endpoint: {self.config.openai_url}\n"
            )

        header = (
            f"Endpoint: {self.config.openai_url}\n"
            f"Model: {model}\n"
            f"Key: {key_excerpt(key)}\n"
        )
        try:
            body = probe(self.config)
        except GatewayError as e:
            return f"⚠️  OpenAI probe failed: {e}\n\n{header}"
        return f"✅ OpenAI probe succeeded\n\n{header}\n{body}\n"

    # ─────────────────────────────────────────────────────────────────────
    # default
    # ─────────────────────────────────────────────────────────────────────

    def tcp_default_fetch(self, request: HTTPRequest) -> str:
        host = request.get_query("host", self.config.default_fetch_host)
        port = parse_port(request.get_query("port"), self.config.default_fetch_port)

        try:
            body = fetch_raw(host, port, self.config, self.network)
        except GatewayError as e:
            return (
                f"⚠️  TCP fetch failed: {e}\n\n"
                "🔧 This is expected in some environments.\n"
                "📡 Server is running.\n\n"
                "Try: /?host=127.0.0.1&port=8082 after starting a local server.\n"
            )
        return f"✅ TCP fetch successful!\n\nTarget: {host}:{port}\n\n{body}\n"


def build_router(config: GatewayConfig, network: Optional[Network] = None) -> Router:
    """The gateway's routing table, in match order."""
    handlers = GatewayHandlers(config, network)
    router = Router()

    router.add_route("/health", RouteKind.HEALTH, handlers.health)
    router.add_route("/slack/command", RouteKind.SLACK_COMMAND, handlers.slack_command)
    router.add_route("/tcp/send", RouteKind.TCP_SEND, handlers.tcp_send)
    router.add_route("/debug/httpget", RouteKind.DEBUG_HTTP_GET, handlers.debug_http_get)
    router.add_route("/debug/openai", RouteKind.DEBUG_OPENAI_PROBE, handlers.debug_openai)
    router.set_default(RouteKind.TCP_DEFAULT_FETCH, handlers.tcp_default_fetch)

    return router
