"""
=============================================================================
GATEWAY CONFIGURATION
=============================================================================

All tunables of the gateway in one dataclass: where it listens, how hard
the engine tries before giving up, and which AI-completion endpoint it
talks to.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m agentgateway --port 9000                         │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── GATEWAY_PORT=9000 OPENAI_API_KEY=sk-... agentgateway       │
    │                                                                      │
    │   3. Defaults in GatewayConfig                                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The configuration is read once at startup and never mutated afterwards;
request handlers only ever read it.

=============================================================================
SECRETS
=============================================================================

OPENAI_API_KEY is read from the environment and never logged. Anything
that wants to show it (the /debug/openai route) goes through
client.openai.key_excerpt().

=============================================================================
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional


def _optional_int(value: Optional[str]) -> Optional[int]:
    if value is None or value.strip() == "":
        return None
    return int(value)


@dataclass
class GatewayConfig:
    """
    Configuration for the gateway.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    INBOUND SERVER
    - host, port, backlog, workers, max_request_size

    OUTBOUND ENGINE
    - dns_max_polls, connect_max_polls, tcp_read_polls,
      tcp_reply_max_bytes, tcp_poll_interval, tcp_quiet_polls, read_chunk_size,
      http_timeout, fallback_addresses

    ROUTE DEFAULTS
    - default_tcp_host, default_tcp_port, default_message,
      default_fetch_host, default_fetch_port, default_get_url

    AI COMPLETION
    - openai_api_key, llm_model, openai_url, completion_max_tokens

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # INBOUND SERVER
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    port: int = 8081
    backlog: int = 128

    workers: int = 8
    """
    Inbound requests handled at once. One more is answered with 503.
    """

    max_request_size: int = 1024 * 1024

    server_name: str = "agentgateway/0.1"

    # ─────────────────────────────────────────────────────────────────────
    # OUTBOUND ENGINE
    # ─────────────────────────────────────────────────────────────────────

    dns_max_polls: Optional[int] = None
    """
    Cap on resolver poll cycles. None waits as long as the resolver takes.
    """

    connect_max_polls: Optional[int] = None
    """
    Cap on connect poll cycles. None waits until the OS finishes or
    fails the connect.
    """

    tcp_read_polls: int = 20
    tcp_reply_max_bytes: int = 4096
    tcp_poll_interval: float = 0.25
    tcp_quiet_polls: int = 1
    """
    Interactive reply reads wait at most tcp_read_polls * tcp_poll_interval,
    and stop after tcp_quiet_polls empty cycles once the reply has started.
    """

    read_chunk_size: int = 32 * 1024

    http_timeout: Optional[float] = 30.0

    fallback_addresses: Dict[str, str] = field(
        default_factory=lambda: {"example.com": "93.184.216.34"}
    )
    """
    Hostnames with a known-good IPv4 address, used when resolution fails.
    """

    # ─────────────────────────────────────────────────────────────────────
    # ROUTE DEFAULTS
    # ─────────────────────────────────────────────────────────────────────

    default_tcp_host: str = "127.0.0.1"
    default_tcp_port: int = 9090
    default_message: str = "hello from gateway"
    default_fetch_host: str = "example.com"
    default_fetch_port: int = 80
    default_get_url: str = "http://example.com/"

    # ─────────────────────────────────────────────────────────────────────
    # AI COMPLETION
    # ─────────────────────────────────────────────────────────────────────

    openai_api_key: Optional[str] = None
    llm_model: str = "gpt-4o-mini"
    openai_url: str = "https://api.openai.com/v1/chat/completions"
    completion_max_tokens: int = 256
    system_prompt: str = "You are a helpful assistant answering Slack slash commands. Be brief."

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> "GatewayConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        GATEWAY_HOST                Bind address (default: 127.0.0.1)
        GATEWAY_PORT                Bind port (default: 8081)
        GATEWAY_WORKERS             Concurrent requests (default: 8)
        GATEWAY_LOG_LEVEL           Logging level (default: INFO)
        GATEWAY_LOG_FORMAT          text or json (default: text)
        GATEWAY_HTTP_TIMEOUT        Outbound HTTP timeout, seconds (default: 30)
        GATEWAY_DNS_MAX_POLLS       Resolver poll cap (default: unbounded)
        GATEWAY_CONNECT_MAX_POLLS   Connect poll cap (default: unbounded)
        GATEWAY_TCP_QUIET_POLLS     Empty cycles ending a started reply (default: 1)
        OPENAI_API_KEY              Completion API key (default: unset)
        LLM_MODEL                   Completion model (default: gpt-4o-mini)
        OPENAI_URL                  Completion endpoint

        An empty OPENAI_API_KEY counts as unset.

        =====================================================================
        """
        return cls(
            host=os.getenv("GATEWAY_HOST", "127.0.0.1"),
            port=int(os.getenv("GATEWAY_PORT", "8081")),
            workers=int(os.getenv("GATEWAY_WORKERS", "8")),
            log_level=os.getenv("GATEWAY_LOG_LEVEL", "INFO"),
            log_format=os.getenv("GATEWAY_LOG_FORMAT", "text"),
            http_timeout=float(os.getenv("GATEWAY_HTTP_TIMEOUT", "30")),
            dns_max_polls=_optional_int(os.getenv("GATEWAY_DNS_MAX_POLLS")),
            connect_max_polls=_optional_int(os.getenv("GATEWAY_CONNECT_MAX_POLLS")),
            tcp_quiet_polls=int(os.getenv("GATEWAY_TCP_QUIET_POLLS", "1")),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            llm_model=os.getenv("LLM_MODEL") or "gpt-4o-mini",
            openai_url=os.getenv("OPENAI_URL") or "https://api.openai.com/v1/chat/completions",
        )

    def validate(self) -> None:
        """
        Validate configuration values. Called once at startup.

        Raises:
            ValueError: On the first invalid value.
        """
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 1-65535.")

        if self.workers < 1:
            raise ValueError("workers must be >= 1")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', got {self.log_format!r}")

        for name in ("dns_max_polls", "connect_max_polls"):
            value = getattr(self, name)
            if value is not None and value < 1:
                raise ValueError(f"{name} must be >= 1 or unset")

        if self.tcp_read_polls < 1 or self.tcp_quiet_polls < 1:
            raise ValueError("tcp_read_polls and tcp_quiet_polls must be >= 1")

        if self.tcp_reply_max_bytes < 1 or self.read_chunk_size < 1:
            raise ValueError("read sizes must be >= 1")

        if self.tcp_poll_interval <= 0:
            raise ValueError("tcp_poll_interval must be > 0")

        if self.http_timeout is not None and self.http_timeout <= 0:
            raise ValueError("http_timeout must be > 0")

        if not 0 < self.default_tcp_port < 65536 or not 0 < self.default_fetch_port < 65536:
            raise ValueError("default ports must be 1-65535")
