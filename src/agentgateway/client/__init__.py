"""Outbound protocol operations built on the core engine."""

from .http_client import HttpResult, ParsedUrl, http_get, http_post, parse_url, send_request
from .openai import complete, key_excerpt, probe
from .tcp_client import fetch_raw, lookup_host, send_message

__all__ = [
    "HttpResult",
    "ParsedUrl",
    "http_get",
    "http_post",
    "parse_url",
    "send_request",
    "complete",
    "key_excerpt",
    "probe",
    "fetch_raw",
    "lookup_host",
    "send_message",
]
