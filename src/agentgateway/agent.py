"""
Agent facade.

A small programmatic interface next to the HTTP routes, for callers that
embed the gateway instead of talking to it over HTTP.
"""

import logging
from typing import List, Optional

from .client.http_client import http_get
from .core.errors import GatewayError


logger = logging.getLogger(__name__)


SUMMARY_CHARS = 200


def health_check() -> str:
    return "ok"


def process_query(query: str, context: Optional[str] = None) -> str:
    """Echo a query with its context in a fixed, parseable shape."""
    return f"query={query}, context={context!r}"


def _summarise(url: str, body: str) -> str:
    text = " ".join(body.split())
    if len(text) > SUMMARY_CHARS:
        text = text[:SUMMARY_CHARS] + "..."
    return f"fetched {url} ({len(body)} chars): {text}"


def fetch_and_process(url: str, timeout: Optional[float] = 30.0) -> str:
    """
    GET url and summarise the body.

    Raises:
        GatewayError: Whatever the HTTP layer raised.
    """
    body = http_get(url, timeout=timeout)
    return _summarise(url, body)


def multi_source_response(query: str, urls: List[str], timeout: Optional[float] = 30.0) -> str:
    """
    Fetch every url and combine the summaries under the query.

    A source that fails contributes its error line instead of aborting
    the whole response.
    """
    lines = [f"query: {query}"]
    for url in urls:
        try:
            lines.append(f"- {fetch_and_process(url, timeout=timeout)}")
        except GatewayError as e:
            logger.warning(f"Source {url} failed: {e}")
            lines.append(f"- {url}: error: {e}")
    return "\n".join(lines)
