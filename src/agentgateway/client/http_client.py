"""
=============================================================================
HTTP CLIENT PROTOCOL LAYER
=============================================================================

One outbound HTTP exchange, start to finish:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      send_request() Flow                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   parse_url(url)                 http(s)://authority/path            │
    │        │                         anything else → UnsupportedScheme   │
    │        ▼                                                             │
    │   OutgoingRequest + Fields       content-type / content-length /     │
    │        │                         authorization for POST              │
    │        ▼                                                             │
    │   body.write() → write_and_flush → body.finish()                     │
    │        │                                                             │
    │        ▼                                                             │
    │   handler.handle()  ──► future                                       │
    │        │                                                             │
    │        ▼                                                             │
    │   poll([future token])           waits ONCE (response or deadline)   │
    │        │                                                             │
    │        ▼                                                             │
    │   future.get()   None            → ResponseTimeout                   │
    │                  error           → TransportError / ResponseTimeout  │
    │                  response        → read_to_end(body)                 │
    │                                       2xx  → text                    │
    │                                       else → HttpStatusError         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The body of a non-2xx response is kept in the error: APIs put their
diagnostics there.

=============================================================================
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from ..core.errors import HttpStatusError, ResponseTimeout, UnsupportedScheme
from ..core.outgoing import Fields, OutgoingHandler, OutgoingRequest, default_handler
from ..core.poll import poll
from ..core.streams import DEFAULT_CHUNK_SIZE, read_to_end


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedUrl:
    scheme: str
    authority: str
    path: str


@dataclass
class HttpResult:
    status: int
    body: str
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def parse_url(url: str) -> ParsedUrl:
    """
    Split an absolute http(s) URL.

    Example:
        >>> parse_url("https://api.example.com/v1/x?y=1")
        ParsedUrl(scheme='https', authority='api.example.com', path='/v1/x?y=1')
        >>> parse_url("http://example.com").path
        '/'

    Raises:
        UnsupportedScheme: url does not start with http:// or https://.
    """
    if url.startswith("http://"):
        scheme, rest = "http", url[len("http://"):]
    elif url.startswith("https://"):
        scheme, rest = "https", url[len("https://"):]
    else:
        raise UnsupportedScheme(url)

    slash = rest.find("/")
    if slash == -1:
        return ParsedUrl(scheme, rest, "/")
    return ParsedUrl(scheme, rest[:slash], rest[slash:])


def send_request(
    method: str,
    url: str,
    body: Optional[bytes] = None,
    content_type: Optional[str] = None,
    api_key: Optional[str] = None,
    timeout: Optional[float] = 30.0,
    handler: Optional[OutgoingHandler] = None,
) -> HttpResult:
    """
    Perform one HTTP exchange.

    Raises:
        UnsupportedScheme, TransportError, ResponseTimeout, HttpStatusError
    """
    target = parse_url(url)
    handler = handler or default_handler()

    headers = Fields()
    if body is not None:
        headers.append("content-type", content_type or "application/octet-stream")
        headers.append("content-length", str(len(body)))
    if api_key:
        headers.append("authorization", f"Bearer {api_key}")

    request = OutgoingRequest(method, target.scheme, target.authority, target.path, headers)
    if body is not None:
        outgoing = request.body()
        outgoing.write().blocking_write_and_flush(body)
        outgoing.finish()

    future = handler.handle(request, timeout=timeout)
    try:
        poll([future.subscribe()])
        response = future.get()
    finally:
        future.close()

    if response is None:
        raise ResponseTimeout(timeout)

    incoming = response.consume()
    try:
        data = read_to_end(incoming, DEFAULT_CHUNK_SIZE)
    finally:
        incoming.close()

    text = data.decode("utf-8", errors="replace")
    logger.debug(f"{method} {url} -> {response.status} ({len(data)} bytes)")

    if not 200 <= response.status < 300:
        raise HttpStatusError(response.status, text)

    return HttpResult(response.status, text, response.headers.to_dict())


def http_get(url: str, timeout: Optional[float] = 30.0, handler: Optional[OutgoingHandler] = None) -> str:
    return send_request("GET", url, timeout=timeout, handler=handler).body


def http_post(
    url: str,
    body: bytes,
    content_type: str = "application/json",
    api_key: Optional[str] = None,
    timeout: Optional[float] = 30.0,
    handler: Optional[OutgoingHandler] = None,
) -> str:
    return send_request(
        "POST",
        url,
        body=body,
        content_type=content_type,
        api_key=api_key,
        timeout=timeout,
        handler=handler,
    ).body
