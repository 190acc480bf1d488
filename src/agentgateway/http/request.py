"""
=============================================================================
INBOUND REQUEST PARSER
=============================================================================

Turns the raw bytes of one inbound HTTP/1.1 request into an HTTPRequest.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     INBOUND REQUEST ANATOMY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    GET /tcp/send?host=10.0.0.7&port=7&msg=hi%21 HTTP/1.1\r\n          │
    │    ─┬─ ────┬──── ──────────────┬─────────────── ────┬───            │
    │   Method  Path            Query string            Version           │
    │                                                                      │
    │    Host: gateway.local\r\n                                           │
    │    Content-Type: application/x-www-form-urlencoded\r\n               │
    │    Content-Length: 34\r\n                                            │
    │    \r\n                                                              │
    │    text=hello+world&response_url=                                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
QUERY STRINGS VS FORM BODIES
=============================================================================

Both are "&"-separated key=value pairs, and both are percent-decoded, but
they differ in one detail:

    query string    "a+b"  →  "a+b"    ('+' is literal)
    form body       "a+b"  →  "a b"    ('+' is a space)

Decoding is lenient: an escape that is not "%" followed by two hex digits
is kept as-is ("100%" stays "100%"), and bytes that are not valid UTF-8
become U+FFFD. A key that appears twice keeps its LAST value.

=============================================================================
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple
from urllib.parse import unquote, unquote_plus


class HTTPParseError(Exception):
    """
    Raised when inbound request bytes cannot be parsed.

    Carries the status to answer with:

        400 Bad Request                 malformed syntax
        405 Method Not Allowed          unknown method
        413 Payload Too Large           over max_request_size
        505 HTTP Version Not Supported  not HTTP/1.0 or HTTP/1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def percent_decode(text: str, plus_as_space: bool = False) -> str:
    """
    Decode %XX escapes, leaving malformed escapes untouched.

    Example:
        >>> percent_decode("hello%20world")
        'hello world'
        >>> percent_decode("100%")
        '100%'
        >>> percent_decode("a+b"), percent_decode("a+b", plus_as_space=True)
        ('a+b', 'a b')
    """
    if plus_as_space:
        return unquote_plus(text, errors="replace")
    return unquote(text, errors="replace")


def _parse_pairs(text: str, plus_as_space: bool) -> Dict[str, str]:
    params: Dict[str, str] = {}
    for pair in text.split("&"):
        if not pair:
            continue
        key, _, value = pair.partition("=")
        if not key:
            continue
        params[percent_decode(key, plus_as_space)] = percent_decode(value, plus_as_space)
    return params


def parse_query_params(query: str) -> Dict[str, str]:
    """
    Parse a query string ("a=1&b=2") into a dict.

    Empty pairs and pairs with an empty key are skipped; a key without
    "=" gets an empty value; later duplicates win.
    """
    return _parse_pairs(query, plus_as_space=False)


def parse_form(body: bytes) -> Dict[str, str]:
    """Parse an application/x-www-form-urlencoded body."""
    return _parse_pairs(body.decode("utf-8", errors="replace"), plus_as_space=True)


def split_path_and_query(target: str) -> Tuple[str, Optional[str]]:
    """
    Split a request target at the first "?".

    Example:
        >>> split_path_and_query("/tcp/send?port=7")
        ('/tcp/send', 'port=7')
        >>> split_path_and_query("/health")
        ('/health', None)
    """
    path, sep, query = target.partition("?")
    return path, (query if sep else None)


@dataclass
class HTTPRequest:
    """
    A parsed inbound request.

    Attributes:
        method:         GET, POST, ...
        path:           Target without the query string, not decoded.
        query_string:   Raw text after "?", or None when there was no "?".
        query_params:   Decoded query parameters (single-valued).
        headers:        Header name (lowercase) to value.
        body:           Raw body bytes, exactly Content-Length long.
        client_address: (ip, port) of the peer.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"
    query_string: Optional[str] = None
    query_params: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    client_address: Tuple[str, int] = ("", 0)

    @property
    def content_type(self) -> Optional[str]:
        value = self.headers.get("content-type")
        if value is None:
            return None
        return value.split(";", 1)[0].strip().lower()

    @property
    def target(self) -> str:
        if self.query_string is None:
            return self.path
        return f"{self.path}?{self.query_string}"

    def get_header(self, name: str, default: str = "") -> str:
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.query_params.get(name, default)

    def form(self) -> Dict[str, str]:
        """The body decoded as an HTML form."""
        return parse_form(self.body)


class RequestParser:
    """
    Parses raw request bytes into HTTPRequest objects.

        raw bytes
            │
            ├── size check ───────────────► 413
            ├── split at \\r\\n\\r\\n ────────► 400 if missing
            ├── request line ─────────────► 400 / 405 / 505
            ├── headers (lowercased)
            └── body, Content-Length bytes ► 400 if short
    """

    VALID_METHODS = {"GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"}

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(self, data: bytes, client_address: Tuple[str, int] = ("", 0)) -> HTTPRequest:
        """
        Parse one complete request.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(f"Request too large: {len(data)} bytes", status_code=413)

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        head = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = head.split("\r\n")
        method, target, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", "0"))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length")
        if content_length < 0:
            raise HTTPParseError("Invalid Content-Length")
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        path, query_string = split_path_and_query(target)

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            query_string=query_string,
            query_params=parse_query_params(query_string or ""),
            headers=headers,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> Tuple[str, str, str]:
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, target, version = match.groups()
        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)
        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(f"Unsupported HTTP version: {version}", status_code=505)
        return method, target, version

    def _parse_headers(self, lines) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        for line in lines:
            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue
            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            # Repeated headers fold into one comma-separated value.
            headers[name] = f"{headers[name]}, {value}" if name in headers else value
        return headers
