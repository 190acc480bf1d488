"""
Inbound response serialization.

Every route answers with the same shape:

    HTTP/1.1 200 OK\\r\\n
    Content-Type: text/plain; charset=utf-8\\r\\n
    Content-Length: 3\\r\\n
    Date: Mon, 19 Oct 2026 12:00:00 GMT\\r\\n
    Server: agentgateway/0.1\\r\\n
    Connection: close\\r\\n
    \\r\\n
    ack

Only the transport layer (bad request bytes, saturated worker pool) ever
produces anything other than 200.
"""

from dataclasses import dataclass, field
from email.utils import formatdate
from http import HTTPStatus
from typing import Dict, Union


TEXT_PLAIN = "text/plain; charset=utf-8"


@dataclass
class HTTPResponse:
    status: int = 200
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        try:
            phrase = HTTPStatus(self.status).phrase
        except ValueError:
            phrase = "Unknown"
        return f"{self.version} {self.status} {phrase}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def to_bytes(self, server_name: str = "agentgateway/0.1") -> bytes:
        """
        Serialize for sending. Content-Length, Date, Server and
        Connection are filled in unless already set.
        """
        headers = dict(self.headers)
        headers.setdefault("Content-Length", str(len(self.body)))
        headers.setdefault("Date", formatdate(usegmt=True))
        headers.setdefault("Server", server_name)
        headers.setdefault("Connection", "close")

        lines = [self.status_line]
        lines.extend(f"{name}: {value}" for name, value in headers.items())
        head = "\r\n".join(lines) + "\r\n\r\n"
        return head.encode("utf-8") + self.body


def text_response(body: Union[str, bytes], status: int = 200) -> HTTPResponse:
    """A text/plain response."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return HTTPResponse(status=status, headers={"Content-Type": TEXT_PLAIN}, body=body)


def error_response(status: int, message: str) -> HTTPResponse:
    """Transport-level error (400, 503, ...), answered before routing."""
    return text_response(f"{status} {HTTPStatus(status).phrase}: {message}\n", status=status)
