"""
Inbound client connection.

Wraps one accepted socket for exactly one request/response exchange:

    accept ──► read_request() ──► (route) ──► send_response() ──► close()

The gateway never keeps a connection alive: every response carries
"Connection: close" and the socket is closed right after it is sent.

Unlike the outbound engine, the inbound side uses ordinary blocking
sockets with a timeout; each connection is owned by one worker thread.
"""

import logging
import socket
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    CLOSED = "closed"


class RequestTooLarge(Exception):
    pass


@dataclass
class Connection:
    """
    One accepted client connection.

    Attributes:
        socket: The client socket.
        address: Client (ip, port).
        id: Short identifier for log lines.
    """

    socket: socket.socket
    address: Tuple[str, int]
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.monotonic)

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    max_request_size: int = 1024 * 1024

    def __post_init__(self):
        self.socket.setblocking(True)
        self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def age(self) -> float:
        return time.monotonic() - self.created_at

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete request: headers up to the blank line, then
        Content-Length bytes of body.

        Returns:
            The request bytes, or None if the client closed before
            sending a full header block.

        Raises:
            TimeoutError: The client went quiet.
            RequestTooLarge: More than max_request_size bytes.
        """
        self.state = ConnectionState.READING
        buffer = bytearray()

        try:
            while b"\r\n\r\n" not in buffer:
                chunk = self._recv()
                if not chunk:
                    return None
                buffer.extend(chunk)
                self._check_size(buffer)

            header_end = buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._content_length(bytes(buffer[:header_end]))

            while len(buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break
                buffer.extend(chunk)
                self._check_size(buffer)
        except socket.timeout:
            raise TimeoutError("request read timeout")

        self.state = ConnectionState.PROCESSING
        return bytes(buffer[:body_start + content_length])

    def _recv(self) -> bytes:
        try:
            return self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return b""

    def _check_size(self, buffer: bytearray) -> None:
        if len(buffer) > self.max_request_size:
            raise RequestTooLarge(f"request too large: {len(buffer)} bytes")

    @staticmethod
    def _content_length(head: bytes) -> int:
        for line in head.decode("latin-1").split("\r\n")[1:]:
            name, _, value = line.partition(":")
            if name.strip().lower() == "content-length":
                try:
                    return max(0, int(value.strip()))
                except ValueError:
                    return 0
        return 0

    def send_response(self, data: bytes) -> bool:
        """Send all of data. Returns False if the client is gone."""
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    def close(self) -> None:
        """Half-close, drain what the client still sends, then close."""
        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED
        try:
            self.socket.shutdown(socket.SHUT_WR)
            self.socket.settimeout(0.1)
            while self.socket.recv(self.buffer_size):
                pass
        except OSError:
            pass
        finally:
            self.socket.close()
        logger.debug(f"[{self.id}] Closed after {self.age:.3f}s")

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
