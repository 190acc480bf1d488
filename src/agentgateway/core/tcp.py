"""
=============================================================================
TCP CONNECT STATE MACHINE
=============================================================================

A non-blocking connect is three steps, with poll() between the second and
the third:

    ┌──────────┐  start_connect  ┌────────────┐  finish_connect  ┌───────────┐
    │   NEW    │ ──────────────► │ CONNECTING │ ───────────────► │ CONNECTED │
    └──────────┘                 └────────────┘                  └───────────┘
                                   │      ▲                            │
                     WouldBlock    │      │ poll([token])               │
                                   └──────┘                            ▼
                                   │                         (InputStream,
                  error (SO_ERROR) ▼                          OutputStream)
                                 ┌────────┐
                                 │ FAILED │
                                 └────────┘

Whether a connect succeeded is only known after the socket turns writable:
the kernel then reports the outcome through SO_ERROR.

=============================================================================
OWNERSHIP
=============================================================================

TcpConnection bundles the socket and its two streams. Whatever path a
request takes (success, write error, read error), leaving the `with` block
closes each of the three exactly once, input and output before the socket.

=============================================================================
"""

import errno
import logging
import os
import socket
from enum import Enum
from typing import Optional, Tuple

from .errors import ConnectFailed, SocketCreateFailed, WouldBlock
from .network import (
    IpAddress,
    IpAddressFamily,
    Network,
    SocketAddress,
    address_family,
    socket_address,
)
from .poll import EVENT_WRITE, Pollable, poll, subscribe_duration
from .streams import InputStream, OutputStream


logger = logging.getLogger(__name__)


_IN_PROGRESS = {0, errno.EINPROGRESS, errno.EWOULDBLOCK, errno.EALREADY, errno.EAGAIN}


class SocketState(Enum):
    NEW = "new"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"
    CLOSED = "closed"


class TcpSocket:
    """A non-blocking TCP socket driven through the connect state machine."""

    def __init__(self, sock: socket.socket, family: IpAddressFamily):
        self._sock = sock
        self.family = family
        self.state = SocketState.NEW
        self.remote: Optional[SocketAddress] = None

    @classmethod
    def create(cls, family: IpAddressFamily) -> "TcpSocket":
        """
        Create a non-blocking socket for `family`.

        Raises:
            SocketCreateFailed: The OS refused to create the socket.
        """
        try:
            sock = socket.socket(family.value, socket.SOCK_STREAM)
        except OSError as e:
            raise SocketCreateFailed(e.strerror or str(e)) from e
        sock.setblocking(False)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        return cls(sock, family)

    def start_connect(self, network: Network, address: SocketAddress) -> None:
        """
        Begin connecting to `address`.

        Raises:
            ConnectFailed: The connect was rejected immediately.
        """
        if self.state is not SocketState.NEW:
            raise ConnectFailed(f"socket is {self.state.value}")

        self.remote = address
        code = self._sock.connect_ex(address.to_sockaddr())
        if code not in _IN_PROGRESS:
            self.state = SocketState.FAILED
            raise ConnectFailed(os.strerror(code))

        self.state = SocketState.CONNECTING
        logger.debug(f"Connecting to {address.to_sockaddr()}")

    def subscribe(self) -> Pollable:
        return Pollable(self._sock, EVENT_WRITE)

    def finish_connect(self) -> Tuple[InputStream, OutputStream]:
        """
        Complete a pending connect.

        Raises:
            WouldBlock: Still connecting; poll the token and retry.
            ConnectFailed: The connect failed.
        """
        if self.state is not SocketState.CONNECTING:
            raise ConnectFailed(f"socket is {self.state.value}")

        if not self.subscribe().ready():
            raise WouldBlock()

        code = self._sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        if code in (errno.EINPROGRESS, errno.EALREADY):
            raise WouldBlock()
        if code != 0:
            self.state = SocketState.FAILED
            raise ConnectFailed(os.strerror(code))

        self.state = SocketState.CONNECTED
        return InputStream(self._sock), OutputStream(self._sock)

    def close(self) -> None:
        if self.state is SocketState.CLOSED:
            return
        self.state = SocketState.CLOSED
        self._sock.close()


class TcpConnection:
    """
    A connected socket together with its streams.

    Usage:
        with connect(network, ip, 80) as conn:
            conn.output.blocking_write_and_flush(b"...")
            data = read_to_end(conn.input)
    """

    def __init__(self, socket: TcpSocket, input: InputStream, output: OutputStream):
        self.socket = socket
        self.input = input
        self.output = output

    def close(self) -> None:
        self.input.close()
        self.output.close()
        self.socket.close()

    def __enter__(self) -> "TcpConnection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def connect(
    network: Network,
    ip: IpAddress,
    port: int,
    max_polls: Optional[int] = None,
    poll_interval: float = 0.25,
) -> TcpConnection:
    """
    Open a TCP connection to ip:port.

    Args:
        max_polls: Optional cap on poll cycles; None waits as long as the
                   OS takes to finish or fail the connect.

    Raises:
        SocketCreateFailed: Socket creation failed.
        ConnectFailed: The connect failed or max_polls ran out.
    """
    sock = TcpSocket.create(address_family(ip))
    try:
        sock.start_connect(network, socket_address(ip, port))

        polls = 0
        while True:
            try:
                input, output = sock.finish_connect()
                return TcpConnection(sock, input, output)
            except WouldBlock:
                if max_polls is not None and polls >= max_polls:
                    raise ConnectFailed(f"timed out after {polls} polls")
                polls += 1
                if max_polls is None:
                    poll([sock.subscribe()])
                else:
                    poll([sock.subscribe(), subscribe_duration(poll_interval)])
    except BaseException:
        sock.close()
        raise
