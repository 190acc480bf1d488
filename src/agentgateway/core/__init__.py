"""
Core networking engine.

Everything here follows one pattern: start an operation, and while it
reports WouldBlock, wait on its readiness token with poll() and retry.
"""

from .errors import (
    CompletionFormatError,
    ConnectFailed,
    GatewayError,
    HttpStatusError,
    LastOperationFailed,
    MissingCredential,
    NoAddressFound,
    ResolutionFailed,
    ResponseTimeout,
    SocketCreateFailed,
    StreamClosed,
    StreamError,
    TransportError,
    UnsupportedScheme,
    WouldBlock,
)
from .poll import Pollable, poll, subscribe_duration
from .network import Network, instance_network
from .dns import parse_ipv4, resolve, resolve_addresses
from .streams import InputStream, OutputStream, read_bounded, read_to_end
from .tcp import SocketState, TcpConnection, TcpSocket, connect

__all__ = [
    "CompletionFormatError",
    "ConnectFailed",
    "GatewayError",
    "HttpStatusError",
    "LastOperationFailed",
    "MissingCredential",
    "NoAddressFound",
    "ResolutionFailed",
    "ResponseTimeout",
    "SocketCreateFailed",
    "StreamClosed",
    "StreamError",
    "TransportError",
    "UnsupportedScheme",
    "WouldBlock",
    "Pollable",
    "poll",
    "subscribe_duration",
    "Network",
    "instance_network",
    "parse_ipv4",
    "resolve",
    "resolve_addresses",
    "InputStream",
    "OutputStream",
    "read_bounded",
    "read_to_end",
    "SocketState",
    "TcpConnection",
    "TcpSocket",
    "connect",
]
