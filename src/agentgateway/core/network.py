"""
Network capability and address types.

The Network object is the permission to touch the network: the resolver and
the TCP engine both take one as their first argument. It is read-only once
created, so a single process-wide instance is shared by every request.

    Ipv4Address((93, 184, 216, 34))
        │
        ▼  socket_address(ip, 80)
    Ipv4SocketAddress(address, 80)
        │
        ▼  to_sockaddr()
    ("93.184.216.34", 80)          what socket.connect() expects
"""

import ipaddress
import socket
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

from .host import create_executor


class IpAddressFamily(Enum):
    IPV4 = socket.AF_INET
    IPV6 = socket.AF_INET6


@dataclass(frozen=True)
class Ipv4Address:
    octets: Tuple[int, int, int, int]

    def __str__(self) -> str:
        return ".".join(str(o) for o in self.octets)


@dataclass(frozen=True)
class Ipv6Address:
    groups: Tuple[int, int, int, int, int, int, int, int]
    scope_id: int = 0

    def __str__(self) -> str:
        packed = b"".join(g.to_bytes(2, "big") for g in self.groups)
        return str(ipaddress.IPv6Address(packed))


IpAddress = Union[Ipv4Address, Ipv6Address]


@dataclass(frozen=True)
class Ipv4SocketAddress:
    address: Ipv4Address
    port: int

    def to_sockaddr(self) -> Tuple[str, int]:
        return (str(self.address), self.port)


@dataclass(frozen=True)
class Ipv6SocketAddress:
    address: Ipv6Address
    port: int
    flow_info: int = 0
    scope_id: int = 0

    def to_sockaddr(self) -> Tuple[str, int, int, int]:
        return (str(self.address), self.port, self.flow_info, self.scope_id)


SocketAddress = Union[Ipv4SocketAddress, Ipv6SocketAddress]


def address_family(ip: IpAddress) -> IpAddressFamily:
    return IpAddressFamily.IPV4 if isinstance(ip, Ipv4Address) else IpAddressFamily.IPV6


def socket_address(ip: IpAddress, port: int) -> SocketAddress:
    """Build the socket address for one connection attempt."""
    if isinstance(ip, Ipv4Address):
        return Ipv4SocketAddress(ip, port)
    return Ipv6SocketAddress(ip, port, scope_id=ip.scope_id)


def ip_from_text(text: str) -> IpAddress:
    """
    Convert a textual address (as returned by getaddrinfo) to an IpAddress.

    Raises:
        ValueError: If text is not an IPv4 or IPv6 literal.
    """
    scope_id = 0
    if "%" in text:
        text, _, scope = text.partition("%")
        scope_id = int(scope) if scope.isdigit() else 0

    parsed = ipaddress.ip_address(text)
    if isinstance(parsed, ipaddress.IPv4Address):
        return Ipv4Address(tuple(parsed.packed))
    packed = parsed.packed
    groups = tuple(int.from_bytes(packed[i:i + 2], "big") for i in range(0, 16, 2))
    return Ipv6Address(groups, scope_id)


class Network:
    """
    Read-only network capability.

    Owns the host executor that runs resolver and outgoing-HTTP tasks.
    """

    def __init__(self, executor: Optional[ThreadPoolExecutor] = None):
        self.executor = executor or create_executor()

    def shutdown(self) -> None:
        self.executor.shutdown(wait=False)


_instance: Optional[Network] = None
_instance_lock = threading.Lock()


def instance_network() -> Network:
    """The process-wide Network capability."""
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = Network()
        return _instance
