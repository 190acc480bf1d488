"""
=============================================================================
DNS RESOLUTION STATE MACHINE
=============================================================================

Turns a hostname into ONE IP address without ever blocking the request's
sequence of execution.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         resolve() Flow                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   "10.0.0.7"  ──► parse_ipv4 ──► Ipv4Address   (no resolver at all)  │
    │                                                                      │
    │   "example.com"                                                      │
    │        │                                                             │
    │        ▼                                                             │
    │   resolve_addresses()      start host resolver task                  │
    │        │                                                             │
    │        ▼                                                             │
    │   resolve_next_address() ──┬── address     ──► return it             │
    │        ▲                   ├── None        ──► NoAddressFound        │
    │        │                   ├── error       ──► ResolutionFailed      │
    │        │                   └── WouldBlock                            │
    │        │                          │                                  │
    │        └──────── poll([token]) ◄──┘                                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The first address the resolver yields wins. Fallback to a configured
address is a caller policy (see client.tcp_client.lookup_host).

=============================================================================
INTERVIEW QUESTIONS
=============================================================================

Q: Why not call socket.gethostbyname() and be done with it?
A: It blocks the calling thread for as long as the resolver takes, which
   can be seconds. Here the blocking call runs on the host executor and the
   request only ever suspends inside poll(), like it does for sockets.

Q: Why is "256.1.1.1" not an IPv4 literal?
A: Each field must fit in one octet. Anything that does not parse as four
   octets is handed to the resolver instead of being rejected.

=============================================================================
"""

import logging
import socket
from typing import Iterator, List, Optional

from .errors import NoAddressFound, ResolutionFailed, WouldBlock
from .host import HostTask
from .network import IpAddress, Ipv4Address, Network, ip_from_text
from .poll import Pollable, poll, subscribe_duration


logger = logging.getLogger(__name__)


def parse_ipv4(text: str) -> Optional[Ipv4Address]:
    """
    Parse a dotted-quad IPv4 literal.

    Returns None unless there are exactly four dot-separated fields, each
    made of ASCII digits with a value of 0-255.

    Example:
        >>> parse_ipv4("127.0.0.1")
        Ipv4Address(octets=(127, 0, 0, 1))
        >>> parse_ipv4("256.0.0.1") is None
        True
    """
    parts = text.split(".")
    if len(parts) != 4:
        return None

    octets = []
    for part in parts:
        if not part or len(part) > 3 or not all("0" <= c <= "9" for c in part):
            return None
        value = int(part)
        if value > 255:
            return None
        octets.append(value)

    return Ipv4Address(tuple(octets))


def _lookup(name: str) -> List[IpAddress]:
    infos = socket.getaddrinfo(name, None, type=socket.SOCK_STREAM)

    addresses: List[IpAddress] = []
    for family, _, _, _, sockaddr in infos:
        if family not in (socket.AF_INET, socket.AF_INET6):
            continue
        ip = ip_from_text(sockaddr[0])
        if ip not in addresses:
            addresses.append(ip)
    return addresses


class ResolveAddressStream:
    """
    Pending resolution of one name.

    Yields addresses one at a time through resolve_next_address().
    """

    def __init__(self, network: Network, name: str):
        self.name = name
        self._task = HostTask(_lookup, name, executor=network.executor)
        self._addresses: Optional[Iterator[IpAddress]] = None

    def subscribe(self) -> Pollable:
        return self._task.subscribe()

    def resolve_next_address(self) -> Optional[IpAddress]:
        """
        Next resolved address, or None when there are no more.

        Raises:
            WouldBlock: The resolver has not answered yet.
            ResolutionFailed: The resolver reported an error.
        """
        if self._addresses is None:
            if not self._task.done():
                raise WouldBlock()
            try:
                self._addresses = iter(self._task.result())
            except (socket.gaierror, UnicodeError, OSError) as e:
                raise ResolutionFailed(str(e)) from e
            finally:
                self._task.close()

        return next(self._addresses, None)

    def close(self) -> None:
        self._task.close()


def resolve_addresses(network: Network, name: str) -> ResolveAddressStream:
    """Start resolving `name` on the host resolver."""
    return ResolveAddressStream(network, name)


def resolve(
    network: Network,
    hostname: str,
    max_polls: Optional[int] = None,
    poll_interval: float = 0.25,
) -> IpAddress:
    """
    Resolve `hostname` to its first address.

    Args:
        network: Network capability.
        hostname: Name or IPv4 literal.
        max_polls: Optional cap on poll cycles; None waits as long as the
                   resolver takes.
        poll_interval: Length of one poll cycle when max_polls is set.

    Raises:
        NoAddressFound: Resolution produced nothing, or max_polls ran out.
        ResolutionFailed: The resolver reported an error.
    """
    literal = parse_ipv4(hostname)
    if literal is not None:
        return literal

    stream = resolve_addresses(network, hostname)
    polls = 0
    try:
        while True:
            try:
                address = stream.resolve_next_address()
            except WouldBlock:
                if max_polls is not None and polls >= max_polls:
                    logger.debug(f"Resolving {hostname} gave up after {polls} polls")
                    raise NoAddressFound(hostname)
                polls += 1
                if max_polls is None:
                    poll([stream.subscribe()])
                else:
                    poll([stream.subscribe(), subscribe_duration(poll_interval)])
                continue

            if address is None:
                raise NoAddressFound(hostname)
            logger.debug(f"Resolved {hostname} -> {address}")
            return address
    finally:
        stream.close()
