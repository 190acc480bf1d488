"""
Raw TCP operations.

    send_message(host, port, msg)    one line out, interactive reply back
    fetch_raw(host, port)            HTTP/1.1 GET over a bare socket, whole
                                     response (status line and headers
                                     included) back, unparsed

Both start with lookup_host(), which applies the fallback policy: when
resolution of a name with a configured fallback address fails, the
fallback is used instead and a warning is logged.
"""

import logging
from typing import Mapping, Optional

from ..config import GatewayConfig
from ..core.dns import parse_ipv4, resolve
from ..core.errors import NoAddressFound, ResolutionFailed
from ..core.network import IpAddress, Network, instance_network
from ..core.streams import read_bounded, read_to_end
from ..core.tcp import connect


logger = logging.getLogger(__name__)


def lookup_host(
    network: Network,
    host: str,
    fallbacks: Optional[Mapping[str, str]] = None,
    max_polls: Optional[int] = None,
) -> IpAddress:
    """
    Resolve host, substituting its fallback address if resolution fails.

    Raises:
        NoAddressFound / ResolutionFailed: Resolution failed and host has
            no fallback.
    """
    try:
        return resolve(network, host, max_polls=max_polls)
    except (NoAddressFound, ResolutionFailed) as e:
        fallback = (fallbacks or {}).get(host)
        ip = parse_ipv4(fallback) if fallback else None
        if ip is None:
            raise
        logger.warning(f"Resolving {host} failed ({e}), using fallback {ip}")
        return ip


def send_message(
    host: str,
    port: int,
    message: str,
    config: GatewayConfig,
    network: Optional[Network] = None,
) -> str:
    """
    Send one line to host:port and return what the peer answers.

    A trailing newline is added when message has none. The reply is read
    with the bounded loop, so a silent peer yields "" rather than a hang.
    """
    network = network or instance_network()
    ip = lookup_host(network, host, config.fallback_addresses, config.dns_max_polls)

    payload = message.encode("utf-8")
    if not payload.endswith(b"\n"):
        payload += b"\n"

    with connect(network, ip, port, max_polls=config.connect_max_polls) as conn:
        conn.output.blocking_write_and_flush(payload)
        reply = read_bounded(
            conn.input,
            max_polls=config.tcp_read_polls,
            max_bytes=config.tcp_reply_max_bytes,
            poll_interval=config.tcp_poll_interval,
            quiet_polls=config.tcp_quiet_polls,
        )

    return reply.decode("utf-8", errors="replace").rstrip("\0")


def fetch_raw(
    host: str,
    port: int,
    config: GatewayConfig,
    network: Optional[Network] = None,
) -> str:
    """GET / from host:port over raw TCP and return the response text."""
    network = network or instance_network()
    ip = lookup_host(network, host, config.fallback_addresses, config.dns_max_polls)

    request = f"GET / HTTP/1.1\r\nHost: {host}\r\nConnection: close\r\n\r\n"

    with connect(network, ip, port, max_polls=config.connect_max_polls) as conn:
        conn.output.blocking_write_and_flush(request.encode("utf-8"))
        data = read_to_end(conn.input, config.read_chunk_size)

    return data.decode("utf-8", errors="replace")
