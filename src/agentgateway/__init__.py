"""
=============================================================================
AGENTGATEWAY - Network Request Gateway
=============================================================================

An HTTP front end whose routes reach out to the network on the caller's
behalf: raw TCP exchanges, outbound HTTP requests, and an AI-completion
endpoint, each answered as a single text/plain response.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         ARCHITECTURE                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   server.GatewayServer        inbound accept loop + worker pool      │
    │          │                                                           │
    │   http.Router                 path prefix → handler                  │
    │          │                                                           │
    │   handlers.gateway            one function per route                 │
    │          │                                                           │
    │   client.*                    TCP / HTTP / completion operations     │
    │          │                                                           │
    │   core.*                      non-blocking engine:                   │
    │                               poll, dns, tcp, streams, outgoing      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Quick start:

    from agentgateway import GatewayServer, GatewayConfig

    GatewayServer(GatewayConfig(port=8081)).run()

=============================================================================
"""

__version__ = "0.1.0"

from .config import GatewayConfig
from .server import GatewayServer

__all__ = ["GatewayConfig", "GatewayServer", "__version__"]
