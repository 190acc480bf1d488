"""Route handlers."""

from .gateway import GatewayHandlers, build_router, parse_port

__all__ = ["GatewayHandlers", "build_router", "parse_port"]
