"""
=============================================================================
PREFIX ROUTER
=============================================================================

The gateway routes on path PREFIXES only, never on method, headers or
query. Routes are tried in registration order and the first prefix that
matches wins; a default route catches everything else.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ROUTING TABLE                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   /health           HEALTH               "ok"                        │
    │   /slack/command    SLACK_COMMAND        completion + callback, "ack" │
    │   /tcp/send         TCP_SEND             line out, reply back        │
    │   /debug/httpget    DEBUG_HTTP_GET       outbound GET                │
    │   /debug/openai     DEBUG_OPENAI_PROBE   completion endpoint probe   │
    │   (anything else)   TCP_DEFAULT_FETCH    raw GET over TCP            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Handlers return the response TEXT; the router wraps it in a 200
text/plain response. A handler that raises still produces a 200: the
router logs the traceback and answers with an "Internal error" line.

=============================================================================
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from .request import HTTPRequest
from .response import HTTPResponse, text_response


logger = logging.getLogger(__name__)


Handler = Callable[[HTTPRequest], str]


class RouteKind(Enum):
    HEALTH = "health"
    SLACK_COMMAND = "slack_command"
    TCP_SEND = "tcp_send"
    TCP_DEFAULT_FETCH = "tcp_default_fetch"
    DEBUG_HTTP_GET = "debug_http_get"
    DEBUG_OPENAI_PROBE = "debug_openai_probe"


@dataclass
class Route:
    prefix: str
    kind: RouteKind
    handler: Handler


class Router:
    """
    First-match prefix router with a default route.

    Usage:
        router = Router()

        @router.route("/health", RouteKind.HEALTH)
        def health(request):
            return "ok"

        @router.default(RouteKind.TCP_DEFAULT_FETCH)
        def fetch(request):
            ...
    """

    def __init__(self):
        self._routes: List[Route] = []
        self._default: Optional[Route] = None

    def add_route(self, prefix: str, kind: RouteKind, handler: Handler) -> None:
        self._routes.append(Route(prefix, kind, handler))

    def set_default(self, kind: RouteKind, handler: Handler) -> None:
        self._default = Route("", kind, handler)

    def route(self, prefix: str, kind: RouteKind) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.add_route(prefix, kind, handler)
            return handler
        return decorator

    def default(self, kind: RouteKind) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.set_default(kind, handler)
            return handler
        return decorator

    def match(self, path: str) -> Optional[Route]:
        """The route for `path`: first matching prefix, else the default."""
        for route in self._routes:
            if path.startswith(route.prefix):
                return route
        return self._default

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        route = self.match(request.path)
        if route is None:
            return text_response("no route\n")

        logger.debug(f"{request.method} {request.path} -> {route.kind.value}")
        try:
            body = route.handler(request)
        except Exception as e:
            logger.exception(f"Unhandled error in {route.kind.value} handler")
            body = f"⚠️  Internal error: {e}\n"
        return text_response(body)

    def routes(self) -> List[Route]:
        routes = list(self._routes)
        if self._default is not None:
            routes.append(self._default)
        return routes

    def print_routes(self) -> None:
        print("\nRoutes:")
        print("-" * 60)
        for route in self.routes():
            print(f"  {route.prefix or '(default)':18} {route.kind.value}")
        print("-" * 60)
