"""
=============================================================================
GATEWAY SERVER
=============================================================================

Ties the inbound front end to the router:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   SocketServer (accept loop, main thread)                            │
    │        │                                                             │
    │        ▼  Connection                                                 │
    │   WorkerPool.submit() ──── full? ──► 503, close                      │
    │        │                                                             │
    │        ▼  worker thread = one request's sequence of execution        │
    │   read_request ──► RequestParser ──── malformed? ──► 4xx, close      │
    │        │                                                             │
    │        ▼                                                             │
    │   LoggingMiddleware ──► Router ──► handler ──► 200 text/plain        │
    │        │                                                             │
    │        ▼                                                             │
    │   send_response, close                                               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Everything below the router answers 200. The only other statuses come
from the transport layer above it.

=============================================================================
"""

import logging
from typing import Callable, Optional

from .config import GatewayConfig
from .core.connection import Connection, RequestTooLarge
from .core.network import Network
from .core.socket_server import SocketServer
from .core.workers import WorkerPool
from .handlers.gateway import build_router
from .http.request import HTTPParseError, HTTPRequest, RequestParser
from .http.response import HTTPResponse, error_response
from .http.router import Router
from .middleware.base import Middleware, MiddlewarePipeline
from .middleware.logging import LoggingMiddleware


logger = logging.getLogger(__name__)


class GatewayServer:
    """
    Usage:
        server = GatewayServer(GatewayConfig.from_env())
        server.run()    # blocks until Ctrl+C / SIGTERM / shutdown()
    """

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        router: Optional[Router] = None,
        network: Optional[Network] = None,
    ):
        self.config = config or GatewayConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config)
        self._pool: Optional[WorkerPool] = None
        self._parser = RequestParser(max_request_size=self.config.max_request_size)

        self._router = router or build_router(self.config, network)
        self._middleware = MiddlewarePipeline()
        self._middleware.add(LoggingMiddleware(log_format=self.config.log_format))
        self._handler: Optional[Callable[[HTTPRequest], HTTPResponse]] = None

    def use(self, middleware: Middleware) -> "GatewayServer":
        self._middleware.add(middleware)
        return self

    @property
    def router(self) -> Router:
        return self._router

    @property
    def address(self):
        return self._socket_server.address

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    # ─────────────────────────────────────────────────────────────────────
    # LIFECYCLE
    # ─────────────────────────────────────────────────────────────────────

    def run(self, setup_logging: bool = True) -> None:
        if setup_logging:
            self._setup_logging()

        self._handler = self._middleware.wrap(self._router.handle)
        self._pool = WorkerPool(max_workers=self.config.workers)
        self._router.print_routes()

        logger.info(
            f"Starting {self.config.server_name} on {self.config.host}:{self.config.port} "
            f"({self.config.workers} workers)"
        )

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._pool.shutdown(wait=True, timeout=30.0)
            logger.info("Gateway stopped")

    def shutdown(self) -> None:
        self._socket_server.shutdown()

    def _setup_logging(self) -> None:
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("agentgateway").setLevel(level)

    # ─────────────────────────────────────────────────────────────────────
    # REQUEST HANDLING
    # ─────────────────────────────────────────────────────────────────────

    def _handle_connection(self, conn: Connection) -> None:
        if not self._pool.submit(self._process_connection, conn):
            logger.warning(f"[{conn.id}] All workers busy, rejecting connection")
            with conn:
                conn.send_response(
                    error_response(503, "gateway overloaded").to_bytes(self.config.server_name)
                )

    def _process_connection(self, conn: Connection) -> None:
        with conn:
            try:
                raw = conn.read_request()
            except TimeoutError:
                logger.debug(f"[{conn.id}] Timed out waiting for request")
                return
            except RequestTooLarge as e:
                conn.send_response(error_response(413, str(e)).to_bytes(self.config.server_name))
                return

            if raw is None:
                return

            try:
                request = self._parser.parse(raw, conn.address)
            except HTTPParseError as e:
                logger.info(f"[{conn.id}] Bad request from {conn.client_ip}: {e}")
                conn.send_response(
                    error_response(e.status_code, str(e)).to_bytes(self.config.server_name)
                )
                return

            response = self._handler(request)
            conn.send_response(response.to_bytes(self.config.server_name))
