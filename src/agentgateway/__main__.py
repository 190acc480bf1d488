"""
Command-line entry point.

    python -m agentgateway
    python -m agentgateway --port 9000 --log-level DEBUG
    OPENAI_API_KEY=sk-... agentgateway --host 0.0.0.0

Environment variables (see GatewayConfig.from_env) are read first;
command-line arguments override them.
"""

import argparse
import sys

from . import __version__
from .config import GatewayConfig
from .server import GatewayServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agentgateway",
        description="Request gateway: raw TCP, outbound HTTP and AI completion behind one HTTP port",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Routes:
  /health                      liveness, answers "ok"
  /slack/command               Slack slash command (form POST)
  /tcp/send?host=&port=&msg=   send one line over TCP, show the reply
  /debug/httpget?url=          outbound HTTP GET
  /debug/openai                probe the completion endpoint
  /?host=&port=                raw HTTP GET over TCP
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--host", "-H", default=None, help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", "-p", type=int, default=None, help="Port to listen on (default: 8081)")
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Requests handled at once; more get 503 (default: 8)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=None,
        help="Access log format (default: text)",
    )

    parser.add_argument("--version", "-v", action="version", version=f"agentgateway {__version__}")
    return parser


def config_from_args(args: argparse.Namespace) -> GatewayConfig:
    config = GatewayConfig.from_env()
    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.workers is not None:
        config.workers = args.workers
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_format is not None:
        config.log_format = args.log_format
    return config


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
        server = GatewayServer(config)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    server.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
