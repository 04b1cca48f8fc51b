"""
Command line entry point: runs the demo storefront.

    python -m miniweb
    python -m miniweb --port 8000 --log-level DEBUG
    PORT=8000 python -m miniweb

Options default to the environment (see ServerConfig.from_env); flags given
on the command line win. Exits with status 1 when the port cannot be bound.
"""

import argparse
import sys
from typing import List, Optional

from . import __version__
from .config import ServerConfig
from .shop import create_shop_app


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="miniweb",
        description="Demo storefront on the miniweb HTTP server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m miniweb                        # port from $PORT, else 3000
  python -m miniweb --port 8000
  python -m miniweb --host 0.0.0.0         # listen on all interfaces
  python -m miniweb --data-dir ./data      # keep comments.json there
        """,
    )
    parser.add_argument("--host", "-H", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", "-p", type=int, help="Port to listen on (default: $PORT or 3000)")
    parser.add_argument("--workers", "-w", type=int, help="Maximum worker threads")
    parser.add_argument("--static", "-s", dest="static_dir", help="Public files directory")
    parser.add_argument("--views", dest="views_dir", help="Templates directory")
    parser.add_argument("--data-dir", help="Directory for products and comments")
    parser.add_argument("--log-file", help="Access log file (default: logs/server.log)")
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument("--version", "-v", action="version", version=f"miniweb {__version__}")
    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    config = ServerConfig.from_env()
    for name in ("host", "port", "static_dir", "views_dir", "data_dir", "log_file", "log_level"):
        value = getattr(args, name)
        if value is not None:
            setattr(config, name, value)
    if args.workers is not None:
        config.max_workers = args.workers
        config.min_workers = min(config.min_workers, args.workers)
    if config.log_file is None:
        config.log_file = "logs/server.log"
    return config


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = config_from_args(args)
        config.validate()
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    server = create_shop_app(config)
    try:
        server.bind()
    except OSError as e:
        print(f"Cannot listen on {config.host}:{config.port}: {e}", file=sys.stderr)
        return 1
    server.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
