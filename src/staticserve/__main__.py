"""
=============================================================================
STATICSERVE CLI ENTRY POINT
=============================================================================

    # Serve ./public under /public on localhost:8080
    python -m staticserve --dir ./public

    # Serve a build directory at the site root, no caching
    python -m staticserve --dir dist --base-path / --max-age 0

    # Answer errors with JSON instead of the generic 404
    python -m staticserve --dir ./public --no-fallthrough

Options not given on the command line come from STATIC_* environment
variables (see StaticOptions.from_env), then from the built-in defaults.

=============================================================================
"""

import argparse
import asyncio
import logging
import sys

from . import __version__
from .config import DOTFILE_POLICIES, ServerConfig, StaticOptions
from .middleware import LoggingMiddleware, StaticMiddleware
from .server import StaticServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="staticserve",
        description="Serve a directory over HTTP with caching and range support",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m staticserve --dir ./public
  python -m staticserve --dir dist --base-path / --port 3000
  python -m staticserve --dir ./public --dotfiles ignore --max-age 86400
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument(
        "--host", "-H",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1, use 0.0.0.0 for containers)"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=8080,
        help="Port to listen on (default: 8080)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # MOUNT
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument("--dir", "-d", help="Directory to serve")
    parser.add_argument("--root", "-r", help="Root the directory is relative to")
    parser.add_argument(
        "--base-path", "-b",
        help="URL prefix to mount under (default: /public)"
    )
    parser.add_argument("--max-age", type=int, help="Cache-Control max-age in seconds")
    parser.add_argument("--dotfiles", choices=DOTFILE_POLICIES)
    parser.add_argument(
        "--no-fallthrough",
        action="store_true",
        help="Answer missing files with a JSON error instead of passing them on"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)"
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Access log format (default: text)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"staticserve {__version__}"
    )
    return parser


def options_from_args(args: argparse.Namespace) -> StaticOptions:
    """Environment first, then explicit CLI flags on top."""
    options = StaticOptions.from_env()
    overrides = {}
    if args.dir is not None:
        overrides["dir"] = args.dir
    if args.root is not None:
        overrides["root"] = args.root
    if args.base_path is not None:
        overrides["base_path"] = args.base_path
    if args.max_age is not None:
        overrides["max_age"] = args.max_age
    if args.dotfiles is not None:
        overrides["dotfiles"] = args.dotfiles
    if args.no_fallthrough:
        overrides["fallthrough"] = False
    return options.merge(**overrides)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        options = options_from_args(args)
        config = ServerConfig(host=args.host, port=args.port, log_level=args.log_level)
        server = StaticServer(config)
    except (TypeError, ValueError) as e:
        print(f"staticserve: {e}", file=sys.stderr)
        return 2

    server.use(LoggingMiddleware(log_format=args.log_format))
    server.use(StaticMiddleware(options))

    try:
        asyncio.run(server.serve_forever())
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Received keyboard interrupt")
    return 0


if __name__ == "__main__":
    sys.exit(main())
