"""
=============================================================================
SEMANTICD COMMAND LINE INTERFACE
=============================================================================

    semanticd serve [--port N] [-l] [--host H] [--workers N]
                    [--log-level L] [--log-format text|json] [--engine NAME]

    python -m semanticd serve ...

Settings are layered: defaults, then SEMANTICD_* environment variables
(see Config.from_env), then command-line flags.

The server runs until SIGINT (Ctrl+C) or SIGTERM, which close it
gracefully.

=============================================================================
"""

import argparse
import dataclasses
import logging
import signal
import sys
from typing import List, Optional

from . import __version__
from .config import Config, LOG_LEVELS, LOG_FORMATS
from .engine import ENGINES, create_engine
from .server import serve, ServerError


logger = logging.getLogger("semanticd")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="semanticd",
        description="HTTP server for source code definition lookup, completion and parsing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  semanticd serve                         # Port 3000, all interfaces
  semanticd serve --port 4000 -l          # Custom port, access log on
  semanticd serve --host 127.0.0.1        # Local clients only
  semanticd serve --log-format json -l    # JSON access log
        """
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"semanticd {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the semantic server",
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    serve_parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 3000, 0 picks a free port)"
    )

    serve_parser.add_argument(
        "--host", "-H",
        default=None,
        help="Address to bind (default: 0.0.0.0)"
    )

    serve_parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Maximum worker threads, i.e. clients served at once (default: 32)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    serve_parser.add_argument(
        "--print-http-logs", "-l",
        action="store_true",
        default=None,
        help="Log every request"
    )

    serve_parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        type=str.upper,
        default=None,
        help="Logging level (default: INFO)"
    )

    serve_parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=None,
        help="Access log format (default: text)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # ENGINE
    # ─────────────────────────────────────────────────────────────────────

    serve_parser.add_argument(
        "--engine", "-e",
        choices=sorted(ENGINES),
        default="python",
        help="Semantic engine (default: python)"
    )

    return parser


def config_from_args(args: argparse.Namespace, base: Optional[Config] = None) -> Config:
    """Overlay the flags that were given on ``base`` (default: from_env)."""
    config = base if base is not None else Config.from_env()

    overrides = {}
    if args.port is not None:
        overrides["port"] = args.port
    if args.host is not None:
        overrides["host"] = args.host
    if args.workers is not None:
        overrides["max_workers"] = args.workers
        overrides["min_workers"] = min(config.min_workers, args.workers)
    if args.print_http_logs:
        overrides["print_http_logs"] = True
    if args.log_level is not None:
        overrides["log_level"] = args.log_level
    if args.log_format is not None:
        overrides["log_format"] = args.log_format

    return dataclasses.replace(config, **overrides)


def setup_logging(config: Config):
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("semanticd").setLevel(config.log_level.upper())


def run_serve(args: argparse.Namespace) -> int:
    try:
        config = config_from_args(args)
        config.validate()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    setup_logging(config)

    engine = create_engine(args.engine)

    try:
        server = serve(config, engine)
    except ServerError as e:
        logger.error(str(e))
        return 1

    def shutdown_handler(signum, frame):
        signal_name = signal.Signals(signum).name
        logger.info(f"Received {signal_name}, initiating shutdown...")
        server.close()

    original_handlers = {
        signal.SIGTERM: signal.signal(signal.SIGTERM, shutdown_handler),
        signal.SIGINT: signal.signal(signal.SIGINT, shutdown_handler),
    }

    try:
        # wait() with a timeout keeps the main thread responsive to signals
        while not server.wait(timeout=1.0):
            pass
    except ServerError as e:
        logger.error(str(e))
        return 1
    finally:
        for sig, handler in original_handlers.items():
            signal.signal(sig, handler)

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "serve":
        return run_serve(args)

    return 2


if __name__ == "__main__":
    sys.exit(main())
