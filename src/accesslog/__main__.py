"""
=============================================================================
ACCESSLOG CLI ENTRY POINT
=============================================================================

Runs a demo server with Apache access logging on /api/hello.

=============================================================================
USAGE
=============================================================================

    # Defaults (127.0.0.1:8080, /var/log/apache2/access.log, common format)
    python -m accesslog

    # Somewhere writable, combined format
    python -m accesslog --log-path ./logs/access.log --format combined

    # Small files, keep 10 uncompressed backups for a week
    python -m accesslog --max-size 5 --max-backups 10 --max-age 7 --no-compress

Every flag falls back to its environment variable (ACCESS_LOG_*, HTTP_*),
then to the built-in default.

=============================================================================
STARTUP SEQUENCE
=============================================================================

    1. Build AccessLogConfig / ServerConfig (env, then CLI overrides)
    2. open_access_log()          ← the only fatal step: exit 1 on failure
    3. PermissionGuardian.start()
    4. HTTPServer + ApacheLogMiddleware + GET /api/hello
    5. run() until SIGINT / SIGTERM
    6. guardian.stop(), sink.close()

=============================================================================
"""

from typing import List, Optional
import argparse
import logging
import sys

from . import __version__
from .config import AccessLogConfig, ServerConfig
from .errors import ConfigError, LogSetupError
from .formatting import LogFormat
from .http import HTTPRequest, ResponseWriter, write_json
from .middleware import ApacheLogMiddleware
from .permissions import PermissionGuardian
from .server import HTTPServer, setup_logging
from .sinks import open_access_log


logger = logging.getLogger("accesslog")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="accesslog",
        description="HTTP server with Apache-style access logging",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m accesslog --log-path ./logs/access.log
  python -m accesslog --format combined --max-size 50
  ACCESS_LOG_COMPRESS=false python -m accesslog
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--host", "-H", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", "-p", type=int, help="Port to listen on (default: 8080)")
    parser.add_argument("--workers", "-w", type=int, help="Worker threads (default: 16)")
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Operational log level (default: INFO)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # ACCESS LOG ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--log-path", help="Access log file (default: /var/log/apache2/access.log)")
    parser.add_argument(
        "--format",
        choices=[member.value for member in LogFormat],
        help="Access log format (default: common)",
    )
    parser.add_argument("--max-size", type=float, help="Rotate at this many MB, 0 = never (default: 100)")
    parser.add_argument("--max-backups", type=int, help="Rotated files to keep, 0 = all (default: 5)")
    parser.add_argument("--max-age", type=float, help="Days to keep rotated files, 0 = forever (default: 30)")
    parser.add_argument("--no-compress", action="store_true", help="Do not gzip rotated files")
    parser.add_argument(
        "--secure-interval",
        type=float,
        help="Seconds between log permission checks (default: 60)",
    )

    parser.add_argument("--version", "-v", action="version", version=f"accesslog {__version__}")
    return parser


def build_configs(args: argparse.Namespace):
    """Environment first, then explicit CLI flags on top."""
    log_config = AccessLogConfig.from_env()
    if args.log_path is not None:
        log_config.log_path = args.log_path
    if args.format is not None:
        log_config.log_format = LogFormat.parse(args.format)
    if args.max_size is not None:
        log_config.max_size_mb = args.max_size
    if args.max_backups is not None:
        log_config.max_backups = args.max_backups
    if args.max_age is not None:
        log_config.max_age_days = args.max_age
    if args.no_compress:
        log_config.compress = False
    if args.secure_interval is not None:
        log_config.secure_interval = args.secure_interval

    server_config = ServerConfig.from_env()
    if args.host is not None:
        server_config.host = args.host
    if args.port is not None:
        server_config.port = args.port
    if args.workers is not None:
        server_config.max_workers = args.workers
    if args.log_level is not None:
        server_config.log_level = args.log_level

    return log_config, server_config


def hello(request: HTTPRequest, writer: ResponseWriter) -> None:
    write_json(writer, {"message": "Hello, World!"})


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        log_config, server_config = build_configs(args)
        server_config.validate()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_logging(server_config.log_level)

    try:
        sink = open_access_log(log_config)
    except (ConfigError, LogSetupError) as e:
        logger.error(f"Failed to set up access log: {e}")
        return 1

    guardian = PermissionGuardian(log_config.log_path, interval=log_config.secure_interval)
    guardian.start()

    try:
        server = HTTPServer(server_config)
        server.use(ApacheLogMiddleware(sink, log_config.log_format))
        server.get("/api/hello")(hello)
        server.run()
    except OSError as e:
        logger.error(f"Server error: {e}")
        return 1
    finally:
        guardian.stop(timeout=5.0)
        sink.close()
        logger.info("Access log closed")

    return 0


if __name__ == "__main__":
    sys.exit(main())
