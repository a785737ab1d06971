"""
=============================================================================
ACCESSLOG - Apache-Style Access Logging Middleware
=============================================================================

Writes one Apache Common or Combined Log Format line per HTTP request to
a size-rotated, gzip-compressed, permission-guarded log file.

=============================================================================
PROJECT OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   request ──► ApacheLogMiddleware ──► handler                       │
    │                   │    (ResponseObserver counts status + bytes)     │
    │                   ▼                                                  │
    │              format_log_entry()                                     │
    │                   │                                                  │
    │                   ▼                                                  │
    │              RotatingSink ──► access.log, access.log.1.gz, ...      │
    │                   ▲                                                  │
    │                   │ chmod 0640 every 60s                            │
    │              PermissionGuardian                                     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    accesslog/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m accesslog)
    ├── config.py            # AccessLogConfig, ServerConfig
    ├── errors.py            # Exception hierarchy
    ├── formatting.py        # Common / Combined line rendering
    ├── rotation.py          # RotatingSink, RotationPolicy
    ├── permissions.py       # secure_live_file, PermissionGuardian
    ├── sinks.py             # LineWriter, open_access_log
    ├── server.py            # HTTPServer host
    ├── core/                # Sockets and connections
    ├── http/                # Request parsing, response writer
    └── middleware/          # Pipeline, observer, access log middleware

=============================================================================
QUICK START
=============================================================================

    from accesslog import (
        AccessLogConfig, ApacheLogMiddleware, HTTPServer, open_access_log,
    )
    from accesslog.http import write_json

    sink = open_access_log(AccessLogConfig(log_path="./logs/access.log"))

    server = HTTPServer()
    server.use(ApacheLogMiddleware(sink))

    @server.get("/api/hello")
    def hello(request, writer):
        write_json(writer, {"message": "Hello, World!"})

    server.run()

=============================================================================
"""

__version__ = "1.0.0"

from .config import AccessLogConfig, ServerConfig
from .errors import (
    AccessLogError,
    ConfigError,
    LogSetupError,
    LogWriteError,
    PermissionFixError,
)
from .formatting import (
    LogFormat,
    RequestObservation,
    ResponseObservation,
    format_log_entry,
    format_timestamp,
)
from .middleware import (
    ApacheLogMiddleware,
    ResponseObserver,
    apache_combined_log_middleware,
    apache_common_log_middleware,
    apache_log_middleware,
)
from .permissions import PermissionGuardian, secure_live_file, secure_rotated_files
from .rotation import RotatingSink, RotationPolicy
from .server import HTTPServer
from .sinks import LineWriter, LoggerLineWriter, new_apache_logger, open_access_log

__all__ = [
    "__version__",
    # Configuration
    "AccessLogConfig",
    "ServerConfig",
    # Errors
    "AccessLogError",
    "ConfigError",
    "LogSetupError",
    "LogWriteError",
    "PermissionFixError",
    # Formatting
    "LogFormat",
    "RequestObservation",
    "ResponseObservation",
    "format_log_entry",
    "format_timestamp",
    # Middleware
    "ApacheLogMiddleware",
    "ResponseObserver",
    "apache_log_middleware",
    "apache_common_log_middleware",
    "apache_combined_log_middleware",
    # Files
    "RotatingSink",
    "RotationPolicy",
    "PermissionGuardian",
    "secure_live_file",
    "secure_rotated_files",
    "LineWriter",
    "LoggerLineWriter",
    "new_apache_logger",
    "open_access_log",
    # Host
    "HTTPServer",
]
