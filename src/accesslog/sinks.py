"""
=============================================================================
ACCESS LOG DESTINATIONS
=============================================================================

Where finished access lines go, and how the default destination is set up.

=============================================================================
TWO WAYS TO DELIVER A LINE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   DIRECT (default)                                                   │
    │                                                                      │
    │   ApacheLogMiddleware ──write_line──► RotatingSink ──► access.log    │
    │                                                                      │
    │   Write errors reach the middleware as LogWriteError.               │
    │                                                                      │
    │   THROUGH LOGGING                                                    │
    │                                                                      │
    │   ApacheLogMiddleware ──write_line──► LoggerLineWriter              │
    │                                          │  logger.info(line)        │
    │                                          ▼                           │
    │                     "accesslog.access" logger (propagate=False)      │
    │                                          │                           │
    │                                          ▼                           │
    │                     SinkHandler ──► RotatingSink ──► access.log      │
    │                     (+ any other handler you attach)                 │
    │                                                                      │
    │   logging swallows handler errors (handleError), so a failing       │
    │   write is reported on stderr instead of reaching the middleware.   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Anything with a write_line(text) method is a LineWriter; tests use a list.

=============================================================================
"""

import logging
from typing import Protocol

from .config import AccessLogConfig
from .errors import LogSetupError
from .permissions import secure_live_file
from .rotation import RotatingSink


logger = logging.getLogger(__name__)


ACCESS_LOGGER_NAME = "accesslog.access"


class LineWriter(Protocol):
    """Anything that can append one complete access line."""

    def write_line(self, text: str) -> None:
        ...


class LoggerLineWriter:
    """
    Adapts a logging.Logger to the LineWriter interface.

    Each line becomes one record at ``level``; the logger's handlers decide
    where it ends up.
    """

    def __init__(self, target: logging.Logger, level: int = logging.INFO):
        self.logger = target
        self.level = level

    def write_line(self, text: str) -> None:
        self.logger.log(self.level, text.rstrip("\n"))


class SinkHandler(logging.Handler):
    """logging.Handler that appends formatted records to a RotatingSink."""

    def __init__(self, sink: RotatingSink, level: int = logging.NOTSET):
        super().__init__(level)
        self.sink = sink

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.sink.write_line(self.format(record))
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        self.sink.close()
        super().close()


def open_access_log(config: AccessLogConfig) -> RotatingSink:
    """
    Validate the configuration, secure the live file and open the sink.

    Call once at startup. Errors here are the only fatal ones: a server
    that cannot open its access log should not start.

    Raises:
        ConfigError: If the configuration is invalid.
        LogSetupError: If the directory or the live file cannot be created,
                       secured or opened.
    """
    config.validate()

    created = secure_live_file(config.log_path)

    try:
        sink = RotatingSink(config.log_path, config.rotation_policy)
    except OSError as e:
        raise LogSetupError(
            f"Failed to open access log {config.log_path}: {e}", path=config.log_path
        ) from e

    logger.info(
        f"Access log {'created' if created else 'opened'} at {sink.path} "
        f"(format={config.log_format.value}, max_size={config.max_size_mb}MB, "
        f"backups={config.max_backups}, max_age={config.max_age_days}d, "
        f"compress={config.compress})"
    )
    return sink


def new_apache_logger(config: AccessLogConfig) -> logging.Logger:
    """
    Build a dedicated logger that writes access lines to the rotating file.

    The logger does not propagate, so access lines never show up in the
    operational log. Messages are written verbatim (format "%(message)s").

    Calling it twice replaces the previously installed SinkHandler.

    Raises:
        ConfigError, LogSetupError: As open_access_log().
    """
    sink = open_access_log(config)

    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)
    for handler in list(access_logger.handlers):
        if isinstance(handler, SinkHandler):
            access_logger.removeHandler(handler)
            handler.close()

    handler = SinkHandler(sink)
    handler.setFormatter(logging.Formatter("%(message)s"))
    access_logger.addHandler(handler)
    access_logger.setLevel(logging.INFO)
    access_logger.propagate = False
    return access_logger
