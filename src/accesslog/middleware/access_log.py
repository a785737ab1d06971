"""
=============================================================================
APACHE ACCESS LOG MIDDLEWARE
=============================================================================

Writes one Apache Common/Combined line per request to a LineWriter.

=============================================================================
ONE REQUEST, ONE LINE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   1. start = now()                                                   │
    │   2. RequestObservation from the request (addr, line, headers)      │
    │   3. observer = ResponseObserver(writer)                             │
    │   4. next(request, observer)         ← handler streams the response │
    │   5. finally:                                                        │
    │        line = format_log_entry(request_obs, observer.observation)   │
    │        line_writer.write_line(line)                                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Step 5 runs in a finally block, so a handler that raises still gets its
line (with whatever status and size the observer saw) and the exception
keeps propagating to the server.

A handler that raises before writing anything is logged as "200 0": the
observer saw no status, and the 500 the server then sends goes out on a
fresh writer after this line is written. The client and the log disagree
in that case only.

A failing append is NOT the handler's problem: the line is lost, a warning
goes to the operational log, and the request completes normally.

=============================================================================
MIDDLEWARE POSITION
=============================================================================

Access logging should be FIRST in the pipeline so that requests rejected
by later middleware are logged too:

    server.use(ApacheLogMiddleware(sink))   # FIRST
    server.use(AuthMiddleware())

=============================================================================
"""

from datetime import datetime
from functools import wraps
from typing import Callable, Optional
import logging
import threading

from .base import Handler, Middleware, NextHandler
from .observer import ResponseObserver
from ..errors import AccessLogError
from ..formatting import LogFormat, RequestObservation, format_log_entry
from ..http.request import HTTPRequest
from ..http.writer import ResponseWriter
from ..sinks import LineWriter


logger = logging.getLogger(__name__)


def _local_now() -> datetime:
    return datetime.now().astimezone()


class ApacheLogMiddleware(Middleware):
    """
    Access log middleware.

    Usage:
        sink = open_access_log(AccessLogConfig(log_path="/tmp/access.log"))
        server.use(ApacheLogMiddleware(sink, LogFormat.COMBINED))

    Args:
        line_writer: Destination of the lines (RotatingSink, LoggerLineWriter,
                     anything with write_line()).
        log_format: LogFormat.COMMON (default) or LogFormat.COMBINED; the
                    strings "common"/"combined" are accepted too.
        clock: Returns the request start time. Defaults to local time.
    """

    def __init__(
        self,
        line_writer: LineWriter,
        log_format: LogFormat = LogFormat.COMMON,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.line_writer = line_writer
        self.log_format = LogFormat.parse(log_format)
        self.clock = clock or _local_now
        self.lines_written = 0
        self.lines_dropped = 0
        self._counter_lock = threading.Lock()

    def __call__(self, request: HTTPRequest, writer: ResponseWriter, next: NextHandler) -> None:
        request_obs = RequestObservation.from_request(request, self.clock())
        observer = ResponseObserver(writer)
        try:
            next(request, observer)
        finally:
            self._append(format_log_entry(request_obs, observer.observation, self.log_format))

    def _append(self, line: str) -> None:
        try:
            self.line_writer.write_line(line)
        except (AccessLogError, OSError) as e:
            with self._counter_lock:
                self.lines_dropped += 1
            logger.warning(f"Failed to write access log line: {e}")
        else:
            with self._counter_lock:
                self.lines_written += 1


# =============================================================================
# HANDLER DECORATORS
# =============================================================================
#
# For code that wraps plain handlers instead of building a pipeline:
#
#     @apache_common_log_middleware(sink)
#     def hello(request, writer):
#         write_json(writer, {"message": "Hello, World!"})
#
# =============================================================================

def apache_log_middleware(
    line_writer: LineWriter,
    log_format: LogFormat = LogFormat.COMMON,
) -> Callable[[Handler], Handler]:
    """Return a decorator that access-logs every call of a handler."""
    middleware = ApacheLogMiddleware(line_writer, log_format)

    def decorator(handler: Handler) -> Handler:
        @wraps(handler)
        def wrapped(request: HTTPRequest, writer: ResponseWriter) -> None:
            middleware(request, writer, handler)

        return wrapped

    return decorator


def apache_common_log_middleware(line_writer: LineWriter) -> Callable[[Handler], Handler]:
    """Common Log Format decorator."""
    return apache_log_middleware(line_writer, LogFormat.COMMON)


def apache_combined_log_middleware(line_writer: LineWriter) -> Callable[[Handler], Handler]:
    """Combined Log Format decorator."""
    return apache_log_middleware(line_writer, LogFormat.COMBINED)
