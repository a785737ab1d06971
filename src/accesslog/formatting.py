"""
=============================================================================
APACHE LOG LINE FORMATTING
=============================================================================

Renders one completed request/response pair as a single Apache-style line.

=============================================================================
THE TWO FORMATS
=============================================================================

    COMMON LOG FORMAT (LogFormat "%h %l %u %t \\"%r\\" %>s %b"):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 1.2.3.4 - - [10/Oct/2023:13:55:36 +0000] "GET /api HTTP/1.1" 200 27 │
    │ ─────── ─ ─ ──────────────────────────── ──────────────────── ─── ──│
    │ host   ident user      time                   request line   st  sz │
    └─────────────────────────────────────────────────────────────────────┘

    COMBINED LOG FORMAT (Common + "%{Referer}i" "%{User-agent}i"):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ ...common line... "https://example.com/" "Mozilla/5.0"              │
    │ ...common line... "-" "-"          ← headers absent or empty         │
    └─────────────────────────────────────────────────────────────────────┘

The layout is the contract with every downstream analyzer (GoAccess,
AWStats, Splunk's access_combined sourcetype...). Brackets, quotes and
the "-" placeholders must be reproduced byte for byte.

=============================================================================
WHY NOT time.strftime("%d/%b/%Y:%H:%M:%S %z")?
=============================================================================

%b follows the process locale ("Okt" under de_DE) and %z renders seconds
for odd offsets. Both are spelled out by hand below.

=============================================================================
QUOTED FIELDS
=============================================================================

The request target and the two headers are client-controlled. Inside the
quotes, " and \\ are backslash-escaped and control characters become \\xhh,
as Apache does, so a header can never close its field early and forge the
ones after it:

    User-Agent: evil" "forged    →    "evil\\" \\"forged"

=============================================================================
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Optional

from .errors import ConfigError


MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
          "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

# Placeholder for fields with no value (ident, authuser, empty headers)
EMPTY_FIELD = "-"

_QUOTED_ESCAPES = {ord('"'): '\\"', ord("\\"): "\\\\"}
_QUOTED_ESCAPES.update({c: f"\\x{c:02x}" for c in list(range(0x20)) + [0x7f]})


@dataclass(frozen=True)
class RequestObservation:
    """
    What the access log needs to know about the request.

    Captured when the request enters the middleware and thrown away once the
    line has been rendered. Header values that are missing or empty are kept
    as None.
    """

    remote_addr: str
    method: str
    target: str
    protocol: str
    start: datetime
    referer: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_request(cls, request, start: datetime) -> "RequestObservation":
        """Build an observation from an HTTPRequest and its start time."""
        return cls(
            remote_addr=request.remote_addr,
            method=request.method,
            target=request.target,
            protocol=request.version,
            start=start,
            referer=request.referer or None,
            user_agent=request.user_agent or None,
        )


@dataclass
class ResponseObservation:
    """
    Status and size of the response as seen by the observer.

    status defaults to 200 because a handler that only writes a body
    implicitly sends 200 OK.
    """

    status: int = 200
    size: int = 0


def format_offset(dt: datetime) -> str:
    """Render the UTC offset of an aware datetime as +HHMM / -HHMM."""
    offset = dt.utcoffset()
    total_minutes = int(offset.total_seconds() // 60) if offset else 0
    sign = "-" if total_minutes < 0 else "+"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{sign}{hours:02d}{minutes:02d}"


def format_timestamp(dt: datetime) -> str:
    """
    Render a timestamp the way Apache's %t does.

    Naive datetimes are taken to be local time.

    Example:
        >>> format_timestamp(datetime(2023, 10, 10, 13, 55, 36, tzinfo=timezone.utc))
        '[10/Oct/2023:13:55:36 +0000]'
    """
    if dt.tzinfo is None or dt.utcoffset() is None:
        dt = dt.astimezone()
    return (
        f"[{dt.day:02d}/{MONTHS[dt.month - 1]}/{dt.year:04d}:"
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} {format_offset(dt)}]"
    )


def escape_quoted(value: str) -> str:
    """Escape a value for use between double quotes in a log line."""
    return value.translate(_QUOTED_ESCAPES)


def _header_field(value: Optional[str]) -> str:
    return escape_quoted(value) if value else EMPTY_FIELD


def render_common(request: RequestObservation, response: ResponseObservation) -> str:
    """Render a Common Log Format line."""
    return (
        f"{request.remote_addr} {EMPTY_FIELD} {EMPTY_FIELD} "
        f"{format_timestamp(request.start)} "
        f'"{request.method} {escape_quoted(request.target)} {request.protocol}" '
        f"{response.status} {response.size}"
    )


def render_combined(request: RequestObservation, response: ResponseObservation) -> str:
    """Render a Combined Log Format line (Common + Referer + User-Agent)."""
    return (
        f"{render_common(request, response)} "
        f'"{_header_field(request.referer)}" "{_header_field(request.user_agent)}"'
    )


class LogFormat(str, Enum):
    """
    Supported access log formats.

    Each member knows how to render itself, so callers never branch on the
    format:

        line = LogFormat.COMBINED.render(request_obs, response_obs)
    """

    COMMON = "common"
    COMBINED = "combined"

    @classmethod
    def parse(cls, value) -> "LogFormat":
        """
        Turn "common" / "COMBINED" / LogFormat.COMMON into a LogFormat.

        Raises:
            ConfigError: If the name is not a supported format.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(member.value for member in cls)
            raise ConfigError(f"Unknown log format: {value!r} (expected one of: {choices})")

    def render(self, request: RequestObservation, response: ResponseObservation) -> str:
        """Render one line in this format."""
        return _RENDERERS[self](request, response)


_RENDERERS: Dict[LogFormat, Callable[[RequestObservation, ResponseObservation], str]] = {
    LogFormat.COMMON: render_common,
    LogFormat.COMBINED: render_combined,
}


def format_log_entry(
    request: RequestObservation,
    response: ResponseObservation,
    log_format: LogFormat = LogFormat.COMMON,
) -> str:
    """
    Format one access log line.

    Pure function: no I/O, no shared state. Never raises for a well-formed
    observation.

    Args:
        request: What was asked (remote address, request line, headers, start).
        response: What was answered (status and body size).
        log_format: COMMON or COMBINED.

    Returns:
        The log line without a trailing newline.
    """
    return LogFormat.parse(log_format).render(request, response)
