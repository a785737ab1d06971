"""
=============================================================================
HTTP RESPONSE WRITER
=============================================================================

Handlers in this server do not return a response object. They write to a
ResponseWriter, which streams the status line, headers and body to the
client as they are produced.

=============================================================================
THE WRITER CONTRACT
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ResponseWriter                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   headers              dict, mutable until the head is sent          │
    │                                                                      │
    │   write_header(status) set the status once; later calls are ignored │
    │                                                                      │
    │   write(data) -> int   send body bytes, return how many went out.   │
    │                        The first write sends the head with status   │
    │                        200 unless write_header() ran before.         │
    │                        Raises OSError if the peer is gone.           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Because the writer is an object with a small surface, middleware can
decorate it (see middleware/observer.py) without the handler noticing.

=============================================================================
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Dict, Optional
import json
import logging


logger = logging.getLogger(__name__)


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231).

    Example: Wed, 01 Jan 2026 12:00:00 GMT
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
    dt = dt.astimezone(timezone.utc)
    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def reason_phrase(status: int) -> str:
    """Reason phrase for a status code, "Unknown" for non-standard codes."""
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Unknown"


class ResponseWriter(ABC):
    """
    Abstract response channel handed to every handler.

    Subclasses must provide a ``headers`` dict plus write_header() and write().
    """

    headers: Dict[str, str]

    @abstractmethod
    def write_header(self, status: int) -> None:
        """Set the response status code."""

    @abstractmethod
    def write(self, data: bytes) -> int:
        """Write body bytes and return how many were accepted."""


class ConnectionResponseWriter(ResponseWriter):
    """
    ResponseWriter that streams to a client Connection.

    =========================================================================
    FRAMING
    =========================================================================

    The body length is unknown when the first chunk goes out, so streamed
    responses are framed by closing the connection ("Connection: close").
    A response finished without any body write gets "Content-Length: 0"
    instead.

    HEAD requests get the head only; body bytes are counted but not sent.

    =========================================================================
    """

    def __init__(
        self,
        conn,
        server_name: str = "accesslog/1.0",
        version: str = "HTTP/1.1",
        head_only: bool = False,
    ):
        self.headers: Dict[str, str] = {}
        self._conn = conn
        self._server_name = server_name
        self._version = version
        self._head_only = head_only
        self._status: Optional[int] = None
        self._head_sent = False

    @property
    def status(self) -> int:
        """Status that was (or will be) sent."""
        return self._status or HTTPStatus.OK

    @property
    def head_sent(self) -> bool:
        return self._head_sent

    def write_header(self, status: int) -> None:
        if self._head_sent or self._status is not None:
            logger.debug(f"Superfluous write_header({status}) ignored")
            return
        self._status = int(status)

    def write(self, data: bytes) -> int:
        if not self._head_sent:
            self._send_head(content_length=None)
        if not data:
            return 0
        if self._head_only:
            return len(data)
        return self._conn.send(data)

    def finish(self) -> None:
        """Send the head if the handler never wrote a body."""
        if not self._head_sent:
            self._send_head(content_length=0)

    def _send_head(self, content_length: Optional[int]) -> None:
        headers = dict(self.headers)
        if content_length is not None:
            headers.setdefault("Content-Length", str(content_length))
        if "Content-Length" not in headers:
            headers["Connection"] = "close"
        headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        headers.setdefault("Server", self._server_name)

        lines = [f"{self._version} {self.status} {reason_phrase(self.status)}"]
        lines.extend(f"{name}: {value}" for name, value in headers.items())
        head = ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")

        self._head_sent = True
        self._conn.send(head)


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================
#
#     write_json(writer, {"message": "Hello, World!"})
#     write_text(writer, "Not Found", status=404)
#
# =============================================================================

def write_json(writer: ResponseWriter, data: Any, status: int = HTTPStatus.OK) -> int:
    """Write ``data`` as a JSON body with the given status."""
    body = json.dumps(data).encode("utf-8")
    writer.headers["Content-Type"] = "application/json"
    writer.headers["Content-Length"] = str(len(body))
    if status != HTTPStatus.OK:
        writer.write_header(status)
    return writer.write(body)


def write_text(writer: ResponseWriter, text: str, status: int = HTTPStatus.OK) -> int:
    """Write ``text`` as a plain-text body with the given status."""
    body = text.encode("utf-8")
    writer.headers["Content-Type"] = "text/plain; charset=utf-8"
    writer.headers["Content-Length"] = str(len(body))
    if status != HTTPStatus.OK:
        writer.write_header(status)
    return writer.write(body)
