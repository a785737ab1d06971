"""
=============================================================================
RESPONSE OBSERVER
=============================================================================

A transparent proxy around a ResponseWriter that remembers what was sent.

=============================================================================
WHY A PROXY?
=============================================================================

Handlers stream their output, so by the time control returns to the
access-log middleware there is no response object to inspect. The only
place to learn the status and the body size is on the way out:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   handler ──write_header(404)──► ResponseObserver ──► real writer   │
    │                                   status = 404                       │
    │                                                                      │
    │   handler ──write(b"abc")──────► ResponseObserver ──► real writer   │
    │                                   size += <what the writer returned>│
    │                                                                      │
    │   handler ──writer.headers─────► (delegated, untouched)             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The byte count is the number the wrapped writer reports, not len(data):
a short write counts only what actually went out, and a write that raises
counts nothing. The exception reaches the handler unchanged.

=============================================================================
"""

from http import HTTPStatus
from typing import Any, Optional

from ..formatting import ResponseObservation
from ..http.writer import ResponseWriter


class ResponseObserver(ResponseWriter):
    """
    Records status code and bytes written for one request.

    Not thread-safe and not meant to be: an observer belongs to exactly one
    in-flight request.
    """

    def __init__(self, writer: ResponseWriter):
        self._writer = writer
        self._status: Optional[int] = None
        self._size = 0

    # -------------------------------------------------------------------------
    # Observed methods
    # -------------------------------------------------------------------------

    def write_header(self, status: int) -> None:
        if self._status is None:
            self._status = int(status)
        self._writer.write_header(status)

    def write(self, data: bytes) -> int:
        written = self._writer.write(data)
        self._size += written
        return written

    # -------------------------------------------------------------------------
    # Delegation
    # -------------------------------------------------------------------------

    @property
    def headers(self):
        return self._writer.headers

    def __getattr__(self, name: str) -> Any:
        # Only reached for attributes not defined on the observer itself.
        if name == "_writer":
            raise AttributeError(name)
        return getattr(self._writer, name)

    # -------------------------------------------------------------------------
    # Observation
    # -------------------------------------------------------------------------

    @property
    def wrapped(self) -> ResponseWriter:
        return self._writer

    @property
    def status_written(self) -> bool:
        """True once the handler set a status explicitly."""
        return self._status is not None

    @property
    def status(self) -> int:
        """First status set by the handler, 200 if it never set one."""
        return self._status if self._status is not None else int(HTTPStatus.OK)

    @property
    def size(self) -> int:
        """Body bytes the wrapped writer accepted so far."""
        return self._size

    @property
    def observation(self) -> ResponseObservation:
        return ResponseObservation(status=self.status, size=self.size)
