"""
=============================================================================
HTTP PROTOCOL COMPONENTS
=============================================================================

    request.py   HTTPRequest dataclass and RequestParser
    writer.py    ResponseWriter contract and the connection-backed writer

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .writer import (
    ResponseWriter,
    ConnectionResponseWriter,
    format_http_date,
    reason_phrase,
    write_json,
    write_text,
)

__all__ = [
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",
    "ResponseWriter",
    "ConnectionResponseWriter",
    "format_http_date",
    "reason_phrase",
    "write_json",
    "write_text",
]
