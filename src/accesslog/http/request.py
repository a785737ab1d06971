"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Parses raw HTTP/1.1 request bytes into structured HTTPRequest objects.
Implements the subset of RFC 7230 the access-log host needs.

=============================================================================
WHAT THE ACCESS LOG READS FROM A REQUEST
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │    GET /api/users?page=1 HTTP/1.1\r\n                               │
    │    ─┬─ ───────┬──────── ────┬───                                    │
    │     │         │             │                                        │
    │   method    target       version        → "%r" in the log line      │
    │             (raw, query included)                                    │
    │                                                                      │
    │    Referer: https://example.com/\r\n     → "%{Referer}i"            │
    │    User-Agent: curl/8.4.0\r\n            → "%{User-agent}i"         │
    │    \r\n                                                              │
    │                                                                      │
    │   client_address[0]                      → "%h"                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The request target is kept exactly as received (percent-encoding and query
string included) because that is what Apache logs. The decoded path is
kept separately for routing.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict
from urllib.parse import urlparse, unquote
import re


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the HTTP status code that should be returned to the client:

        400 Bad Request                - Malformed request syntax
        405 Method Not Allowed         - Unknown/unsupported method
        413 Payload Too Large          - Request exceeds size limit
        505 HTTP Version Not Supported - Unknown HTTP version
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method:         HTTP method (GET, POST, ...)
        path:           Decoded path without query string, used for routing
        target:         Raw request-target as sent ("/a%20b?x=1")
        version:        "HTTP/1.1" or "HTTP/1.0"
        headers:        Header name → value, names lowercased
        body:           Raw body bytes
        client_address: (ip, port) of the peer
    """

    method: str
    path: str
    target: str = ""
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    client_address: tuple[str, int] = ("", 0)

    def __post_init__(self):
        if not self.target:
            self.target = self.path

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def remote_addr(self) -> str:
        """Client IP address ("%h"), or "-" when unknown."""
        return self.client_address[0] or "-"

    @property
    def referer(self) -> str:
        """Referer header value, empty string when absent."""
        return self.headers.get("referer", "")

    @property
    def user_agent(self) -> str:
        """User-Agent header value, empty string when absent."""
        return self.headers.get("user-agent", "")

    def get_header(self, name: str, default: str = "") -> str:
        """
        Get a header value (case-insensitive lookup).

        Example:
            request.get_header("User-Agent")  # same as "user-agent"
        """
        return self.headers.get(name.lower(), default)


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    ==========================================================================
    PARSING STEPS
    ==========================================================================

        1. Size check               too large?  → HTTPParseError(413)
        2. Split at \\r\\n\\r\\n        missing?    → HTTPParseError(400)
        3. Request line             bad method  → 405, bad version → 505
        4. Headers                  lowercased, duplicates comma-joined
        5. Body                     exactly Content-Length bytes

    ==========================================================================
    """

    VALID_METHODS = {
        "GET", "POST", "PUT", "DELETE", "PATCH",
        "HEAD", "OPTIONS", "TRACE", "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw HTTP request data into an HTTPRequest object.

        Args:
            data: Raw HTTP request bytes from socket.
            client_address: Client's (ip, port) tuple.

        Returns:
            Parsed HTTPRequest object.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, target, path, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")

        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            target=target,
            version=version,
            headers=headers,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(self, line: str):
        """
        Parse "METHOD SP REQUEST-TARGET SP HTTP-VERSION".

        Returns:
            Tuple of (method, raw target, decoded path, version)
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, target, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505
            )

        parsed = urlparse(target)
        path = unquote(parsed.path) or "/"

        if ".." in path:
            raise HTTPParseError("Invalid path: contains ..", status_code=400)

        return method, target, path, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse header lines into a dict with lowercase names.

        Continuation lines (leading whitespace) extend the previous header.
        Repeated headers are joined with ", " as RFC 7230 allows.
        Malformed lines are skipped.
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024
) -> HTTPRequest:
    """Parse an HTTP request in one call (builds a throwaway RequestParser)."""
    parser = RequestParser(max_request_size=max_size)
    return parser.parse(data, client_address)
