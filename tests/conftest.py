"""
pytest configuration and fixtures.
"""

import socket
import threading
from datetime import datetime, timedelta, timezone
from typing import Generator, List, Optional

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from accesslog import HTTPServer, ServerConfig
from accesslog.errors import LogWriteError
from accesslog.formatting import RequestObservation
from accesslog.http import HTTPRequest, ResponseWriter


class RecordingWriter(ResponseWriter):
    """
    In-memory ResponseWriter.

    Args:
        max_chunk: Accept at most this many bytes per write (short writes).
        fail_on_write: Raise this error from every write().
    """

    def __init__(self, max_chunk: Optional[int] = None, fail_on_write: Optional[Exception] = None):
        self.headers = {}
        self.statuses: List[int] = []
        self.body = b""
        self.flushed = 0
        self.max_chunk = max_chunk
        self.fail_on_write = fail_on_write

    def write_header(self, status: int) -> None:
        self.statuses.append(status)

    def write(self, data: bytes) -> int:
        if self.fail_on_write is not None:
            raise self.fail_on_write
        accepted = data if self.max_chunk is None else data[:self.max_chunk]
        self.body += accepted
        return len(accepted)

    def flush(self) -> None:
        self.flushed += 1


class RecordingLineWriter:
    """LineWriter that keeps lines in a list, optionally failing."""

    def __init__(self, fail: bool = False):
        self.lines: List[str] = []
        self.fail = fail
        self._lock = threading.Lock()

    def write_line(self, text: str) -> None:
        if self.fail:
            raise LogWriteError("disk full", path="/var/log/apache2/access.log")
        with self._lock:
            self.lines.append(text)


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /api/users?page=1&limit=10 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with JSON body."""
    body = b'{"name": "John", "email": "john@example.com"}'
    return (
        b"POST /api/users HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


@pytest.fixture
def start_time() -> datetime:
    """10/Oct/2023:13:55:36 +0000"""
    return datetime(2023, 10, 10, 13, 55, 36, tzinfo=timezone.utc)


@pytest.fixture
def hello_observation(start_time: datetime) -> RequestObservation:
    return RequestObservation(
        remote_addr="1.2.3.4",
        method="GET",
        target="/api/hello",
        protocol="HTTP/1.1",
        start=start_time,
    )


@pytest.fixture
def hello_request() -> HTTPRequest:
    return HTTPRequest(
        method="GET",
        path="/api/hello",
        headers={"host": "localhost"},
        client_address=("1.2.3.4", 54321),
    )


@pytest.fixture
def fixed_clock(start_time: datetime):
    return lambda: start_time


@pytest.fixture
def eastern_time() -> datetime:
    return datetime(2023, 1, 5, 8, 3, 9, tzinfo=timezone(timedelta(hours=-5)))


@pytest.fixture
def recording_writer() -> RecordingWriter:
    return RecordingWriter()


@pytest.fixture
def line_writer() -> RecordingLineWriter:
    return RecordingLineWriter()


@pytest.fixture
def log_path(tmp_path: Path) -> str:
    """Live log file inside a not-yet-existing directory."""
    return str(tmp_path / "logs" / "access.log")


class TestServer:
    """Test server helper that runs in a background thread."""

    __test__ = False

    def __init__(self, server: HTTPServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self) -> "TestServer":
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()
        if not self.server.wait_until_started(timeout=5.0):
            raise RuntimeError("Server failed to start")
        return self

    def request(self, raw: bytes) -> bytes:
        """Send raw bytes, read until the server closes the connection."""
        with socket.create_connection(("127.0.0.1", self.port), timeout=5.0) as s:
            s.sendall(raw)
            chunks = []
            while True:
                chunk = s.recv(4096)
                if not chunk:
                    break
                chunks.append(chunk)
        return b"".join(chunks)

    def stop(self) -> None:
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


@pytest.fixture
def server_config() -> ServerConfig:
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        max_workers=4,
        timeout=5.0,
        log_level="WARNING",
        shutdown_timeout=2.0,
    )


@pytest.fixture
def make_server(server_config: ServerConfig) -> Generator:
    """Factory: configure an HTTPServer, then start it in the background."""
    started: List[TestServer] = []

    def factory(configure=None) -> TestServer:
        server = HTTPServer(server_config)
        if configure is not None:
            configure(server)
        test_srv = TestServer(server).start()
        started.append(test_srv)
        return test_srv

    yield factory

    for test_srv in started:
        test_srv.stop()
