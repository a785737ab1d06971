"""
=============================================================================
HTTP SERVER
=============================================================================

A small threaded HTTP/1.1 host for the access-log middleware.

=============================================================================
REQUEST FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   SocketServer.accept()                                             │
    │        │                                                             │
    │        ▼                                                             │
    │   ThreadPoolExecutor.submit(_process_connection)                    │
    │        │                                                             │
    │        ▼                                                             │
    │   Connection.read_request() ──► RequestParser.parse()               │
    │        │                                                             │
    │        ▼                                                             │
    │   ConnectionResponseWriter(conn)                                    │
    │        │                                                             │
    │        ▼                                                             │
    │   middleware pipeline ──► _dispatch ──► route handler               │
    │        │                                                             │
    │        ▼                                                             │
    │   writer.finish() ──► Connection.close()                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Routes are exact (method, path) matches. HEAD falls back to the GET
handler with the body suppressed.

=============================================================================
"""

from concurrent.futures import Future, ThreadPoolExecutor, wait
from http import HTTPStatus
from typing import Callable, Dict, Optional, Set, Tuple
import logging
import threading

from .config import ServerConfig
from .core import Connection, RequestTooLarge, SocketServer
from .http import (
    ConnectionResponseWriter,
    HTTPParseError,
    HTTPRequest,
    RequestParser,
    ResponseWriter,
    write_json,
)
from .middleware import Handler, Middleware, MiddlewarePipeline


logger = logging.getLogger(__name__)


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO") -> None:
    """Configure the operational (not access) log on the root logger."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )


class HTTPServer:
    """
    Threaded HTTP server with a middleware pipeline.

    =========================================================================
    USAGE
    =========================================================================

        server = HTTPServer(ServerConfig(port=8080))
        server.use(ApacheLogMiddleware(sink))

        @server.get("/api/hello")
        def hello(request, writer):
            write_json(writer, {"message": "Hello, World!"})

        server.run()   # blocks until SIGINT/SIGTERM or shutdown()

    =========================================================================
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config)
        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._routes: Dict[Tuple[str, str], Handler] = {}
        self._middleware = MiddlewarePipeline()
        self._handler: Optional[Handler] = None

        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: Set[Future] = set()
        self._pending_lock = threading.Lock()
        self._running = False

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def use(self, middleware: Middleware) -> "HTTPServer":
        """Add middleware; the first added runs outermost."""
        self._middleware.add(middleware)
        return self

    def add_route(self, method: str, path: str, handler: Handler) -> None:
        key = (method.upper(), path)
        if key in self._routes:
            raise ValueError(f"Route already registered: {key[0]} {path}")
        self._routes[key] = handler
        logger.debug(f"Registered route {key[0]} {path}")

    def route(self, path: str, method: str = "GET") -> Callable[[Handler], Handler]:
        """Decorator registering a handler for ``method`` on ``path``."""
        def decorator(handler: Handler) -> Handler:
            self.add_route(method, path, handler)
            return handler

        return decorator

    def get(self, path: str) -> Callable[[Handler], Handler]:
        """Register a GET route."""
        return self.route(path, "GET")

    def post(self, path: str) -> Callable[[Handler], Handler]:
        """Register a POST route."""
        return self.route(path, "POST")

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port) once started."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    def wait_until_started(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.started.wait(timeout)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self) -> None:
        """Start the server and block until it is shut down."""
        self._setup_logging()
        self._handler = self._middleware.wrap(self._dispatch)
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix="http-worker",
        )
        self._running = True

        logger.info(
            f"Starting HTTP server on {self.config.host}:{self.config.port} "
            f"({self.config.max_workers} workers, {len(self._middleware)} middleware)"
        )

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self) -> None:
        """Ask a running server to stop; run() returns once requests drain."""
        self._socket_server.shutdown()

    def _setup_logging(self) -> None:
        setup_logging(self.config.log_level)

    def _shutdown(self) -> None:
        logger.info("Shutting down server...")
        self._running = False

        with self._pending_lock:
            pending = set(self._pending)
        if pending:
            logger.info(f"Waiting up to {self.config.shutdown_timeout}s for {len(pending)} request(s)")
            _, not_done = wait(pending, timeout=self.config.shutdown_timeout)
            if not_done:
                logger.warning(f"{len(not_done)} request(s) still running at shutdown")

        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection) -> None:
        future = self._executor.submit(self._process_connection, conn)
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def _process_connection(self, conn: Connection) -> None:
        """Serve exactly one request on ``conn`` (worker thread)."""
        with conn:
            try:
                raw_request = conn.read_request()
            except TimeoutError:
                self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                return
            except RequestTooLarge as e:
                self._send_error(conn, HTTPStatus.REQUEST_ENTITY_TOO_LARGE, str(e))
                return
            except OSError as e:
                logger.debug(f"[{conn.id}] Read failed: {e}")
                return

            if raw_request is None:
                return

            try:
                request = self._parser.parse(raw_request, conn.address)
            except HTTPParseError as e:
                logger.debug(f"[{conn.id}] Bad request: {e}")
                self._send_error(conn, e.status_code, str(e))
                return

            writer = ConnectionResponseWriter(
                conn,
                server_name=self.config.server_name,
                head_only=request.method == "HEAD",
            )

            try:
                self._handler(request, writer)
                writer.finish()
            except OSError as e:
                logger.debug(f"[{conn.id}] Client went away: {e}")
            except Exception as e:
                logger.exception(f"[{conn.id}] Handler error: {e}")
                if not writer.head_sent:
                    self._send_error(conn, HTTPStatus.INTERNAL_SERVER_ERROR, "Internal Server Error")

    def _send_error(self, conn: Connection, status: int, message: str) -> None:
        """Send a JSON error for failures outside the handler."""
        writer = ConnectionResponseWriter(conn, server_name=self.config.server_name)
        try:
            write_json(writer, {"error": message}, status=status)
        except OSError as e:
            logger.debug(f"[{conn.id}] Failed to send {status} response: {e}")

    # =========================================================================
    # ROUTING
    # =========================================================================

    def _dispatch(self, request: HTTPRequest, writer: ResponseWriter) -> None:
        handler = self._routes.get((request.method, request.path))
        if handler is None and request.method == "HEAD":
            handler = self._routes.get(("GET", request.path))

        if handler is not None:
            handler(request, writer)
            return

        allowed = sorted(method for method, path in self._routes if path == request.path)
        if allowed:
            writer.headers["Allow"] = ", ".join(allowed)
            write_json(writer, {"error": "Method Not Allowed"}, status=HTTPStatus.METHOD_NOT_ALLOWED)
        else:
            write_json(writer, {"error": "Not Found"}, status=HTTPStatus.NOT_FOUND)


def create_app(config: Optional[ServerConfig] = None) -> HTTPServer:
    """
    Factory for server instances.

        app = create_app(ServerConfig(port=3000))
    """
    return HTTPServer(config)
