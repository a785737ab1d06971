"""
=============================================================================
BASE MIDDLEWARE INTERFACE
=============================================================================

Defines the middleware protocol and the pipeline for chaining middleware
(Chain of Responsibility).

=============================================================================
REQUEST / WRITER FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   (request, writer) ─────────────────────────────────────────►      │
    │                                                                      │
    │   ┌──────────────┐    ┌──────────────┐    ┌──────────────┐          │
    │   │  Access log  │───►│  Other MW    │───►│   Handler    │          │
    │   │  (wraps the  │    │              │    │  writes to   │          │
    │   │   writer)    │    │              │    │  the writer  │          │
    │   └──────┬───────┘    └──────────────┘    └──────┬───────┘          │
    │          │                                       │                   │
    │          ▼                                       ▼                   │
    │   [after] status + bytes              writer.write_header(404)      │
    │   known, line appended                writer.write(b"...")          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Handlers return nothing: the response leaves through the writer while the
handler runs. A middleware that wants to see the response decorates the
writer before calling next().

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional
import logging

from ..http.request import HTTPRequest
from ..http.writer import ResponseWriter


logger = logging.getLogger(__name__)


# Signature of the next middleware or the final handler.
Handler = Callable[[HTTPRequest, ResponseWriter], None]
NextHandler = Handler


class Middleware(ABC):
    """
    Abstract base class for middleware.

    =========================================================================
    MIDDLEWARE ANATOMY
    =========================================================================

        class MyMiddleware(Middleware):
            def __call__(self, request, writer, next):
                # PRE-PROCESSING: inspect request, decorate writer,
                # or short-circuit by writing a response and returning.

                next(request, writer)   # continue the chain

                # POST-PROCESSING: the response has been written.

    =========================================================================
    """

    @abstractmethod
    def __call__(
        self,
        request: HTTPRequest,
        writer: ResponseWriter,
        next: NextHandler,
    ) -> None:
        """
        Process the request.

        Args:
            request: The incoming HTTP request
            writer: Response channel for this request
            next: The next handler in the chain
        """

    @property
    def name(self) -> str:
        """Middleware name for logging."""
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Chains middleware around a final handler, first added = outermost.

        pipeline = MiddlewarePipeline()
        pipeline.add(ApacheLogMiddleware(sink))
        handler = pipeline.wrap(server_dispatch)
        handler(request, writer)
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """Append middleware; returns self for chaining."""
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def use(self, *middleware: Middleware) -> "MiddlewarePipeline":
        """Add several middleware at once."""
        for mw in middleware:
            self.add(mw)
        return self

    def wrap(self, handler: Handler) -> Handler:
        """
        Wrap a handler with every middleware in the pipeline.

        Given [MW1, MW2] and handler, the result calls
        MW1 → MW2 → handler. Wrapping runs in reverse so the first-added
        middleware ends up outermost.
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)
        return current

    def _create_wrapped_handler(
        self,
        middleware: Middleware,
        next_handler: Handler
    ) -> Handler:
        def wrapped(request: HTTPRequest, writer: ResponseWriter) -> None:
            middleware(request, writer, next_handler)

        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)


class FunctionMiddleware(Middleware):
    """
    Wraps a plain function ``func(request, writer, next)`` as middleware.

        def add_header(request, writer, next):
            writer.headers["X-Custom"] = "value"
            next(request, writer)

        pipeline.add(FunctionMiddleware(add_header))
    """

    def __init__(
        self,
        func: Callable[[HTTPRequest, ResponseWriter, NextHandler], None],
        name: Optional[str] = None
    ):
        self._func = func
        self._name = name or func.__name__

    def __call__(self, request: HTTPRequest, writer: ResponseWriter, next: NextHandler) -> None:
        self._func(request, writer, next)

    @property
    def name(self) -> str:
        return self._name


def function_middleware(
    func: Callable[[HTTPRequest, ResponseWriter, NextHandler], None]
) -> FunctionMiddleware:
    """Decorator form of FunctionMiddleware."""
    return FunctionMiddleware(func)
