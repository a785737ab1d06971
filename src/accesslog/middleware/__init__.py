"""
=============================================================================
MIDDLEWARE
=============================================================================

Middleware runs BETWEEN receiving a request and calling the final handler:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   Incoming request                                                   │
    │        │                                                             │
    │        ▼                                                             │
    │   ┌──────────────────────┐                                          │
    │   │ ApacheLogMiddleware  │ ──► wraps the writer in an observer      │
    │   └──────────┬───────────┘                                          │
    │              ▼                                                       │
    │   ┌──────────────────────┐                                          │
    │   │    Your handler      │ ──► writes status + body                 │
    │   └──────────┬───────────┘                                          │
    │              │                                                       │
    │              ▼                                                       │
    │   Control flows back UP: the access line is appended                │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    base.py        Middleware ABC, MiddlewarePipeline, FunctionMiddleware
    observer.py    ResponseObserver (status + byte counting proxy)
    access_log.py  ApacheLogMiddleware and handler decorators

=============================================================================
"""

from .base import (
    FunctionMiddleware,
    Handler,
    Middleware,
    MiddlewarePipeline,
    NextHandler,
    function_middleware,
)
from .observer import ResponseObserver
from .access_log import (
    ApacheLogMiddleware,
    apache_combined_log_middleware,
    apache_common_log_middleware,
    apache_log_middleware,
)

__all__ = [
    # Base classes
    "Handler",
    "NextHandler",
    "Middleware",
    "MiddlewarePipeline",
    "FunctionMiddleware",
    "function_middleware",

    # Access logging
    "ResponseObserver",
    "ApacheLogMiddleware",
    "apache_log_middleware",
    "apache_common_log_middleware",
    "apache_combined_log_middleware",
]
