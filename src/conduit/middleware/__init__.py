"""Middleware for conduit pipelines.

A middleware unit receives the request context and either completes the
exchange or delegates to the next unit. Three registration forms exist:
- inline functions `async (context, next)`
- raw transforms `next -> unit`
- classes with an async `invoke(context, ...)`, adapted at compile time
"""

from .base import (
    INVOKE_METHOD,
    InlineMiddleware,
    Middleware,
    MiddlewareBase,
    MiddlewareTransform,
    RequestDelegate,
)
from .adapter import MiddlewareAdapter
from .builtin import (
    ErrorHandlerMiddleware,
    PrefixMiddleware,
    ToLowerMiddleware,
    ToUpperMiddleware,
)
from .request_logger import (
    RequestLoggerMiddleware,
    RequestLoggerOptions,
    use_request_logging,
)

__all__ = [
    # Protocol and base class
    "INVOKE_METHOD",
    "InlineMiddleware",
    "Middleware",
    "MiddlewareBase",
    "MiddlewareTransform",
    "RequestDelegate",
    # Adapter
    "MiddlewareAdapter",
    # Built-in middleware
    "ErrorHandlerMiddleware",
    "PrefixMiddleware",
    "ToLowerMiddleware",
    "ToUpperMiddleware",
    # Request logging
    "RequestLoggerMiddleware",
    "RequestLoggerOptions",
    "use_request_logging",
]
