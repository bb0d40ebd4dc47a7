"""Pipeline compilation and invocation.

Middleware is registered in order with use() / use_inline() /
use_middleware(). The first invocation (or an explicit prepare()) folds the
registrations, last to first, around the terminal unit, so the first
registered middleware is the outermost:

    M1(pre) -> M2(pre) -> M3(pre) -> terminal -> M3(post) -> M2(post) -> M1(post)

Once compiled the chain is frozen and further registration raises
InvalidStateError. Each invoke() gets its own service scope, context and
cancellation token; the compiled chain and middleware instances are shared.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Generic, TYPE_CHECKING

from .cancellation import CancellationToken, CancellationTokenSource
from .context import VOID, RequestContext, TRequest, TResponse, Void
from .exceptions import InvalidStateError, MiddlewareConfigurationError, OperationCancelledError
from .middleware.adapter import MiddlewareAdapter
from .middleware.base import InlineMiddleware, MiddlewareTransform, RequestDelegate
from .utils.ids import new_request_id

if TYPE_CHECKING:
    from .services import ServiceResolver

logger = logging.getLogger(__name__)


async def terminal(context: RequestContext[Any, Any]) -> None:
    """Innermost unit: fails with OperationCancelledError if cancellation was signaled."""
    if context.cancellation.is_cancellation_requested:
        raise OperationCancelledError()


def _timeout_seconds(timeout: float | timedelta | None) -> float | None:
    if timeout is None:
        return None
    seconds = timeout.total_seconds() if isinstance(timeout, timedelta) else float(timeout)
    if seconds < 0:
        raise ValueError("timeout must be >= 0 (use None for no timeout)")
    return seconds


def _is_inline(fn: Any) -> bool:
    """True for `(context, next)` callables.

    Two required positional parameters always qualify; an `async def` also
    qualifies when `next` (or the context) has a default.
    """
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return False
    positional = [
        p for p in signature.parameters.values()
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    ]
    required = sum(1 for p in positional if p.default is inspect.Parameter.empty)
    if required == 2:
        return True
    return inspect.iscoroutinefunction(fn) and required <= 2 <= len(positional)


async def _close_scope(scope: Any) -> None:
    aclose = getattr(scope, "aclose", None)
    if callable(aclose):
        await aclose()
        return
    close = getattr(scope, "close", None)
    if callable(close):
        close()


class Pipeline(Generic[TRequest, TResponse]):
    """An ordered middleware chain and the invoker that runs requests through it.

    Args:
        services: Root resolver; a scope is created from it per invocation
        timeout: Per-invocation timeout in seconds (or timedelta); None = no timeout
        response_type: Pass Void for pipelines that produce no response
        owns_services: Close the resolver when the pipeline is closed
        logger: Logger for pipeline events (default: this module's logger)
    """

    def __init__(
        self,
        services: "ServiceResolver",
        timeout: float | timedelta | None = None,
        *,
        response_type: type | None = None,
        owns_services: bool = False,
        logger: logging.Logger | None = None,
    ):
        if services is None:
            raise ValueError("services must not be None")
        self.services = services
        self.timeout = _timeout_seconds(timeout)
        self.response_type = response_type
        self._owns_services = owns_services
        self._logger = logger or logging.getLogger(__name__)
        self._components: list[tuple[str, MiddlewareTransform]] = []
        self._handler: RequestDelegate | None = None
        self._lock = threading.Lock()

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    # ===== Registration =====

    @property
    def is_prepared(self) -> bool:
        return self._handler is not None

    @property
    def compiled(self) -> RequestDelegate | None:
        """The compiled chain, or None before compilation."""
        return self._handler

    @property
    def middleware(self) -> tuple[str, ...]:
        """Names of the registered components, in registration order."""
        return tuple(name for name, _ in self._components)

    def _append(self, name: str, transform: MiddlewareTransform) -> "Pipeline[TRequest, TResponse]":
        with self._lock:
            if self._handler is not None:
                raise InvalidStateError(
                    f"Cannot register {name}: the pipeline has already been compiled"
                )
            self._components.append((name, transform))
        return self

    def use_transform(self, transform: MiddlewareTransform) -> "Pipeline[TRequest, TResponse]":
        """Append a raw `next -> unit` transform."""
        if not callable(transform):
            raise TypeError("transform must be callable")
        return self._append(getattr(transform, "__qualname__", repr(transform)), transform)

    def use_inline(self, middleware: InlineMiddleware) -> "Pipeline[TRequest, TResponse]":
        """Append an `async (context, next)` function."""
        if not callable(middleware):
            raise TypeError("middleware must be callable")

        def transform(next: RequestDelegate) -> RequestDelegate:
            async def unit(context: RequestContext[Any, Any]) -> None:
                await middleware(context, next)
            return unit

        return self._append(getattr(middleware, "__qualname__", repr(middleware)), transform)

    def use_middleware(self, middleware_type: type, *args: Any, **kwargs: Any) -> "Pipeline[TRequest, TResponse]":
        """Append a middleware class.

        The class is constructed once at compile time with the next unit
        first, then args/kwargs, then services from the root resolver.
        """
        adapter = MiddlewareAdapter(middleware_type, self.services, args, kwargs)
        return self._append(adapter.name, adapter)

    def use(self, component: Any, *args: Any, **kwargs: Any) -> "Pipeline[TRequest, TResponse]":
        """Append a component, dispatching on its shape.

        - a class is registered with use_middleware(component, *args, **kwargs)
        - a callable taking `(context, next)` is an inline middleware
        - any other callable is a raw transform
        """
        if inspect.isclass(component):
            return self.use_middleware(component, *args, **kwargs)
        if args or kwargs:
            raise TypeError("Constructor arguments are only accepted for middleware classes")
        if _is_inline(component):
            return self.use_inline(component)
        return self.use_transform(component)

    # ===== Compilation =====

    def prepare(self) -> "Pipeline[TRequest, TResponse]":
        """Compile the chain if it has not been compiled yet. Idempotent."""
        if self._handler is not None:
            return self
        with self._lock:
            if self._handler is None:
                self._handler = self._build()
        return self

    def _build(self) -> RequestDelegate:
        handler: RequestDelegate = terminal
        for name, transform in reversed(self._components):
            handler = transform(handler)
            if not callable(handler):
                raise MiddlewareConfigurationError(name, "transform did not return a callable unit")

        self._logger.debug(
            "pipeline_compiled",
            extra={"middleware_count": len(self._components), "middleware": list(self.middleware)},
        )
        return handler

    # ===== Invocation =====

    def _initial_response(self) -> Any:
        return VOID if self.response_type is Void else None

    async def invoke(
        self,
        request: TRequest,
        cancellation: CancellationToken | None = None,
    ) -> TResponse | None:
        """Run one request through the pipeline and return context.response.

        Args:
            request: The request payload (must not be None)
            cancellation: Optional caller token, linked with the timeout

        Raises:
            OperationCancelledError: If cancellation reached the terminal unit
            Exception: Anything raised by middleware, unmodified
        """
        if request is None:
            raise ValueError("request must not be None")

        handler = self._handler
        if handler is None:
            handler = self.prepare()._handler

        scope = self.services.create_scope()
        timeout_source: CancellationTokenSource | None = None
        token = cancellation or CancellationToken.NONE
        start_time = time.monotonic()
        context: RequestContext[TRequest, TResponse] | None = None
        try:
            if self.timeout is not None:
                timeout_source = CancellationTokenSource.create_linked(token)
                timeout_source.cancel_after(self.timeout)
                token = timeout_source.token

            context = RequestContext(
                request,
                new_request_id(),
                datetime.now(timezone.utc),
                scope,
                token,
                response=self._initial_response(),
            )

            await handler(context)
            return context.response
        except BaseException as e:
            self._logger.debug(
                "pipeline_invocation_failed",
                extra={
                    "request_id": str(context.id) if context else None,
                    "error": type(e).__name__,
                    "duration_ms": round((time.monotonic() - start_time) * 1000, 2),
                },
            )
            raise
        finally:
            if timeout_source is not None:
                timeout_source.close()
            await _close_scope(scope)

    async def __call__(self, request: TRequest, cancellation: CancellationToken | None = None) -> TResponse | None:
        return await self.invoke(request, cancellation)

    def invoke_sync(self, request: TRequest, cancellation: CancellationToken | None = None) -> TResponse | None:
        """Run invoke() to completion on a new event loop, for synchronous hosts."""
        return asyncio.run(self.invoke(request, cancellation))

    # ===== Lifetime =====

    def close(self) -> None:
        """Dispose the root resolver if this pipeline owns it."""
        if self._owns_services:
            close = getattr(self.services, "close", None)
            if callable(close):
                close()

    async def aclose(self) -> None:
        if self._owns_services:
            await _close_scope(self.services)

    def __enter__(self) -> "Pipeline[TRequest, TResponse]":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "compiled" if self.is_prepared else "open"
        return f"Pipeline({state}, middleware={list(self.middleware)!r}, timeout={self.timeout!r})"
