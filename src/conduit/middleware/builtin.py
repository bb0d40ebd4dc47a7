"""Built-in middleware for string pipelines and error handling."""

import logging
from typing import Any, Callable

from ..context import RequestContext
from ..exceptions import OperationCancelledError
from .base import MiddlewareBase, RequestDelegate

logger = logging.getLogger(__name__)


class ToLowerMiddleware(MiddlewareBase):
    """Sets the response to the lower-cased request."""

    name = "lower"

    async def invoke(self, context: RequestContext[str, str]) -> None:
        context.cancellation.raise_if_cancellation_requested()
        context.response = context.request.lower()
        await self.next(context)


class ToUpperMiddleware(MiddlewareBase):
    """Sets the response to the upper-cased request."""

    name = "upper"

    async def invoke(self, context: RequestContext[str, str]) -> None:
        context.cancellation.raise_if_cancellation_requested()
        context.response = context.request.upper()
        await self.next(context)


class PrefixMiddleware(MiddlewareBase):
    """Sets the response to `{prefix}-{lower-cased request}`."""

    name = "prefix"

    def __init__(self, next: RequestDelegate, prefix: str):
        super().__init__(next)
        self.prefix = prefix

    async def invoke(self, context: RequestContext[str, str]) -> None:
        context.cancellation.raise_if_cancellation_requested()
        context.response = f"{self.prefix}-{context.request.lower()}"
        await self.next(context)


ErrorResponseFactory = Callable[[RequestContext[Any, Any], Exception], Any]


class ErrorHandlerMiddleware(MiddlewareBase):
    """Turns downstream exceptions into an error response.

    Register it first to cover the whole chain. OperationCancelledError is
    re-raised unless it is listed in `exceptions` explicitly.

    Args:
        next: Next unit in the chain
        error_response: Builds the response from (context, exception)
        exceptions: Exception types to handle
    """

    name = "error-handler"

    def __init__(
        self,
        next: RequestDelegate,
        error_response: ErrorResponseFactory,
        exceptions: tuple[type[Exception], ...] = (Exception,),
    ):
        super().__init__(next)
        if not callable(error_response):
            raise TypeError("error_response must be callable")
        self.error_response = error_response
        self.exceptions = tuple(exceptions)
        self.handles_cancellation = OperationCancelledError in self.exceptions

    async def invoke(self, context: RequestContext[Any, Any]) -> None:
        try:
            await self.next(context)
        except self.exceptions as e:
            if isinstance(e, OperationCancelledError) and not self.handles_cancellation:
                raise
            logger.error(
                f"Request {context.id} failed: {e}",
                exc_info=True,
                extra={"request_id": str(context.id), "error_type": type(e).__name__},
            )
            context.response = self.error_response(context, e)
