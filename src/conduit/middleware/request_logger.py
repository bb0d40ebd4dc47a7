"""Request completion logging.

Logs one record per request once the downstream chain returns, carrying the
request id and elapsed time as structured fields. Register it first so the
elapsed time covers the whole chain:

    use_request_logging(
        pipeline,
        level=logging.DEBUG,
        enrich=lambda fields, context: fields.update(request=context.request),
    )
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Callable

from ..context import RequestContext
from ..logging_config import safe_extra
from .base import MiddlewareBase, RequestDelegate

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE_TEMPLATE = "Request {request_id} completed in {elapsed_ms:.4f} ms"


def default_message_properties(context: RequestContext[Any, Any]) -> dict[str, Any]:
    """Fields available to the message template and attached as `extra`."""
    return {
        "request_id": str(context.id),
        "elapsed_ms": context.elapsed.total_seconds() * 1000,
    }


@dataclass
class RequestLoggerOptions:
    """Options for RequestLoggerMiddleware.

    Attributes:
        logger: Logger to write to (default: this module's logger)
        level: Level for successful requests; failures always log at ERROR
        message_template: str.format template over the message properties
        get_message_properties: Builds the base fields for a request
        enrich: Called with (fields, context) to add or change fields; keys
            that clash with LogRecord attributes are attached as `field_<key>`
        rethrow: Re-raise downstream exceptions after logging them
    """
    logger: logging.Logger | None = None
    level: int = logging.INFO
    message_template: str = DEFAULT_MESSAGE_TEMPLATE
    get_message_properties: Callable[[RequestContext[Any, Any]], dict[str, Any]] = default_message_properties
    enrich: Callable[[dict[str, Any], RequestContext[Any, Any]], None] | None = None
    rethrow: bool = True


class RequestLoggerMiddleware(MiddlewareBase):
    """Logs request completion with id and elapsed time."""

    name = "request-logger"

    def __init__(self, next: RequestDelegate, options: RequestLoggerOptions | None = None):
        super().__init__(next)
        self.options = options or RequestLoggerOptions()
        self.logger = self.options.logger or logger

    async def invoke(self, context: RequestContext[Any, Any]) -> None:
        try:
            context.cancellation.raise_if_cancellation_requested()
            await self.next(context)
        except Exception as e:
            self._log_completed(context, e)
            if self.options.rethrow:
                raise
            return

        self._log_completed(context, None)

    def _log_completed(self, context: RequestContext[Any, Any], error: Exception | None) -> None:
        level = logging.ERROR if error is not None else self.options.level
        if not self.logger.isEnabledFor(level):
            return

        fields = dict(self.options.get_message_properties(context))
        if self.options.enrich is not None:
            self.options.enrich(fields, context)

        self.logger.log(
            level,
            self.options.message_template.format(**fields),
            extra=safe_extra(fields),
            exc_info=error,
        )


def use_request_logging(pipeline, options: RequestLoggerOptions | None = None, **overrides: Any):
    """Register RequestLoggerMiddleware on a pipeline.

    Keyword overrides replace fields of `options` (or of the defaults).
    """
    options = dataclasses.replace(options or RequestLoggerOptions(), **overrides)
    return pipeline.use_middleware(RequestLoggerMiddleware, options)
