"""AWS Lambda host for SQS events.

Each record of an SQS event runs through a void pipeline as one request.
Records whose invocation raises are reported back to Lambda as a partial
batch response, so only those messages become visible again:

    {"batchItemFailures": [{"itemIdentifier": "<messageId>"}]}

Build the handler once per cold start:

    handler = SqsEventHandler(pipeline)

    def lambda_handler(event, context):
        return handler(event, context)
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..builder import PipelineBuilder
from ..context import RequestContext, Void
from ..middleware.base import MiddlewareBase, RequestDelegate
from ..pipeline import Pipeline
from .lambda_context import deadline_source, describe

logger = logging.getLogger(__name__)


class SqsMessage(BaseModel):
    """A single SQS record as delivered to Lambda."""
    model_config = ConfigDict(populate_by_name=True)

    message_id: str = Field(alias="messageId")
    receipt_handle: str | None = Field(None, alias="receiptHandle")
    body: str | None = None
    attributes: dict[str, str] = Field(default_factory=dict)
    message_attributes: dict[str, Any] = Field(default_factory=dict, alias="messageAttributes")
    md5_of_body: str | None = Field(None, alias="md5OfBody")
    event_source: str | None = Field(None, alias="eventSource")
    event_source_arn: str | None = Field(None, alias="eventSourceARN")
    aws_region: str | None = Field(None, alias="awsRegion")


class SqsEvent(BaseModel):
    """The SQS event payload."""
    model_config = ConfigDict(populate_by_name=True)

    records: list[SqsMessage] = Field(default_factory=list, alias="Records")


@dataclass(frozen=True)
class SqsMessageContext:
    """Request type of SQS pipelines: the record plus the Lambda context."""
    message: SqsMessage
    lambda_context: Any


class InvalidMessageError(ValueError):
    """Raised by BodyCheckMiddleware for messages that cannot be processed."""


class MessageLoggerMiddleware(MiddlewareBase):
    """Logs the outcome and duration of each SQS message."""

    name = "sqs-message-logger"

    def __init__(self, next: RequestDelegate, logger: logging.Logger | None = None):
        super().__init__(next)
        self.logger = logger or logging.getLogger(__name__)

    async def invoke(self, context: RequestContext[SqsMessageContext, Void]) -> None:
        message_id = context.request.message.message_id
        start_time = time.monotonic()
        try:
            context.cancellation.raise_if_cancellation_requested()
            await self.next(context)
        except Exception:
            self.logger.error(
                f"Error processing SQS message {message_id}",
                exc_info=True,
                extra={"message_id": message_id, "request_id": str(context.id)},
            )
            raise
        finally:
            self.logger.info(
                "SQS message processed",
                extra={
                    "message_id": message_id,
                    "request_id": str(context.id),
                    "elapsed_ms": round((time.monotonic() - start_time) * 1000, 2),
                },
            )


class BodyCheckMiddleware(MiddlewareBase):
    """Rejects messages with an empty or blank body."""

    name = "sqs-body-check"

    async def invoke(self, context: RequestContext[SqsMessageContext, Void]) -> None:
        context.cancellation.raise_if_cancellation_requested()

        message = context.request.message
        if not message.body or not message.body.strip():
            raise InvalidMessageError(f"Message {message.message_id} has an empty body")

        await self.next(context)


class SqsEventHandler:
    """Runs every record of an SQS event through a void pipeline.

    Args:
        pipeline: Pipeline with request type SqsMessageContext
        safety_margin_ms: Time kept back from the Lambda deadline
    """

    def __init__(self, pipeline: Pipeline[SqsMessageContext, Void], safety_margin_ms: int = 500):
        self.pipeline = pipeline.prepare()
        self.safety_margin_ms = safety_margin_ms

    async def handle(self, event: dict[str, Any] | SqsEvent, lambda_context: Any) -> dict[str, Any]:
        """Process an event and return the partial batch response."""
        sqs_event = event if isinstance(event, SqsEvent) else SqsEvent.model_validate(event)
        failures: list[dict[str, str]] = []
        start_time = time.monotonic()

        source = deadline_source(lambda_context, self.safety_margin_ms)
        try:
            for message in sqs_event.records:
                try:
                    await self.pipeline.invoke(
                        SqsMessageContext(message, lambda_context),
                        source.token if source is not None else None,
                    )
                except Exception as e:
                    logger.warning(
                        f"SQS message {message.message_id} failed: {e}",
                        extra={"message_id": message.message_id},
                    )
                    failures.append({"itemIdentifier": message.message_id})
        finally:
            if source is not None:
                source.close()

        logger.info(
            "SQS event processed",
            extra={
                **describe(lambda_context),
                "message_count": len(sqs_event.records),
                "failure_count": len(failures),
                "elapsed_ms": round((time.monotonic() - start_time) * 1000, 2),
            },
        )
        return {"batchItemFailures": failures}

    def __call__(self, event: dict[str, Any], lambda_context: Any) -> dict[str, Any]:
        return asyncio.run(self.handle(event, lambda_context))


def create_handler(builder: PipelineBuilder | None = None) -> SqsEventHandler:
    """Build the default SQS handler: message logging, then body validation."""
    builder = builder or PipelineBuilder(response_type=Void)
    pipeline = (
        builder.build()
        .use(MessageLoggerMiddleware)
        .use(BodyCheckMiddleware)
    )
    return SqsEventHandler(pipeline)


_handler: SqsEventHandler | None = None


def lambda_handler(event, context):
    """Lambda handler for SQS events."""
    global _handler
    if _handler is None:
        _handler = create_handler()
    return _handler(event, context)
