"""AWS Lambda host for API Gateway HTTP API (payload format 2.0) events.

The proxy event is parsed into ApiGatewayHttpRequest and paired with the
Lambda context as the pipeline request. Middleware sets an
ApiGatewayProxyResponse on the context; the handler serialises it with the
camelCase field names API Gateway expects.

    - response left unset      -> 204 No Content
    - OperationCancelledError  -> 504 Gateway Timeout
    - any other exception      -> propagates (register ErrorHandlerMiddleware
                                  first to turn it into a response)
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..builder import PipelineBuilder
from ..context import RequestContext
from ..exceptions import OperationCancelledError
from ..middleware.base import MiddlewareBase
from ..middleware.builtin import ErrorHandlerMiddleware
from ..pipeline import Pipeline
from .lambda_context import deadline_source, describe, remaining_time_ms

logger = logging.getLogger(__name__)


class HttpDescription(BaseModel):
    method: str = "GET"
    path: str = "/"
    protocol: str | None = None
    source_ip: str | None = Field(None, alias="sourceIp")
    user_agent: str | None = Field(None, alias="userAgent")

    model_config = ConfigDict(populate_by_name=True)


class ApiGatewayRequestContext(BaseModel):
    request_id: str | None = Field(None, alias="requestId")
    account_id: str | None = Field(None, alias="accountId")
    api_id: str | None = Field(None, alias="apiId")
    stage: str | None = None
    http: HttpDescription = Field(default_factory=HttpDescription)

    model_config = ConfigDict(populate_by_name=True)


class ApiGatewayHttpRequest(BaseModel):
    """HTTP API v2 proxy event."""
    version: str = "2.0"
    route_key: str | None = Field(None, alias="routeKey")
    raw_path: str = Field("/", alias="rawPath")
    raw_query_string: str = Field("", alias="rawQueryString")
    headers: dict[str, str] = Field(default_factory=dict)
    query_string_parameters: dict[str, str] | None = Field(None, alias="queryStringParameters")
    path_parameters: dict[str, str] | None = Field(None, alias="pathParameters")
    request_context: ApiGatewayRequestContext = Field(
        default_factory=ApiGatewayRequestContext, alias="requestContext"
    )
    body: str | None = None
    is_base64_encoded: bool = Field(False, alias="isBase64Encoded")

    model_config = ConfigDict(populate_by_name=True)


class ApiGatewayProxyResponse(BaseModel):
    """HTTP API v2 proxy response."""
    status_code: int = Field(200, alias="statusCode")
    headers: dict[str, str] = Field(default_factory=dict)
    body: str = ""
    is_base64_encoded: bool = Field(False, alias="isBase64Encoded")

    model_config = ConfigDict(populate_by_name=True)

    def to_lambda(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


@dataclass(frozen=True)
class ApiGatewayProxyContext:
    """Request type of API Gateway pipelines: the HTTP request plus the Lambda context."""
    http_request: ApiGatewayHttpRequest
    lambda_context: Any


ApiContext = RequestContext[ApiGatewayProxyContext, ApiGatewayProxyResponse]


class EchoMiddleware(MiddlewareBase):
    """Responds with 200 and `Echo(<body>)` as plain text."""

    name = "echo"

    async def invoke(self, context: ApiContext) -> None:
        context.cancellation.raise_if_cancellation_requested()

        context.response = ApiGatewayProxyResponse(
            status_code=200,
            headers={"Content-Type": "text/plain"},
            body=f"Echo({context.request.http_request.body or ''})",
        )
        await self.next(context)


class AccessLogMiddleware(MiddlewareBase):
    """Logs path, status and timing of each HTTP request."""

    name = "access-log"

    async def invoke(self, context: ApiContext) -> None:
        http_request = context.request.http_request
        try:
            context.cancellation.raise_if_cancellation_requested()
            await self.next(context)
        except Exception:
            logger.error("Error processing API Gateway request", exc_info=True)
            raise
        finally:
            logger.info(
                f"{http_request.request_context.http.method} {http_request.raw_path}",
                extra={
                    "gateway_request_id": http_request.request_context.request_id,
                    "request_id": str(context.id),
                    "status_code": context.response.status_code if context.response else None,
                    "elapsed_ms": round(context.elapsed.total_seconds() * 1000, 2),
                    "remaining_ms": remaining_time_ms(context.request.lambda_context),
                },
            )


def internal_error_response(context: RequestContext[Any, Any], error: Exception) -> ApiGatewayProxyResponse:
    return ApiGatewayProxyResponse(
        status_code=500,
        headers={"Content-Type": "application/json"},
        body='{"error": "Internal server error"}',
    )


class ApiGatewayHandler:
    """Runs API Gateway HTTP API events through a pipeline.

    Args:
        pipeline: Pipeline with request type ApiGatewayProxyContext
        safety_margin_ms: Time kept back from the Lambda deadline
    """

    def __init__(
        self,
        pipeline: Pipeline[ApiGatewayProxyContext, ApiGatewayProxyResponse],
        safety_margin_ms: int = 500,
    ):
        self.pipeline = pipeline.prepare()
        self.safety_margin_ms = safety_margin_ms

    async def handle(self, event: dict[str, Any] | ApiGatewayHttpRequest, lambda_context: Any) -> dict[str, Any]:
        """Process an event and return the proxy response dict."""
        http_request = (
            event if isinstance(event, ApiGatewayHttpRequest)
            else ApiGatewayHttpRequest.model_validate(event)
        )

        source = deadline_source(lambda_context, self.safety_margin_ms)
        try:
            response = await self.pipeline.invoke(
                ApiGatewayProxyContext(http_request, lambda_context),
                source.token if source is not None else None,
            )
        except OperationCancelledError:
            logger.warning(
                f"API Gateway request {http_request.raw_path} timed out",
                extra=describe(lambda_context),
            )
            response = ApiGatewayProxyResponse(status_code=504)
        finally:
            if source is not None:
                source.close()

        if response is None:
            response = ApiGatewayProxyResponse(status_code=204)
        return response.to_lambda()

    def __call__(self, event: dict[str, Any], lambda_context: Any) -> dict[str, Any]:
        return asyncio.run(self.handle(event, lambda_context))


def create_handler(builder: PipelineBuilder | None = None) -> ApiGatewayHandler:
    """Build the default handler: error handling, access log, echo."""
    builder = builder or PipelineBuilder()
    pipeline = (
        builder.build()
        .use(ErrorHandlerMiddleware, internal_error_response)
        .use(AccessLogMiddleware)
        .use(EchoMiddleware)
    )
    return ApiGatewayHandler(pipeline)


_handler: ApiGatewayHandler | None = None


def lambda_handler(event, context):
    """Lambda handler for API Gateway HTTP API events."""
    global _handler
    if _handler is None:
        _handler = create_handler()
    return _handler(event, context)
