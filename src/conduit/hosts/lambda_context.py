"""Helpers shared by the AWS Lambda host adapters."""

import logging
from typing import Any

from ..cancellation import CancellationTokenSource

logger = logging.getLogger(__name__)

# Time kept back from the Lambda deadline so the handler can still respond
DEFAULT_SAFETY_MARGIN_MS = 500


def remaining_time_ms(lambda_context: Any) -> int | None:
    """Milliseconds left before Lambda stops the invocation, if known."""
    get_remaining = getattr(lambda_context, "get_remaining_time_in_millis", None)
    if not callable(get_remaining):
        return None
    return int(get_remaining())


def deadline_source(
    lambda_context: Any,
    safety_margin_ms: int = DEFAULT_SAFETY_MARGIN_MS,
) -> CancellationTokenSource | None:
    """Create a source that cancels shortly before the Lambda deadline.

    Returns None when the context does not report its remaining time.
    """
    remaining = remaining_time_ms(lambda_context)
    if remaining is None:
        return None
    delay = max(remaining - safety_margin_ms, 0) / 1000
    logger.debug(f"Lambda deadline in {remaining}ms, cancelling after {delay:.3f}s")
    return CancellationTokenSource(delay)


def describe(lambda_context: Any) -> dict[str, Any]:
    """Log fields identifying the Lambda invocation."""
    return {
        "aws_request_id": getattr(lambda_context, "aws_request_id", None),
        "function_arn": getattr(lambda_context, "invoked_function_arn", None),
    }
