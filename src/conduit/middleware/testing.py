from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from ..context import RequestContext
from .base import MiddlewareBase, RequestDelegate

_UNSET: Any = object()


@dataclass
class CallLog:
    """Shared record of middleware activity for assertions in tests.

    Middleware instances are created by the pipeline, so tests hand a
    CallLog to the registration and inspect it afterwards.
    """
    events: list[str] = field(default_factory=list)
    contexts: list[RequestContext[Any, Any]] = field(default_factory=list)
    instances: list[Any] = field(default_factory=list)

    def record(self, event: str) -> None:
        self.events.append(event)


class RecordingMiddleware(MiddlewareBase):
    """Records `{name}:pre` / `{name}:post` around the downstream call.

    Useful for verifying call order.
    """

    def __init__(self, next: RequestDelegate, log: CallLog, name: str = "recording"):
        super().__init__(next)
        self.log = log
        self.label = name
        log.instances.append(self)

    async def invoke(self, context: RequestContext[Any, Any]) -> None:
        self.log.record(f"{self.label}:pre")
        self.log.contexts.append(context)
        await self.next(context)
        self.log.record(f"{self.label}:post")


class MockMiddleware(MiddlewareBase):
    """Mock middleware for testing.

    Args:
        next: Next unit
        log: Optional CallLog receiving a `{name}` event per call
        response: Value assigned to context.response before delegating
        should_raise: Exception raised instead of delegating
        short_circuit: Complete without calling next
        name: Label used in the CallLog
    """

    def __init__(
        self,
        next: RequestDelegate,
        log: CallLog | None = None,
        response: Any = _UNSET,
        should_raise: Exception | None = None,
        short_circuit: bool = False,
        name: str = "mock",
    ):
        super().__init__(next)
        self.log = log
        self._response = response
        self._should_raise = should_raise
        self._short_circuit = short_circuit
        self.label = name
        self.call_count = 0
        self.last_context: RequestContext[Any, Any] | None = None
        if log is not None:
            log.instances.append(self)

    async def invoke(self, context: RequestContext[Any, Any]) -> None:
        self.call_count += 1
        self.last_context = context
        if self.log is not None:
            self.log.record(self.label)
            self.log.contexts.append(context)

        if self._should_raise:
            raise self._should_raise

        if self._response is not _UNSET:
            context.response = self._response

        if not self._short_circuit:
            await self.next(context)


class CancellationAwareMiddleware(MiddlewareBase):
    """Waits `delay` seconds, then delegates only if not cancelled.

    Mirrors the poll-and-branch style: a cancelled request completes without
    a response instead of raising.
    """

    def __init__(self, next: RequestDelegate, delay: float = 0.0, log: CallLog | None = None):
        super().__init__(next)
        self.delay = delay
        self.log = log

    async def invoke(self, context: RequestContext[Any, Any]) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if context.cancellation.is_cancellation_requested:
            if self.log is not None:
                self.log.record("cancelled")
            return
        await self.next(context)
