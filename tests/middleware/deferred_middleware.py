"""Middleware whose annotations are postponed strings.

RequestContext is only imported for type checkers, so its annotation cannot
be evaluated at runtime while the injected service annotation can.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from conduit.middleware.base import MiddlewareBase

if TYPE_CHECKING:
    from conduit.context import RequestContext


class Greeting:
    def __init__(self):
        self.text = "hi"


class GreetingMiddleware(MiddlewareBase):
    async def invoke(self, context: RequestContext[str, str], greeting: Greeting) -> None:
        context.response = f"{greeting.text}-{context.request}"
        await self.next(context)
