from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, ClassVar, Protocol, TYPE_CHECKING, runtime_checkable

if TYPE_CHECKING:
    from ..context import RequestContext

# A unit of the chain: receives the context and completes or delegates
RequestDelegate = Callable[["RequestContext[Any, Any]"], Awaitable[None]]

# The composition primitive: wraps the downstream unit into a new unit
MiddlewareTransform = Callable[[RequestDelegate], RequestDelegate]

# Convenience form: (context, next) -> awaitable
InlineMiddleware = Callable[["RequestContext[Any, Any]", RequestDelegate], Awaitable[None]]

INVOKE_METHOD = "invoke"


@runtime_checkable
class Middleware(Protocol):
    """Capability required of a class registered with Pipeline.use_middleware().

    The constructor's first parameter receives the next unit of the chain.
    `invoke` must be `async def` and take the context as its first
    parameter; any further parameters are resolved per invocation from
    context.services by their type annotations.

    Example:
        class StampMiddleware:
            def __init__(self, next: RequestDelegate, clock: Clock):
                self.next = next
                self.clock = clock

            async def invoke(self, context: RequestContext, audit: AuditLog) -> None:
                audit.record(context.id, self.clock.now())
                await self.next(context)
    """

    async def invoke(self, context: "RequestContext[Any, Any]", /, *args: Any) -> None:
        ...


class MiddlewareBase(ABC):
    """Optional base class for class-based middleware.

    Stores the next unit as `self.next`. One instance is created per
    position when the pipeline compiles and is shared by all invocations,
    so keep per-request state on the context, not on the instance.

    Attributes:
        name: Name used in logs and discovery listings (default: class name)
    """

    name: ClassVar[str | None] = None

    def __init__(self, next: RequestDelegate):
        if next is None:
            raise ValueError("next must not be None")
        self.next = next

    @abstractmethod
    async def invoke(self, context: "RequestContext[Any, Any]") -> None:
        """Process the context, delegating to self.next unless short-circuiting."""
        pass

    @classmethod
    def get_metadata(cls) -> dict[str, Any]:
        """Return middleware metadata for introspection."""
        return {
            "name": cls.name or cls.__name__,
            "description": (cls.__doc__ or "").strip().splitlines()[0] if cls.__doc__ else None,
            "module": cls.__module__,
        }
