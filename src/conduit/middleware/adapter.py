"""Adapts middleware classes into chain units.

A middleware class does not need a common base class; it only has to
satisfy the Middleware protocol (see base.py). Everything that needs
signature inspection happens once, when the pipeline compiles:

1. The class is checked for an async `invoke` whose first parameter is the
   context; violations raise MiddlewareConfigurationError.
2. One instance is constructed with `next` as the first argument, the
   explicit registration arguments after it, and the remaining constructor
   parameters resolved from the root (singleton) resolver.
3. The bound `invoke` is captured. If it declares extra parameters a small
   closure resolves them from context.services on each call; otherwise the
   bound method itself becomes the unit.
"""

from __future__ import annotations

import inspect
import logging
import typing
from typing import Any, TYPE_CHECKING

from ..activation import ParameterPlan, bind_arguments, plan_parameters, resolve_parameter
from ..context import RequestContext
from ..exceptions import MiddlewareConfigurationError, ServiceResolutionError
from .base import INVOKE_METHOD, Middleware, RequestDelegate

if TYPE_CHECKING:
    from ..services import ServiceResolver

logger = logging.getLogger(__name__)


def _is_context_annotation(annotation: Any) -> bool:
    origin = typing.get_origin(annotation) or annotation
    return inspect.isclass(origin) and issubclass(origin, RequestContext)


class MiddlewareAdapter:
    """A MiddlewareTransform built from a middleware class.

    Calling the adapter with the next unit constructs the middleware and
    returns the unit for its position in the chain.
    """

    def __init__(
        self,
        middleware_type: type,
        services: "ServiceResolver",
        args: tuple[Any, ...] = (),
        kwargs: dict[str, Any] | None = None,
        method_name: str = INVOKE_METHOD,
    ):
        if not inspect.isclass(middleware_type):
            raise MiddlewareConfigurationError(
                repr(middleware_type), "middleware must be a class"
            )
        self.middleware_type = middleware_type
        self.services = services
        self.args = tuple(args)
        self.kwargs = dict(kwargs or {})
        self.method_name = method_name

    @property
    def name(self) -> str:
        return self.middleware_type.__qualname__

    def _error(self, reason: str) -> MiddlewareConfigurationError:
        return MiddlewareConfigurationError(self.name, reason)

    def inspect_invoke(self) -> list[ParameterPlan]:
        """Validate the invoke method and return plans for its injected parameters.

        Raises:
            MiddlewareConfigurationError: If the method is missing, not async,
                or does not take the context first
        """
        if self.method_name == INVOKE_METHOD and not issubclass(self.middleware_type, Middleware):
            raise self._error(f"'{self.method_name}' not present on class")

        method = inspect.getattr_static(self.middleware_type, self.method_name, None)
        if method is None:
            raise self._error(f"'{self.method_name}' not present on class")
        if isinstance(method, (staticmethod, classmethod)) or not inspect.isfunction(method):
            raise self._error(f"'{self.method_name}' must be an instance method")
        if not inspect.iscoroutinefunction(method):
            raise self._error(f"'{self.method_name}' must be declared 'async def'")

        plans = plan_parameters(method)[1:]  # drop self
        if not plans or plans[0].is_variadic:
            raise self._error(f"'{self.method_name}' must accept the context as its first parameter")

        context_plan = plans[0]
        if context_plan.service_type is not None and not _is_context_annotation(context_plan.service_type):
            raise self._error(
                f"first parameter of '{self.method_name}' must be RequestContext, "
                f"not {context_plan.service_type!r}"
            )

        injected = [p for p in plans[1:] if not p.is_variadic]
        for plan in injected:
            if plan.service_type is None and not plan.has_default:
                raise self._error(
                    f"parameter '{plan.name}' of '{self.method_name}' needs a type annotation to be injected"
                )
        return injected

    def _check_explicit_arguments(self, ctor_plans: list[ParameterPlan]) -> None:
        positional = [p for p in ctor_plans[1:] if not p.is_variadic
                      and p.kind is not inspect.Parameter.KEYWORD_ONLY]
        for plan, value in zip(positional, self.args):
            if value is None and not (plan.has_default or plan.optional):
                raise self._error(f"argument '{plan.name}' must not be None")
        by_name = {p.name: p for p in ctor_plans}
        for key, value in self.kwargs.items():
            plan = by_name.get(key)
            if value is None and plan is not None and not (plan.has_default or plan.optional):
                raise self._error(f"argument '{key}' must not be None")

    def construct(self, next: RequestDelegate) -> Any:
        """Create the middleware instance for one chain position."""
        ctor_plans = plan_parameters(self.middleware_type)
        if not ctor_plans or ctor_plans[0].kind is inspect.Parameter.KEYWORD_ONLY:
            raise self._error("constructor must accept the next unit as its first parameter")
        self._check_explicit_arguments(ctor_plans)

        try:
            call_args, call_kwargs = bind_arguments(
                ctor_plans, self.services, (next, *self.args), self.kwargs
            )
        except (TypeError, ServiceResolutionError) as e:
            raise self._error(f"cannot construct: {e}") from e

        return self.middleware_type(*call_args, **call_kwargs)

    def __call__(self, next: RequestDelegate) -> RequestDelegate:
        injected = self.inspect_invoke()
        instance = self.construct(next)
        method = getattr(instance, self.method_name)

        logger.debug(
            "middleware_constructed",
            extra={"middleware": self.name, "injected": [p.name for p in injected]},
        )

        if not injected:
            return method

        positional = [p for p in injected if p.kind is not inspect.Parameter.KEYWORD_ONLY]
        keyword = [p for p in injected if p.kind is inspect.Parameter.KEYWORD_ONLY]

        async def unit(context: RequestContext[Any, Any]) -> None:
            services = context.services
            args = [resolve_parameter(p, services) for p in positional]
            kwargs = {p.name: resolve_parameter(p, services) for p in keyword}
            await method(context, *args, **kwargs)

        unit.__qualname__ = f"{self.name}.{self.method_name}"
        return unit

    def __repr__(self) -> str:
        return f"MiddlewareAdapter({self.name}, args={self.args!r}, kwargs={self.kwargs!r})"
