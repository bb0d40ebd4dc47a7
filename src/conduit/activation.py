"""Signature inspection and constructor injection.

Shared by the service container (implementation types) and the middleware
adapter (middleware constructors and invoke methods). Inspection produces a
list of ParameterPlan entries once; resolving a plan against a resolver is
the only work done on the hot path.
"""

from __future__ import annotations

import inspect
import logging
import types
import typing
from dataclasses import dataclass
from typing import Any, Callable, TYPE_CHECKING, Union

from .exceptions import ServiceResolutionError

if TYPE_CHECKING:
    from .services import ServiceResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParameterPlan:
    """How to fill one parameter of a constructor or method."""
    name: str
    kind: inspect._ParameterKind
    service_type: Any = None
    optional: bool = False
    default: Any = inspect.Parameter.empty

    @property
    def has_default(self) -> bool:
        return self.default is not inspect.Parameter.empty

    @property
    def is_variadic(self) -> bool:
        return self.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)


def _type_hints(func: Callable[..., Any]) -> dict[str, Any]:
    """Resolve annotations, tolerating names that cannot be evaluated.

    When one annotation fails (typically a name imported only under
    TYPE_CHECKING), the others are still resolved one by one; parameters
    whose annotation cannot be evaluated are treated as unannotated.
    """
    target = func.__init__ if inspect.isclass(func) else func
    try:
        return typing.get_type_hints(target)
    except (NameError, TypeError, AttributeError):
        pass

    function = inspect.unwrap(getattr(target, "__func__", target))
    raw = getattr(function, "__annotations__", {}) or {}
    namespace = getattr(function, "__globals__", {})
    hints = {}
    for name, annotation in raw.items():
        if isinstance(annotation, str):
            try:
                annotation = eval(annotation, namespace)
            except Exception as e:
                logger.debug(f"Ignoring annotation of '{name}' on {function!r}: {e}")
                continue
        hints[name] = annotation
    return hints


def _unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    """Return (inner_type, optional) for Optional[X] / X | None."""
    origin = typing.get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1 and len(args) != len(typing.get_args(annotation)):
            return args[0], True
    return annotation, False


def plan_parameters(func: Callable[..., Any]) -> list[ParameterPlan]:
    """Inspect a callable (class or function) into parameter plans.

    For classes the constructor is inspected; for bound methods `self` is
    already excluded by inspect.signature.
    """
    signature = inspect.signature(func)
    hints = _type_hints(func)
    plans = []
    for param in signature.parameters.values():
        annotation = hints.get(param.name)
        optional = False
        if annotation is not None:
            annotation, optional = _unwrap_optional(annotation)
        plans.append(ParameterPlan(
            name=param.name,
            kind=param.kind,
            service_type=annotation,
            optional=optional,
            default=param.default,
        ))
    return plans


def resolve_parameter(plan: ParameterPlan, resolver: "ServiceResolver") -> Any:
    """Resolve a single parameter from the resolver.

    Parameters with a default or an Optional annotation resolve optionally;
    unannotated parameters can only fall back to their default.

    Raises:
        ServiceResolutionError: If a required parameter cannot be resolved
    """
    if plan.service_type is None:
        if plan.has_default:
            return plan.default
        raise ServiceResolutionError(
            None, f"Parameter '{plan.name}' has no type annotation and no default"
        )

    if plan.has_default or plan.optional:
        value = resolver.get(plan.service_type)
        if value is None:
            return plan.default if plan.has_default else None
        return value

    return resolver.resolve(plan.service_type)


def bind_arguments(
    plans: list[ParameterPlan],
    resolver: "ServiceResolver",
    args: tuple[Any, ...] = (),
    kwargs: dict[str, Any] | None = None,
) -> tuple[list[Any], dict[str, Any]]:
    """Build call arguments: explicit args first, then keywords, then services.

    Raises:
        TypeError: If explicit arguments do not fit the signature
        ServiceResolutionError: If a required parameter cannot be resolved
    """
    positional = list(args)
    remaining_kwargs = dict(kwargs or {})
    call_args: list[Any] = []
    call_kwargs: dict[str, Any] = {}
    accepts_var_keyword = False

    for plan in plans:
        if plan.kind is inspect.Parameter.VAR_POSITIONAL:
            call_args.extend(positional)
            positional = []
            continue
        if plan.kind is inspect.Parameter.VAR_KEYWORD:
            accepts_var_keyword = True
            continue

        if positional and plan.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            call_args.append(positional.pop(0))
            continue

        if plan.name in remaining_kwargs and plan.kind is not inspect.Parameter.POSITIONAL_ONLY:
            value = remaining_kwargs.pop(plan.name)
        else:
            value = resolve_parameter(plan, resolver)

        if plan.kind is inspect.Parameter.KEYWORD_ONLY:
            call_kwargs[plan.name] = value
        else:
            call_args.append(value)

    if positional:
        raise TypeError(f"{len(positional)} unexpected positional argument(s)")
    if remaining_kwargs:
        if not accepts_var_keyword:
            raise TypeError(f"Unexpected keyword argument(s): {', '.join(sorted(remaining_kwargs))}")
        call_kwargs.update(remaining_kwargs)

    return call_args, call_kwargs


def create_instance(cls: type, resolver: "ServiceResolver", *args: Any, **kwargs: Any) -> Any:
    """Construct cls, filling constructor parameters not given explicitly from resolver."""
    call_args, call_kwargs = bind_arguments(plan_parameters(cls), resolver, args, kwargs)
    logger.debug(f"Activating {cls.__qualname__}")
    return cls(*call_args, **call_kwargs)
