"""Service registration and resolution.

The pipeline only depends on the ServiceResolver protocol: resolve a type
(required or optional) and create a child scope bounded by one invocation.
ServiceCollection / ServiceProvider are the default implementation.

Lifetimes:
    SINGLETON: one instance per root provider, shared by every invocation
    SCOPED: one instance per scope (one scope per pipeline invocation)
    TRANSIENT: a new instance on every resolve

Usage:
    services = ServiceCollection()
    services.add_singleton(Clock, instance=SystemClock())
    services.add_scoped(UnitOfWork)

    provider = services.build_provider()
    async with provider.create_scope() as scope:
        uow = scope.resolve(UnitOfWork)
"""

from __future__ import annotations

import inspect
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Protocol, TypeVar, runtime_checkable

from .activation import create_instance
from .exceptions import ServiceResolutionError

logger = logging.getLogger(__name__)

T = TypeVar('T')

_MISSING = object()


class ServiceLifetime(str, Enum):
    """How long a resolved instance lives."""
    SINGLETON = "singleton"
    SCOPED = "scoped"
    TRANSIENT = "transient"


@runtime_checkable
class ServiceResolver(Protocol):
    """What the pipeline needs from a dependency container."""

    def resolve(self, service_type: type[T]) -> T:
        """Resolve a required service. Raises ServiceResolutionError if missing."""
        ...

    def get(self, service_type: type[T], default: Any = None) -> T | Any:
        """Resolve an optional service, returning default if missing."""
        ...

    def create_scope(self) -> "ServiceScope":
        """Create a child scope for one unit of work."""
        ...


@dataclass(frozen=True)
class ServiceDescriptor:
    """A single registration."""
    service_type: type
    lifetime: ServiceLifetime
    implementation: type | None = None
    factory: Callable[["ServiceResolver"], Any] | None = None
    instance: Any = _MISSING

    def create(self, resolver: "ServiceResolver") -> Any:
        if self.instance is not _MISSING:
            return self.instance
        if self.factory is not None:
            return self.factory(resolver)
        return create_instance(self.implementation or self.service_type, resolver)


class ServiceCollection:
    """Mutable set of registrations, turned into a ServiceProvider by build_provider()."""

    def __init__(self):
        self._descriptors: dict[type, ServiceDescriptor] = {}

    def register(
        self,
        service_type: type,
        lifetime: ServiceLifetime | str = ServiceLifetime.SINGLETON,
        implementation: type | None = None,
        *,
        factory: Callable[["ServiceResolver"], Any] | None = None,
        instance: Any = _MISSING,
    ) -> "ServiceCollection":
        """Register a service. Later registrations replace earlier ones.

        Args:
            service_type: The type consumers resolve
            lifetime: singleton, scoped or transient
            implementation: Concrete class to construct (defaults to service_type)
            factory: Callable receiving the resolver and returning the instance
            instance: Pre-built instance (singleton lifetime only)

        Raises:
            ValueError: If the combination of arguments is invalid
        """
        lifetime = ServiceLifetime(lifetime)
        provided = sum(x is not None for x in (implementation, factory)) + (instance is not _MISSING)
        if provided > 1:
            raise ValueError("Specify only one of implementation, factory or instance")
        if instance is not _MISSING and lifetime is not ServiceLifetime.SINGLETON:
            raise ValueError("Instances can only be registered as singletons")
        if implementation is not None and not inspect.isclass(implementation):
            raise ValueError(f"Implementation for {service_type!r} must be a class")

        self._descriptors[service_type] = ServiceDescriptor(
            service_type=service_type,
            lifetime=lifetime,
            implementation=implementation,
            factory=factory,
            instance=instance,
        )
        return self

    def add_singleton(self, service_type: type, implementation: type | None = None, **kwargs: Any) -> "ServiceCollection":
        return self.register(service_type, ServiceLifetime.SINGLETON, implementation, **kwargs)

    def add_scoped(self, service_type: type, implementation: type | None = None, **kwargs: Any) -> "ServiceCollection":
        return self.register(service_type, ServiceLifetime.SCOPED, implementation, **kwargs)

    def add_transient(self, service_type: type, implementation: type | None = None, **kwargs: Any) -> "ServiceCollection":
        return self.register(service_type, ServiceLifetime.TRANSIENT, implementation, **kwargs)

    def try_add_singleton(self, service_type: type, implementation: type | None = None, **kwargs: Any) -> "ServiceCollection":
        """Register a singleton only if service_type has no registration yet."""
        if service_type not in self._descriptors:
            self.add_singleton(service_type, implementation, **kwargs)
        return self

    def __contains__(self, service_type: object) -> bool:
        return service_type in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)

    @property
    def descriptors(self) -> list[ServiceDescriptor]:
        return list(self._descriptors.values())

    def build_provider(self) -> "ServiceProvider":
        return ServiceProvider(self._descriptors)


def _dispose(instance: Any) -> None:
    close = getattr(instance, "close", None)
    if callable(close) and not inspect.iscoroutinefunction(close):
        close()
    elif callable(getattr(instance, "aclose", None)):
        logger.warning(
            f"{type(instance).__qualname__} only supports async disposal; use aclose() on its scope"
        )


async def _adispose(instance: Any) -> None:
    aclose = getattr(instance, "aclose", None)
    if callable(aclose):
        await aclose()
        return
    close = getattr(instance, "close", None)
    if callable(close):
        result = close()
        if inspect.isawaitable(result):
            await result


class _Disposables:
    """Tracks created instances and disposes them in reverse creation order."""

    def __init__(self, owner: str):
        self._owner = owner
        self._items: list[Any] = []
        self._lock = threading.Lock()

    def track(self, instance: Any) -> None:
        if callable(getattr(instance, "close", None)) or callable(getattr(instance, "aclose", None)):
            with self._lock:
                self._items.append(instance)

    def _drain(self) -> list[Any]:
        with self._lock:
            items, self._items = self._items, []
        items.reverse()
        return items

    def close(self) -> None:
        for instance in self._drain():
            try:
                _dispose(instance)
            except Exception as e:
                logger.warning(f"Disposing {type(instance).__qualname__} in {self._owner} failed: {e}")

    async def aclose(self) -> None:
        for instance in self._drain():
            try:
                await _adispose(instance)
            except Exception as e:
                logger.warning(f"Disposing {type(instance).__qualname__} in {self._owner} failed: {e}")


class ServiceProvider:
    """Root resolver: owns singletons and creates per-invocation scopes.

    Scoped services cannot be resolved from the root; resolve them from a
    scope created with create_scope(). Transients resolved from the root are
    owned by the caller; transients resolved from a scope are disposed with it.
    """

    def __init__(self, descriptors: dict[type, ServiceDescriptor]):
        self._descriptors = dict(descriptors)
        self._singletons: dict[type, Any] = {}
        self._lock = threading.RLock()
        self._disposables = _Disposables("root provider")
        self._closed = False

    def descriptor(self, service_type: type) -> ServiceDescriptor | None:
        return self._descriptors.get(service_type)

    def _singleton(self, descriptor: ServiceDescriptor) -> Any:
        with self._lock:
            if descriptor.service_type not in self._singletons:
                instance = descriptor.create(self)
                self._singletons[descriptor.service_type] = instance
                # Pre-built instances are owned by whoever registered them
                if descriptor.instance is _MISSING:
                    self._disposables.track(instance)
            return self._singletons[descriptor.service_type]

    def _create(self, descriptor: ServiceDescriptor, resolver: "ServiceResolver", disposables: _Disposables) -> Any:
        instance = descriptor.create(resolver)
        disposables.track(instance)
        return instance

    def resolve(self, service_type: type[T]) -> T:
        if self._closed:
            raise RuntimeError("ServiceProvider has been closed")
        if service_type in (ServiceProvider, ServiceResolver):
            return self  # type: ignore[return-value]

        descriptor = self._descriptors.get(service_type)
        if descriptor is None:
            raise ServiceResolutionError(service_type)
        if descriptor.lifetime is ServiceLifetime.SINGLETON:
            return self._singleton(descriptor)
        if descriptor.lifetime is ServiceLifetime.SCOPED:
            raise ServiceResolutionError(
                service_type, "scoped services cannot be resolved from the root provider"
            )
        # Root transients are not tracked; whoever resolves them disposes them
        return descriptor.create(self)

    def get(self, service_type: type[T], default: Any = None) -> T | Any:
        if service_type not in self._descriptors and service_type not in (ServiceProvider, ServiceResolver):
            return default
        return self.resolve(service_type)

    def create_scope(self) -> "ServiceScope":
        if self._closed:
            raise RuntimeError("ServiceProvider has been closed")
        return ServiceScope(self)

    def close(self) -> None:
        """Dispose the singletons this provider created."""
        if self._closed:
            return
        self._closed = True
        self._disposables.close()
        self._singletons.clear()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._disposables.aclose()
        self._singletons.clear()

    def __enter__(self) -> "ServiceProvider":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ServiceScope:
    """Resolver bounded to one unit of work.

    Singletons come from the root; scoped instances are cached here and,
    with transients created here, disposed when the scope closes.
    """

    def __init__(self, root: ServiceProvider):
        self._root = root
        self._scoped: dict[type, Any] = {}
        self._disposables = _Disposables("scope")
        self._closed = False

    @property
    def root(self) -> ServiceProvider:
        return self._root

    @property
    def closed(self) -> bool:
        return self._closed

    def resolve(self, service_type: type[T]) -> T:
        if self._closed:
            raise RuntimeError("ServiceScope has been closed")
        if service_type in (ServiceScope, ServiceResolver):
            return self  # type: ignore[return-value]
        if service_type is ServiceProvider:
            return self._root  # type: ignore[return-value]

        descriptor = self._root.descriptor(service_type)
        if descriptor is None:
            raise ServiceResolutionError(service_type)
        if descriptor.lifetime is ServiceLifetime.SINGLETON:
            return self._root.resolve(service_type)
        if descriptor.lifetime is ServiceLifetime.SCOPED:
            if service_type not in self._scoped:
                self._scoped[service_type] = self._root._create(descriptor, self, self._disposables)
            return self._scoped[service_type]
        return self._root._create(descriptor, self, self._disposables)

    def get(self, service_type: type[T], default: Any = None) -> T | Any:
        if service_type in (ServiceScope, ServiceResolver, ServiceProvider):
            return self.resolve(service_type)
        if self._root.descriptor(service_type) is None:
            return default
        return self.resolve(service_type)

    def create_scope(self) -> "ServiceScope":
        return self._root.create_scope()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._disposables.close()
        self._scoped.clear()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._disposables.aclose()
        self._scoped.clear()

    def __enter__(self) -> "ServiceScope":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    async def __aenter__(self) -> "ServiceScope":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
