"""Pipeline construction: settings and service registrations.

Usage:
    builder = PipelineBuilder.create()
    builder.services.add_singleton(Clock, SystemClock)

    pipeline = builder.build()
    pipeline.use(ToUpperMiddleware)
    response = await pipeline.invoke("hello")
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Callable, Generic

from .config import Settings
from .context import TRequest, TResponse
from .pipeline import Pipeline
from .services import ServiceCollection

logger = logging.getLogger(__name__)

_UNSET: Any = object()


class PipelineBuilder(Generic[TRequest, TResponse]):
    """Collects settings and services, then builds a Pipeline.

    Args:
        settings: Settings to use (default: loaded from the environment)
        services: Service registrations (default: empty collection)
        response_type: Pass Void for pipelines without a response
        logger: Logger handed to the pipeline and registered as a
            `logging.Logger` service
    """

    def __init__(
        self,
        settings: Settings | None = None,
        services: ServiceCollection | None = None,
        *,
        response_type: type | None = None,
        logger: logging.Logger | None = None,
    ):
        self.settings = settings if settings is not None else Settings()
        self.services = services if services is not None else ServiceCollection()
        self.response_type = response_type
        self.logger = logger

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        configure: Callable[[ServiceCollection, Settings], None] | None = None,
        **kwargs: Any,
    ) -> "PipelineBuilder[TRequest, TResponse]":
        """Create a builder, optionally running a configure callback on its services."""
        builder = cls(settings, **kwargs)
        if configure is not None:
            configure(builder.services, builder.settings)
        return builder

    def configure_services(
        self, configure: Callable[[ServiceCollection, Settings], None]
    ) -> "PipelineBuilder[TRequest, TResponse]":
        configure(self.services, self.settings)
        return self

    def build(self, timeout: float | timedelta | None = _UNSET) -> Pipeline[TRequest, TResponse]:
        """Build the pipeline.

        Args:
            timeout: Overrides settings.request_timeout when given; None
                disables the timeout

        Returns:
            A Pipeline that owns the built service provider
        """
        if timeout is _UNSET:
            timeout = self.settings.get_request_timeout()

        self.services.try_add_singleton(Settings, instance=self.settings)
        if self.logger is not None:
            self.services.try_add_singleton(logging.Logger, instance=self.logger)

        provider = self.services.build_provider()
        logger.debug(
            "pipeline_built",
            extra={"timeout": timeout, "service_count": len(self.services)},
        )
        return Pipeline(
            provider,
            timeout,
            response_type=self.response_type,
            owns_services=True,
            logger=self.logger,
        )
