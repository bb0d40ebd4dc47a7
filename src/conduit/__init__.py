"""conduit - async request/response middleware pipelines"""

__version__ = "0.1.0"

from .builder import PipelineBuilder
from .cancellation import CancellationToken, CancellationTokenSource
from .config import Settings
from .context import VOID, RequestContext, Void
from .exceptions import (
    ConduitError,
    InvalidStateError,
    MiddlewareConfigurationError,
    OperationCancelledError,
    ServiceResolutionError,
)
from .middleware import Middleware, MiddlewareBase, RequestDelegate
from .pipeline import Pipeline
from .services import (
    ServiceCollection,
    ServiceLifetime,
    ServiceProvider,
    ServiceResolver,
    ServiceScope,
)

__all__ = [
    "__version__",
    # Building and running
    "Pipeline",
    "PipelineBuilder",
    "Settings",
    # Context
    "RequestContext",
    "Void",
    "VOID",
    # Cancellation
    "CancellationToken",
    "CancellationTokenSource",
    # Middleware
    "Middleware",
    "MiddlewareBase",
    "RequestDelegate",
    # Services
    "ServiceCollection",
    "ServiceLifetime",
    "ServiceProvider",
    "ServiceResolver",
    "ServiceScope",
    # Errors
    "ConduitError",
    "InvalidStateError",
    "MiddlewareConfigurationError",
    "OperationCancelledError",
    "ServiceResolutionError",
]
