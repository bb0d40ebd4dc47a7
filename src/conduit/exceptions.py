"""Exceptions raised by the conduit pipeline."""


class ConduitError(Exception):
    """Base class for all conduit errors."""


class InvalidStateError(ConduitError):
    """Raised when an operation is not valid for the pipeline's current state.

    Middleware ordering is fixed once the pipeline is compiled, so any
    registration attempted after compilation raises this error.
    """


class MiddlewareConfigurationError(ConduitError):
    """Raised at compile time when a middleware cannot be adapted into the chain."""
    def __init__(self, middleware_name: str, reason: str):
        self.middleware_name = middleware_name
        self.reason = reason
        super().__init__(f"Middleware {middleware_name} is misconfigured: {reason}")


class OperationCancelledError(ConduitError):
    """Raised when an invocation observes a signaled cancellation token."""
    def __init__(self, message: str = "The operation was cancelled."):
        super().__init__(message)


class ServiceResolutionError(ConduitError, LookupError):
    """Raised when a required service has no registration."""
    def __init__(self, service_type: object | None, reason: str | None = None):
        self.service_type = service_type
        self.reason = reason
        if service_type is None:
            message = reason or "Service resolution failed"
        else:
            name = getattr(service_type, "__qualname__", repr(service_type))
            message = f"No service registered for type {name}"
            if reason:
                message = f"{message}: {reason}"
        super().__init__(message)
