from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Generic, TypeVar, TYPE_CHECKING
from uuid import UUID

from .cancellation import CancellationToken

if TYPE_CHECKING:
    from .services import ServiceResolver

TRequest = TypeVar('TRequest')
TResponse = TypeVar('TResponse')
T = TypeVar('T')


class Void:
    """Response type for pipelines that intentionally produce no response.

    A void pipeline's context starts with VOID as its response, so invoke()
    returns VOID instead of None.
    """

    _instance: "Void | None" = None

    def __new__(cls) -> "Void":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "VOID"

    def __bool__(self) -> bool:
        return False


VOID = Void()


class RequestContext(Generic[TRequest, TResponse]):
    """State carried through one pipeline invocation.

    One context is created per invocation and never reused. `request` is
    fixed at construction; `response` may be read and overwritten by any
    middleware until the chain returns to the invoker.

    The `data` dict is allocated on first use. Namespace keys by the
    middleware that owns them to avoid collisions:
    Example: context.data["RequestLogger.started"] = time.monotonic()
    """

    __slots__ = ("_request", "_id", "_timestamp", "_services", "_cancellation", "_data", "response")

    def __init__(
        self,
        request: TRequest,
        id: UUID,
        timestamp: datetime,
        services: "ServiceResolver",
        cancellation: CancellationToken = CancellationToken.NONE,
        response: TResponse | None = None,
    ):
        if request is None:
            raise ValueError("request must not be None")
        self._request = request
        self._id = id
        self._timestamp = timestamp
        self._services = services
        self._cancellation = cancellation
        self._data: dict[str, Any] | None = None
        self.response: TResponse | None = response

    @property
    def request(self) -> TRequest:
        return self._request

    @property
    def id(self) -> UUID:
        return self._id

    @property
    def timestamp(self) -> datetime:
        return self._timestamp

    @property
    def services(self) -> "ServiceResolver":
        return self._services

    @property
    def cancellation(self) -> CancellationToken:
        return self._cancellation

    @property
    def is_cancelled(self) -> bool:
        return self._cancellation.is_cancellation_requested

    @property
    def elapsed(self) -> timedelta:
        """Time since the context was created."""
        return datetime.now(timezone.utc) - self._timestamp

    @property
    def data(self) -> dict[str, Any]:
        if self._data is None:
            self._data = {}
        return self._data

    @property
    def has_data(self) -> bool:
        return bool(self._data)

    def get_data(self, key: str, expected_type: type[T] | None = None) -> T | Any | None:
        """Look up an ancillary value.

        Returns None when the key is absent or, if expected_type is given,
        when the stored value is not an instance of it.
        """
        if self._data is None:
            return None
        value = self._data.get(key)
        if expected_type is not None and not isinstance(value, expected_type):
            return None
        return value

    def set_data(self, key: str, value: Any) -> None:
        self.data[key] = value

    def __repr__(self) -> str:
        return (
            f"RequestContext(id={self._id}, request={self._request!r}, "
            f"response={self.response!r}, cancelled={self.is_cancelled})"
        )
