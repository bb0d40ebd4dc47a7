"""Cooperative cancellation for pipeline invocations.

A CancellationTokenSource owns the cancelled state; the CancellationToken it
hands out is the read-only view middleware observe. Cancellation is
cooperative: nothing here interrupts running code, it only flips a flag that
middleware poll before doing work or delegating onward.

Usage:
    source = CancellationTokenSource()
    source.cancel_after(5.0)

    async def middleware(context, next):
        if context.cancellation.is_cancellation_requested:
            return
        await next(context)

    # or, when an exception is preferred:
        context.cancellation.raise_if_cancellation_requested()
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable
from typing import ClassVar

from .exceptions import OperationCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Read-only view of a CancellationTokenSource.

    A token without a source can never be cancelled; CancellationToken.NONE
    is the shared instance of that token.
    """

    NONE: ClassVar["CancellationToken"]

    __slots__ = ("_source",)

    def __init__(self, source: "CancellationTokenSource | None" = None):
        self._source = source

    @property
    def is_cancellation_requested(self) -> bool:
        return self._source is not None and self._source.is_cancelled

    @property
    def can_be_cancelled(self) -> bool:
        return self._source is not None

    def raise_if_cancellation_requested(self) -> None:
        """Raise OperationCancelledError if cancellation has been requested."""
        if self.is_cancellation_requested:
            raise OperationCancelledError()

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run callback once when the token is cancelled.

        The callback runs immediately when the token is already cancelled.

        Returns:
            A function that unregisters the callback.
        """
        if self._source is None:
            return _noop
        return self._source._register(callback)

    async def wait(self) -> None:
        """Suspend until the token is cancelled.

        Never returns for a token that cannot be cancelled.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[None] = loop.create_future()

        def _wake() -> None:
            loop.call_soon_threadsafe(_resolve, future)

        unregister = self.register(_wake)
        try:
            if self._source is not None and self._source._deadline is not None:
                remaining = self._source._deadline - time.monotonic()
                handle = loop.call_later(max(remaining, 0.0), self._source._expire)
                try:
                    await future
                finally:
                    handle.cancel()
            else:
                await future
        finally:
            unregister()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancellation_requested})"


def _noop() -> None:
    pass


def _resolve(future: asyncio.Future[None]) -> None:
    if not future.done():
        future.set_result(None)


CancellationToken.NONE = CancellationToken()


class CancellationTokenSource:
    """Signals cancellation to every token it has handed out.

    Cancellation is monotonic: once cancelled the source never resets.
    Timeouts are deadline based and observed lazily on every poll, so a
    source works the same with or without a running event loop; when a loop
    is running a timer also fires the registered callbacks at the deadline.
    """

    def __init__(self, delay: float | None = None):
        self._lock = threading.Lock()
        self._cancelled = False
        self._deadline: float | None = None
        self._callbacks: list[Callable[[], None]] = []
        self._timer: asyncio.TimerHandle | None = None
        self._parents: tuple[CancellationToken, ...] = ()
        self._parent_registrations: list[Callable[[], None]] = []
        self._closed = False
        self.token = CancellationToken(self)

        if delay is not None:
            self.cancel_after(delay)

    @classmethod
    def create_linked(cls, *tokens: CancellationToken) -> "CancellationTokenSource":
        """Create a source that is cancelled when any of the given tokens is."""
        source = cls()
        source._parents = tuple(t for t in tokens if t.can_be_cancelled)
        for parent in source._parents:
            source._parent_registrations.append(parent.register(source.cancel))
        return source

    @property
    def is_cancelled(self) -> bool:
        if self._cancelled:
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._expire()
            return True
        for parent in self._parents:
            if parent.is_cancellation_requested:
                self.cancel()
                return True
        return False

    def cancel(self) -> None:
        """Signal cancellation and run registered callbacks once."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks, self._callbacks = self._callbacks, []
            timer, self._timer = self._timer, None

        if timer is not None:
            timer.cancel()

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Cancellation callback failed: {e}")

    def cancel_after(self, delay: float) -> None:
        """Schedule cancellation after delay seconds.

        A delay of zero cancels immediately.

        Raises:
            ValueError: If delay is negative
        """
        if delay < 0:
            raise ValueError("delay must be >= 0")

        if delay == 0:
            self.cancel()
            return

        with self._lock:
            if self._cancelled:
                return
            self._deadline = time.monotonic() + delay
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
            if loop is not None:
                self._timer = loop.call_later(delay, self._expire)

    def _expire(self) -> None:
        if not self._cancelled:
            logger.debug("Cancellation deadline reached")
            self.cancel()

    def _register(self, callback: Callable[[], None]) -> Callable[[], None]:
        registered = False
        if not self.is_cancelled:
            with self._lock:
                if not self._cancelled:
                    self._callbacks.append(callback)
                    registered = True

        if not registered:
            callback()
            return _noop

        def unregister() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return unregister

    def close(self) -> None:
        """Release the timer and parent registrations without cancelling."""
        if self._closed:
            return
        self._closed = True
        with self._lock:
            timer, self._timer = self._timer, None
            self._callbacks.clear()
        if timer is not None:
            timer.cancel()
        for unregister in self._parent_registrations:
            unregister()
        self._parent_registrations.clear()
        self._parents = ()

    def __enter__(self) -> "CancellationTokenSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"CancellationTokenSource(cancelled={self.is_cancelled})"
