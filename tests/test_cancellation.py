"""Tests for cooperative cancellation"""

import asyncio
import time

import pytest

from conduit.cancellation import CancellationToken, CancellationTokenSource
from conduit.exceptions import OperationCancelledError


class TestCancellationToken:
    """Read-only token behaviour"""

    def test_none_token_never_cancelled(self):
        token = CancellationToken.NONE

        assert token.can_be_cancelled is False
        assert token.is_cancellation_requested is False
        token.raise_if_cancellation_requested()

    def test_raise_if_cancellation_requested(self):
        source = CancellationTokenSource()
        source.cancel()

        with pytest.raises(OperationCancelledError):
            source.token.raise_if_cancellation_requested()

    def test_register_on_none_token_is_noop(self):
        calls = []
        unregister = CancellationToken.NONE.register(lambda: calls.append(1))
        unregister()

        assert calls == []


class TestCancellationTokenSource:
    """Signalling, callbacks and deadlines"""

    def test_cancel_is_monotonic(self):
        source = CancellationTokenSource()
        assert source.token.is_cancellation_requested is False

        source.cancel()
        source.cancel()

        assert source.is_cancelled is True
        assert source.token.is_cancellation_requested is True

    def test_callbacks_run_once(self):
        source = CancellationTokenSource()
        calls = []
        source.token.register(lambda: calls.append("a"))

        source.cancel()
        source.cancel()

        assert calls == ["a"]

    def test_callback_runs_immediately_when_already_cancelled(self):
        source = CancellationTokenSource()
        source.cancel()
        calls = []

        source.token.register(lambda: calls.append("late"))

        assert calls == ["late"]

    def test_unregistered_callback_not_called(self):
        source = CancellationTokenSource()
        calls = []
        unregister = source.token.register(lambda: calls.append("x"))

        unregister()
        source.cancel()

        assert calls == []

    def test_failing_callback_does_not_stop_others(self):
        source = CancellationTokenSource()
        calls = []

        def fail():
            raise RuntimeError("callback failed")

        source.token.register(fail)
        source.token.register(lambda: calls.append("ok"))
        source.cancel()

        assert calls == ["ok"]

    def test_deadline_observed_without_event_loop(self):
        source = CancellationTokenSource(0.01)
        assert source.is_cancelled is False

        time.sleep(0.02)

        assert source.token.is_cancellation_requested is True

    def test_zero_delay_cancels_immediately(self):
        source = CancellationTokenSource()
        source.cancel_after(0)
        assert source.is_cancelled is True

    def test_negative_delay_rejected(self):
        with pytest.raises(ValueError):
            CancellationTokenSource().cancel_after(-1)

    @pytest.mark.asyncio
    async def test_timer_fires_callbacks_in_event_loop(self):
        source = CancellationTokenSource()
        fired = asyncio.Event()
        source.token.register(fired.set)

        source.cancel_after(0.01)
        await asyncio.wait_for(fired.wait(), timeout=1)

        assert source.is_cancelled is True

    @pytest.mark.asyncio
    async def test_wait_returns_on_cancel(self):
        source = CancellationTokenSource()
        asyncio.get_running_loop().call_later(0.01, source.cancel)

        await asyncio.wait_for(source.token.wait(), timeout=1)

        assert source.is_cancelled is True

    def test_close_releases_without_cancelling(self):
        source = CancellationTokenSource(60)
        source.close()

        assert source.is_cancelled is False

    def test_context_manager_closes(self):
        with CancellationTokenSource() as source:
            pass
        assert source._closed is True


class TestLinkedSources:
    """create_linked() follows its parents"""

    def test_parent_cancellation_propagates(self):
        parent = CancellationTokenSource()
        child = CancellationTokenSource.create_linked(parent.token)

        parent.cancel()

        assert child.is_cancelled is True

    def test_child_cancellation_does_not_reach_parent(self):
        parent = CancellationTokenSource()
        child = CancellationTokenSource.create_linked(parent.token)

        child.cancel()

        assert parent.is_cancelled is False

    def test_linked_to_already_cancelled_parent(self):
        parent = CancellationTokenSource()
        parent.cancel()

        child = CancellationTokenSource.create_linked(parent.token)

        assert child.is_cancelled is True

    def test_parent_deadline_observed_lazily(self):
        parent = CancellationTokenSource(0.01)
        child = CancellationTokenSource.create_linked(parent.token)

        time.sleep(0.02)

        assert child.is_cancelled is True

    def test_none_token_ignored(self):
        child = CancellationTokenSource.create_linked(CancellationToken.NONE)
        assert child.is_cancelled is False

    def test_closed_child_detaches_from_parent(self):
        parent = CancellationTokenSource()
        child = CancellationTokenSource.create_linked(parent.token)
        child.close()

        assert parent._callbacks == []
        parent.cancel()
        assert child.is_cancelled is False
