"""Tests for RequestContext"""

from datetime import datetime, timedelta, timezone

import pytest

from conduit.cancellation import CancellationToken, CancellationTokenSource
from conduit.context import VOID, RequestContext, Void
from conduit.services import ServiceCollection
from conduit.utils.ids import new_request_id


def make_context(request="req", **kwargs):
    return RequestContext(
        request,
        new_request_id(),
        datetime.now(timezone.utc),
        ServiceCollection().build_provider(),
        **kwargs,
    )


class TestVoid:

    def test_singleton(self):
        assert Void() is VOID
        assert repr(VOID) == "VOID"
        assert not VOID


class TestRequestContext:

    def test_none_request_rejected(self):
        with pytest.raises(ValueError):
            make_context(None)

    def test_defaults(self):
        context = make_context()

        assert context.request == "req"
        assert context.response is None
        assert context.cancellation is CancellationToken.NONE
        assert context.is_cancelled is False
        assert context.has_data is False

    def test_response_is_mutable(self):
        context = make_context()
        context.response = "done"
        assert context.response == "done"

    def test_request_is_read_only(self):
        context = make_context()
        with pytest.raises(AttributeError):
            context.request = "other"

    def test_data_allocated_lazily(self):
        context = make_context()
        assert context.get_data("missing") is None
        assert context.has_data is False

        context.set_data("Timer.started", 1.5)

        assert context.has_data is True
        assert context.data == {"Timer.started": 1.5}

    def test_get_data_type_mismatch_returns_none(self):
        context = make_context()
        context.data["count"] = "three"

        assert context.get_data("count", int) is None
        assert context.get_data("count", str) == "three"

    def test_reflects_cancellation(self):
        source = CancellationTokenSource()
        context = make_context(cancellation=source.token)

        source.cancel()

        assert context.is_cancelled is True

    def test_elapsed(self):
        context = RequestContext(
            "req",
            new_request_id(),
            datetime.now(timezone.utc) - timedelta(seconds=5),
            ServiceCollection().build_provider(),
        )
        assert context.elapsed >= timedelta(seconds=5)

    def test_repr_mentions_request(self):
        assert "'req'" in repr(make_context())
