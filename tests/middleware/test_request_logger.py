"""Tests for request completion logging"""

import logging

import pytest

from conduit.cancellation import CancellationTokenSource
from conduit.exceptions import OperationCancelledError
from conduit.middleware.builtin import ToUpperMiddleware
from conduit.middleware.request_logger import (
    RequestLoggerMiddleware,
    RequestLoggerOptions,
    use_request_logging,
)
from conduit.middleware.testing import MockMiddleware

LOGGER_NAME = "tests.request_logger"


def logged(caplog):
    return [r for r in caplog.records if r.name == LOGGER_NAME]


@pytest.fixture
def test_logger():
    """A dedicated logger so assertions only see request log records"""
    return logging.getLogger(LOGGER_NAME)


class TestRequestLogger:
    """One completion record per request"""

    @pytest.mark.asyncio
    async def test_logs_completion(self, pipeline, caplog, test_logger):
        use_request_logging(pipeline, logger=test_logger)
        pipeline.use(ToUpperMiddleware)

        with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
            response = await pipeline.invoke("hello")

        assert response == "HELLO"
        assert len(logged(caplog)) == 1
        record = logged(caplog)[0]
        assert record.levelno == logging.INFO
        assert record.getMessage().startswith(f"Request {record.request_id} completed in")
        assert record.elapsed_ms >= 0

    @pytest.mark.asyncio
    async def test_configured_level(self, pipeline, caplog, test_logger):
        use_request_logging(pipeline, logger=test_logger, level=logging.DEBUG)

        with caplog.at_level(logging.DEBUG, logger=LOGGER_NAME):
            await pipeline.invoke("hello")

        assert logged(caplog)[0].levelno == logging.DEBUG

    @pytest.mark.asyncio
    async def test_disabled_level_logs_nothing(self, pipeline, caplog, test_logger):
        use_request_logging(pipeline, logger=test_logger, level=logging.DEBUG)

        with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
            await pipeline.invoke("hello")

        assert logged(caplog) == []

    @pytest.mark.asyncio
    async def test_custom_template_and_enrich(self, pipeline, caplog, test_logger):
        def enrich(fields, context):
            fields["request"] = context.request
            fields["response"] = context.response

        use_request_logging(
            pipeline,
            logger=test_logger,
            message_template="{request} -> {response}",
            enrich=enrich,
        )
        pipeline.use(ToUpperMiddleware)

        with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
            await pipeline.invoke("hello")

        record = logged(caplog)[0]
        assert record.getMessage() == "hello -> HELLO"
        assert record.response == "HELLO"

    @pytest.mark.asyncio
    async def test_fields_clashing_with_record_attributes(self, pipeline, caplog, test_logger):
        def enrich(fields, context):
            fields["message"] = "custom"
            fields["name"] = context.request

        use_request_logging(
            pipeline,
            logger=test_logger,
            message_template="{name}: {message}",
            enrich=enrich,
        )
        pipeline.use(ToUpperMiddleware)

        with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
            response = await pipeline.invoke("hello")

        assert response == "HELLO"
        record = logged(caplog)[0]
        assert record.getMessage() == "hello: custom"
        assert record.field_message == "custom"
        assert record.field_name == "hello"
        assert record.name == LOGGER_NAME

    @pytest.mark.asyncio
    async def test_error_logged_and_rethrown(self, pipeline, caplog, test_logger):
        use_request_logging(pipeline, logger=test_logger)
        pipeline.use(MockMiddleware, should_raise=RuntimeError("boom"))

        with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
            with pytest.raises(RuntimeError):
                await pipeline.invoke("hello")

        record = logged(caplog)[0]
        assert record.levelno == logging.ERROR
        assert record.exc_info[0] is RuntimeError

    @pytest.mark.asyncio
    async def test_error_swallowed_without_rethrow(self, pipeline, caplog, test_logger):
        use_request_logging(pipeline, logger=test_logger, rethrow=False)
        pipeline.use(MockMiddleware, should_raise=RuntimeError("boom"))

        with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
            response = await pipeline.invoke("hello")

        assert response is None
        assert logged(caplog)[0].levelno == logging.ERROR

    @pytest.mark.asyncio
    async def test_cancelled_request_logged_as_error(self, pipeline, caplog, test_logger):
        source = CancellationTokenSource()
        source.cancel()
        use_request_logging(pipeline, logger=test_logger)

        with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
            with pytest.raises(OperationCancelledError):
                await pipeline.invoke("hello", source.token)

        assert logged(caplog)[0].levelno == logging.ERROR

    @pytest.mark.asyncio
    async def test_options_resolved_from_services(self, builder, services, caplog, test_logger):
        """Without explicit options the constructor takes them from the container"""
        services.add_singleton(
            RequestLoggerOptions,
            instance=RequestLoggerOptions(logger=test_logger, message_template="done {request_id}"),
        )
        pipeline = builder.build().use(RequestLoggerMiddleware)

        with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
            await pipeline.invoke("hello")

        assert logged(caplog)[0].getMessage().startswith("done ")

    def test_default_options(self):
        options = RequestLoggerOptions()

        assert options.logger is None
        assert options.level == logging.INFO
        assert options.rethrow is True
