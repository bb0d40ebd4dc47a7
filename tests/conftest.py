"""Pytest fixtures and configuration for conduit tests"""

import os

import pytest

# Tests must not pick up a timeout or whitelist from the developer's environment
for _var in ("REQUEST_TIMEOUT", "MIDDLEWARE_PLUGINS", "LOG_FORMAT"):
    os.environ.pop(_var, None)

from conduit.builder import PipelineBuilder
from conduit.config import Settings
from conduit.middleware.testing import CallLog
from conduit.services import ServiceCollection


@pytest.fixture
def settings():
    """Settings without a request timeout"""
    return Settings(request_timeout=None)


@pytest.fixture
def services():
    """Empty service collection"""
    return ServiceCollection()


@pytest.fixture
def builder(settings, services):
    """Pipeline builder over the settings and services fixtures"""
    return PipelineBuilder(settings, services)


@pytest.fixture
def pipeline(builder):
    """A string pipeline without middleware"""
    pipeline = builder.build()
    yield pipeline
    pipeline.close()


@pytest.fixture
def call_log():
    """Shared record for RecordingMiddleware / MockMiddleware"""
    return CallLog()
