"""Tests for configuration module"""

from datetime import timedelta

import pytest
from pydantic import ValidationError


class TestSettings:
    """Tests for Settings configuration class"""

    def test_defaults(self):
        """Test default configuration"""
        from conduit.config import Settings

        settings = Settings(_env_file=None)
        assert settings.request_timeout is None
        assert settings.middleware_plugins is None
        assert settings.log_level == "info"
        assert settings.log_format == "text"
        assert settings.get_request_timeout() is None

    def test_request_timeout_seconds_from_env(self, monkeypatch):
        """Plain seconds are accepted"""
        from conduit.config import Settings

        monkeypatch.setenv("REQUEST_TIMEOUT", "30")
        settings = Settings(_env_file=None)
        assert settings.request_timeout == timedelta(seconds=30)
        assert settings.get_request_timeout() == 30.0

    def test_request_timeout_iso_duration_from_env(self, monkeypatch):
        """ISO-8601 durations are accepted"""
        from conduit.config import Settings

        monkeypatch.setenv("REQUEST_TIMEOUT", "PT1.5S")
        assert Settings(_env_file=None).get_request_timeout() == 1.5

    def test_negative_timeout_rejected(self):
        """Negative timeouts are a configuration error"""
        from conduit.config import Settings

        with pytest.raises(ValidationError):
            Settings(request_timeout=-1)

    def test_zero_timeout_allowed(self):
        from conduit.config import Settings

        assert Settings(request_timeout=0).get_request_timeout() == 0.0

    def test_middleware_plugins_from_env(self, monkeypatch):
        """Whitelist is read as a JSON list"""
        from conduit.config import Settings

        monkeypatch.setenv("MIDDLEWARE_PLUGINS", '["lower", "upper"]')
        assert Settings(_env_file=None).middleware_plugins == ["lower", "upper"]

    def test_case_insensitive_env(self, monkeypatch):
        from conduit.config import Settings

        monkeypatch.setenv("log_level", "debug")
        assert Settings(_env_file=None).log_level == "debug"

    def test_invalid_log_format_rejected(self):
        from conduit.config import Settings

        with pytest.raises(ValidationError):
            Settings(log_format="xml")
