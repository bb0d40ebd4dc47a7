"""Configuration management for conduit pipelines"""

from datetime import timedelta
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pipeline settings, read from the environment and `.env`.

    Only REQUEST_TIMEOUT drives the pipeline itself; the rest configures the
    hosts (logging, middleware discovery).

    REQUEST_TIMEOUT accepts seconds ("30", "0.5") or an ISO-8601 duration
    ("PT30S"). Unset means invocations never time out.
    """

    # ===== Pipeline =====
    request_timeout: timedelta | None = Field(
        default=None,
        description="Per-invocation timeout; unset = no timeout"
    )

    # ===== Middleware Discovery =====
    # None = load every installed middleware entry point
    middleware_plugins: list[str] | None = Field(
        default=None,
        description="Whitelist of middleware entry point names to load"
    )

    # ===== Application Settings =====
    environment: str = "production"
    log_level: str = "info"
    log_format: Literal["text", "json"] = "text"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    @field_validator('request_timeout', mode='before')
    @classmethod
    def parse_seconds(cls, v):
        """Accept plain seconds from the environment ("30", "0.5")"""
        if isinstance(v, str):
            try:
                return float(v)
            except ValueError:
                return v
        return v

    @field_validator('request_timeout')
    @classmethod
    def validate_request_timeout(cls, v):
        """Reject negative timeouts"""
        if v is not None and v < timedelta(0):
            raise ValueError("request_timeout must not be negative")
        return v

    def get_request_timeout(self) -> float | None:
        """Get the request timeout in seconds (None = no timeout)"""
        if self.request_timeout is None:
            return None
        return self.request_timeout.total_seconds()
