from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SessionSettings(BaseSettings):
    """Session timing and logging settings.

    All settings can be configured via environment variables with the prefix
    JANUS_SESSION_. For example, JANUS_SESSION_REQUEST_TIMEOUT_SECONDS=2 sets
    request_timeout_seconds=2.0.
    """

    model_config = SettingsConfigDict(
        env_prefix="JANUS_SESSION_",
        env_file=".env",
        extra="ignore",
    )

    request_timeout_seconds: float = Field(default=5.0, gt=0)
    """How long a request waits for its correlated response."""

    keepalive_interval_seconds: float = Field(default=50.0, gt=0)
    """Idle time after the last outgoing message before a keepalive is sent."""

    cleanup_grace_seconds: float = Field(default=30.0, ge=0)
    """How long a detached plugin stays routable for late push messages."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
