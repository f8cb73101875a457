"""Configuration for webhook dispatch.

All values can be overridden with ``WEBHOOK_``-prefixed environment
variables or a ``.env`` file, e.g. ``WEBHOOK_MAX_ATTEMPTS=5``.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class DispatchSettings(BaseSettings):
    """Delivery engine and logging settings."""

    model_config = SettingsConfigDict(
        env_prefix="WEBHOOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Delivery
    timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Total timeout for a single delivery attempt",
    )
    max_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per subscription before giving up",
    )
    backoff_base_seconds: float = Field(default=1.0, ge=0)
    backoff_max_seconds: float = Field(default=30.0, ge=0)
    backoff_jitter: bool = True
    max_concurrent_deliveries: int = Field(
        default=100,
        ge=1,
        description="Upper bound on HTTP attempts in flight at once",
    )
    user_agent: str = "DreamAI-Webhook/1.0"
    trust_env: bool = Field(
        default=True,
        description="Honour proxy settings from the environment",
    )

    # Logging
    log_level: str = "INFO"
    log_format: Literal["pretty", "json"] = "pretty"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @model_validator(mode="after")
    def validate_backoff(self) -> "DispatchSettings":
        if self.backoff_max_seconds < self.backoff_base_seconds:
            raise ValueError("backoff_max_seconds must be >= backoff_base_seconds")
        return self


@lru_cache
def get_settings() -> DispatchSettings:
    """Get cached settings."""
    return DispatchSettings()
