"""Unit tests for settings."""

import pytest
from pydantic import ValidationError

from dreamhooks.config import DispatchSettings, get_settings
from dreamhooks.webhooks.delivery import DeliveryEngine


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("WEBHOOK_TIMEOUT_SECONDS", "WEBHOOK_MAX_ATTEMPTS", "WEBHOOK_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults():
    settings = DispatchSettings(_env_file=None)

    assert settings.timeout_seconds == 5.0
    assert settings.max_attempts == 3
    assert settings.backoff_base_seconds == 1.0
    assert settings.backoff_max_seconds == 30.0
    assert settings.max_concurrent_deliveries == 100
    assert settings.user_agent == "DreamAI-Webhook/1.0"
    assert settings.log_level == "INFO"


def test_env_override(monkeypatch):
    monkeypatch.setenv("WEBHOOK_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("WEBHOOK_MAX_ATTEMPTS", "7")
    monkeypatch.setenv("WEBHOOK_LOG_LEVEL", "debug")

    settings = DispatchSettings(_env_file=None)

    assert settings.timeout_seconds == 2.5
    assert settings.max_attempts == 7
    assert settings.log_level == "DEBUG"


def test_get_settings_cached():
    assert get_settings() is get_settings()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"timeout_seconds": 0},
        {"max_attempts": 0},
        {"backoff_base_seconds": -1},
        {"backoff_base_seconds": 10.0, "backoff_max_seconds": 5.0},
        {"max_concurrent_deliveries": 0},
        {"log_level": "VERBOSE"},
        {"log_format": "xml"},
    ],
)
def test_invalid(kwargs):
    with pytest.raises(ValidationError):
        DispatchSettings(_env_file=None, **kwargs)


def test_engine_uses_settings():
    settings = DispatchSettings(_env_file=None, timeout_seconds=1.5, max_attempts=4)

    engine = DeliveryEngine(settings)

    assert engine.timeout_seconds == 1.5
    assert engine.retry_policy.max_attempts == 4
