"""Shared pytest fixtures for testing."""

import socket
from typing import AsyncGenerator, Callable

import httpx
import pytest
import pytest_asyncio

from dreamhooks.config import DispatchSettings
from dreamhooks.testing import MockWebhookServer
from dreamhooks.webhooks import Subscription, WebhookManager


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def settings() -> DispatchSettings:
    """Fast settings: short timeout, no backoff delay, no proxies."""
    return DispatchSettings(
        _env_file=None,
        timeout_seconds=2.0,
        max_attempts=3,
        backoff_base_seconds=0.0,
        backoff_max_seconds=0.0,
        backoff_jitter=False,
        trust_env=False,
    )


# =============================================================================
# Server Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def mock_server() -> AsyncGenerator[MockWebhookServer, None]:
    """Running mock webhook receiver on a free port."""
    server = await MockWebhookServer.create()
    yield server
    await server.stop()


@pytest_asyncio.fixture
async def manager(settings: DispatchSettings) -> AsyncGenerator[WebhookManager, None]:
    """Started webhook manager using the fast settings."""
    async with WebhookManager(settings) as m:
        yield m


@pytest.fixture
def closed_port_url() -> str:
    """URL of a local port nothing listens on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"http://127.0.0.1:{port}/webhook"


# =============================================================================
# HTTP Fixtures
# =============================================================================


@pytest.fixture
def make_client() -> Callable[[Callable], httpx.AsyncClient]:
    """Build an AsyncClient backed by a MockTransport handler."""
    def _make(handler: Callable) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return _make


@pytest.fixture
def make_subscription() -> Callable[..., Subscription]:
    """Build a subscription without going through a registry."""
    counter = {"n": 0}

    def _make(
        url: str = "https://hooks.example.com/webhook",
        event_types=("dream_created",),
        secret: str = None,
        **kwargs,
    ) -> Subscription:
        counter["n"] += 1
        return Subscription(
            id=f"wh_test{counter['n']}",
            endpoint_url=url,
            event_types=frozenset(event_types),
            secret=secret,
            **kwargs,
        )

    return _make
