"""Test helpers for observing webhook deliveries."""

from .mock_server import MockWebhookServer, ReceivedWebhook

__all__ = ["MockWebhookServer", "ReceivedWebhook"]
