"""
DreamAI Webhooks
================

At-least-once webhook delivery for DreamAI events.

This package provides:
- Subscription registry for subscriber endpoints
- Signed HTTP delivery with retries and failure isolation
- A mock webhook receiver for tests and local development
- The ``dreamhooks`` command line tool
"""

from dreamhooks.webhooks import (
    EventBuilder,
    WebhookManager,
    WebhookRegistry,
    sign,
    verify,
)

__version__ = "1.0.0"

__all__ = [
    "EventBuilder",
    "WebhookManager",
    "WebhookRegistry",
    "sign",
    "verify",
    "__version__",
]
