"""
Webhook dispatch.

Components:
- events.py: Event envelopes and wire serialization
- signing.py: HMAC-SHA256 signature generation and verification
- registry.py: Subscription registry
- delivery.py: Async delivery with retries and failure isolation
- storage.py: Pluggable sinks for delivery attempts
- manager.py: Producer-facing facade
"""

from .delivery import DeliveryEngine, DeliveryHandle, RetryPolicy, calculate_backoff
from .events import EventBuilder, build_event, serialize_event
from .exceptions import (
    DeliveryError,
    DeliveryNetworkError,
    DeliveryRejectedError,
    DeliveryTimeoutError,
    InvalidEventError,
    InvalidSubscriptionError,
    SubscriptionNotFoundError,
    TerminalDeliveryFailure,
    WebhookError,
)
from .manager import WebhookManager
from .models import (
    AttemptOutcome,
    DeliveryAttempt,
    DeliveryFailure,
    DeliveryResult,
    DeliveryStatus,
    Event,
    EventType,
    Subscription,
    SubscriptionResult,
)
from .registry import WebhookRegistry
from .signing import SIGNATURE_HEADER, WebhookSigner, generate_secret, sign, verify
from .storage import DeliveryStore, InMemoryDeliveryStore

__all__ = [
    "AttemptOutcome",
    "DeliveryAttempt",
    "DeliveryEngine",
    "DeliveryError",
    "DeliveryFailure",
    "DeliveryHandle",
    "DeliveryNetworkError",
    "DeliveryRejectedError",
    "DeliveryResult",
    "DeliveryStatus",
    "DeliveryStore",
    "DeliveryTimeoutError",
    "Event",
    "EventBuilder",
    "EventType",
    "InMemoryDeliveryStore",
    "InvalidEventError",
    "InvalidSubscriptionError",
    "RetryPolicy",
    "SIGNATURE_HEADER",
    "Subscription",
    "SubscriptionNotFoundError",
    "SubscriptionResult",
    "TerminalDeliveryFailure",
    "WebhookError",
    "WebhookManager",
    "WebhookRegistry",
    "WebhookSigner",
    "build_event",
    "calculate_backoff",
    "generate_secret",
    "serialize_event",
    "sign",
    "verify",
]
