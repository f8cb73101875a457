"""In-memory subscription registry."""

import numbers
import threading
from dataclasses import replace
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Union
from uuid import uuid4

import httpx
import structlog

from .exceptions import InvalidSubscriptionError
from .models import EventType, Subscription

logger = structlog.get_logger(__name__)


def _validate_url(endpoint_url: str) -> str:
    if not isinstance(endpoint_url, str) or not endpoint_url.strip():
        raise InvalidSubscriptionError("endpoint_url must be a non-empty string")

    try:
        url = httpx.URL(endpoint_url.strip())
    except (httpx.InvalidURL, TypeError, ValueError) as e:
        raise InvalidSubscriptionError(f"Invalid endpoint URL {endpoint_url!r}: {e}") from e

    if url.scheme not in ("http", "https"):
        raise InvalidSubscriptionError(
            f"Endpoint URL must be absolute http(s), got {endpoint_url!r}"
        )
    if not url.host:
        raise InvalidSubscriptionError(f"Endpoint URL has no host: {endpoint_url!r}")

    return endpoint_url.strip()


def _normalize_event_types(
    event_types: Union[str, EventType, Iterable[Union[str, EventType]]],
) -> FrozenSet[str]:
    if isinstance(event_types, (str, Enum)):
        event_types = [event_types]

    try:
        items = list(event_types)
    except TypeError as e:
        raise InvalidSubscriptionError("event_types must be a collection of strings") from e

    normalized = set()
    for item in items:
        value = str(item.value) if isinstance(item, Enum) else item
        if not isinstance(value, str) or not value.strip():
            raise InvalidSubscriptionError(f"Invalid event type: {item!r}")
        normalized.add(value)

    if not normalized:
        raise InvalidSubscriptionError("event_types must not be empty")

    return frozenset(normalized)


def _validate_headers(headers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    if headers is None:
        return {}
    if not isinstance(headers, Mapping):
        raise InvalidSubscriptionError("headers must be a mapping of strings")

    validated = {}
    for name, value in headers.items():
        if not isinstance(name, str) or not name.strip() or not isinstance(value, str):
            raise InvalidSubscriptionError(f"Invalid header: {name!r}")
        validated[name] = value
    return validated


def _validate_overrides(
    timeout_seconds: Optional[float],
    max_attempts: Optional[int],
) -> None:
    if timeout_seconds is not None and (
        isinstance(timeout_seconds, bool)
        or not isinstance(timeout_seconds, numbers.Real)
        or timeout_seconds <= 0
    ):
        raise InvalidSubscriptionError("timeout_seconds must be a positive number")
    if max_attempts is not None and (
        isinstance(max_attempts, bool)
        or not isinstance(max_attempts, int)
        or max_attempts < 1
    ):
        raise InvalidSubscriptionError("max_attempts must be an integer >= 1")


class WebhookRegistry:
    """
    Maps subscription ids to subscriptions.

    The registry is the single source of truth for which subscriptions
    match an event type. All operations are synchronous and guarded by a
    lock; readers always get a consistent snapshot.
    """

    def __init__(self):
        self._subscriptions: Dict[str, Subscription] = {}
        self._lock = threading.Lock()

    def add(
        self,
        endpoint_url: str,
        event_types: Union[str, EventType, Iterable[Union[str, EventType]]],
        secret: Optional[str] = None,
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout_seconds: Optional[float] = None,
        max_attempts: Optional[int] = None,
        active: bool = True,
    ) -> str:
        """
        Register a subscriber endpoint.

        Args:
            endpoint_url: Absolute http(s) URL
            event_types: Event types to subscribe to (non-empty)
            secret: Optional signing secret
            headers: Extra headers sent with every request
            timeout_seconds: Per-attempt timeout (engine default when None)
            max_attempts: Attempt budget (engine default when None)
            active: Whether the subscription receives events right away

        Returns:
            The new subscription id

        Raises:
            InvalidSubscriptionError: On a malformed URL or empty event types
        """
        url = _validate_url(endpoint_url)
        types = _normalize_event_types(event_types)

        if secret is not None and (not isinstance(secret, str) or not secret):
            raise InvalidSubscriptionError("secret must be a non-empty string when given")

        custom_headers = _validate_headers(headers)
        _validate_overrides(timeout_seconds, max_attempts)

        subscription = Subscription(
            id=f"wh_{uuid4().hex}",
            endpoint_url=url,
            event_types=types,
            secret=secret,
            active=bool(active),
            headers=custom_headers,
            timeout_seconds=timeout_seconds,
            max_attempts=max_attempts,
        )

        with self._lock:
            self._subscriptions[subscription.id] = subscription

        logger.info(
            "webhook_registered",
            subscription_id=subscription.id,
            url=url,
            event_types=sorted(types),
        )
        return subscription.id

    def remove(self, subscription_id: str) -> bool:
        """Remove a subscription. Returns whether one was actually removed."""
        with self._lock:
            removed = self._subscriptions.pop(subscription_id, None)

        if removed is not None:
            logger.info("webhook_removed", subscription_id=subscription_id)
        return removed is not None

    def set_active(self, subscription_id: str, active: bool) -> bool:
        """Pause or resume a subscription. Returns False for an unknown id."""
        with self._lock:
            subscription = self._subscriptions.get(subscription_id)
            if subscription is None:
                return False
            self._subscriptions[subscription_id] = replace(subscription, active=bool(active))

        logger.info(
            "webhook_resumed" if active else "webhook_paused",
            subscription_id=subscription_id,
        )
        return True

    def get(self, subscription_id: str) -> Optional[Subscription]:
        with self._lock:
            return self._subscriptions.get(subscription_id)

    def list(self) -> List[Subscription]:
        """All subscriptions in insertion order."""
        with self._lock:
            return list(self._subscriptions.values())

    def matching(self, event_type: Union[str, EventType]) -> List[Subscription]:
        """Active subscriptions whose event types contain ``event_type``."""
        if isinstance(event_type, Enum):
            event_type = str(event_type.value)

        with self._lock:
            return [
                s for s in self._subscriptions.values()
                if s.subscribes_to(event_type)
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def __contains__(self, subscription_id: object) -> bool:
        with self._lock:
            return subscription_id in self._subscriptions
