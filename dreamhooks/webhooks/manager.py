"""
Webhook Manager

Producer-facing facade: registers subscriber endpoints and triggers events.
"""

from typing import Any, Iterable, List, Mapping, Optional, Union

import httpx
import structlog

from ..config import DispatchSettings, get_settings
from .delivery import DeliveryEngine, DeliveryHandle, RetryPolicy
from .events import EventBuilder, build_event
from .exceptions import SubscriptionNotFoundError
from .models import DeliveryResult, Event, EventType, Subscription, SubscriptionResult
from .registry import WebhookRegistry
from .storage import DeliveryStore

logger = structlog.get_logger(__name__)


class WebhookManager:
    """
    Manages webhook registrations and event delivery.

    Usage:
        async with WebhookManager() as manager:
            webhook_id = manager.add_webhook(
                "https://example.com/hooks", ["dream_created"], secret="s3cr3t"
            )
            result = await manager.trigger("dream_created", {"id": "d1"})
            print(result.to_dict())
    """

    def __init__(
        self,
        settings: Optional[DispatchSettings] = None,
        *,
        registry: Optional[WebhookRegistry] = None,
        engine: Optional[DeliveryEngine] = None,
        retry_policy: Optional[RetryPolicy] = None,
        client: Optional[httpx.AsyncClient] = None,
        store: Optional[DeliveryStore] = None,
    ):
        self.settings = settings or get_settings()
        self.registry = registry or WebhookRegistry()
        self.engine = engine or DeliveryEngine(
            self.settings,
            retry_policy=retry_policy,
            client=client,
            store=store,
        )

    async def start(self) -> None:
        await self.engine.start()
        logger.info("webhook_manager_started", webhooks=len(self.registry))

    async def stop(self) -> None:
        await self.engine.stop()
        logger.info("webhook_manager_stopped")

    async def __aenter__(self) -> "WebhookManager":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    # Webhook CRUD

    def add_webhook(
        self,
        url: str,
        event_types: Union[str, EventType, Iterable[Union[str, EventType]]],
        secret: Optional[str] = None,
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout_seconds: Optional[float] = None,
        max_attempts: Optional[int] = None,
        active: bool = True,
    ) -> str:
        """Register a webhook endpoint. Returns its id."""
        return self.registry.add(
            url,
            event_types,
            secret,
            headers=headers,
            timeout_seconds=timeout_seconds,
            max_attempts=max_attempts,
            active=active,
        )

    def remove_webhook(self, webhook_id: str) -> bool:
        """Remove a webhook. In-flight deliveries to it still complete."""
        return self.registry.remove(webhook_id)

    def get_webhook(self, webhook_id: str) -> Optional[Subscription]:
        return self.registry.get(webhook_id)

    def list_webhooks(self) -> List[Subscription]:
        return self.registry.list()

    def set_webhook_active(self, webhook_id: str, active: bool) -> bool:
        """Pause or resume a webhook. Paused webhooks receive no events."""
        return self.registry.set_active(webhook_id, active)

    def pause_webhook(self, webhook_id: str) -> bool:
        return self.registry.set_active(webhook_id, False)

    def resume_webhook(self, webhook_id: str) -> bool:
        return self.registry.set_active(webhook_id, True)

    # Event triggering

    def dispatch(
        self,
        event_type: Union[str, EventType],
        payload: Any,
    ) -> DeliveryHandle:
        """
        Build an event and start delivering it.

        Raises:
            InvalidEventError: On an empty event type or non-JSON payload
        """
        return self.dispatch_event(build_event(event_type, payload))

    def dispatch_event(self, event: Event) -> DeliveryHandle:
        """Start delivering a pre-built event to its current subscribers."""
        subscriptions = self.registry.matching(event.type)

        if not subscriptions:
            logger.debug("webhook_no_subscribers", event_type=event.type, event_id=event.id)

        return self.engine.dispatch(event, subscriptions)

    async def trigger(
        self,
        event_type: Union[str, EventType],
        payload: Any,
    ) -> DeliveryResult:
        """
        Trigger a webhook event.

        Sends the event to every subscribed webhook and waits until each one
        has succeeded or exhausted its retries.

        Args:
            event_type: Type of event
            payload: Event data (any JSON-serializable value)

        Returns:
            Aggregate delivery result

        Raises:
            InvalidEventError: On malformed input
        """
        return await self.dispatch(event_type, payload)

    async def send_event(self, event: Event) -> DeliveryResult:
        """Deliver an envelope produced by ``EventBuilder``."""
        return await self.dispatch_event(event)

    async def test_webhook(self, webhook_id: str) -> SubscriptionResult:
        """
        Send a test ping to one webhook regardless of its event types.

        Raises:
            SubscriptionNotFoundError: If the webhook does not exist
        """
        subscription = self.registry.get(webhook_id)
        if subscription is None:
            raise SubscriptionNotFoundError(webhook_id)

        result = await self.engine.deliver(EventBuilder.test_ping(), [subscription])
        return result.results[0]
