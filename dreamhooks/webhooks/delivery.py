"""Webhook delivery engine."""

import asyncio
import random
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set

import httpx
import structlog

from ..config import DispatchSettings, get_settings
from .events import serialize_event
from .exceptions import (
    DeliveryError,
    DeliveryNetworkError,
    DeliveryRejectedError,
    DeliveryTimeoutError,
    TerminalDeliveryFailure,
)
from .models import (
    AttemptOutcome,
    DeliveryAttempt,
    DeliveryResult,
    DeliveryStatus,
    Event,
    Subscription,
    SubscriptionResult,
    utcnow,
)
from .signing import SIGNATURE_HEADER, sign
from .storage import DeliveryStore

logger = structlog.get_logger(__name__)

# Keeps 2 ** exponent within float range
_MAX_BACKOFF_EXPONENT = 62


def calculate_backoff(
    attempt: int,
    base: float = 1.0,
    max_backoff: float = 30.0,
    jitter: bool = False,
) -> float:
    """
    Delay before the retry that follows ``attempt`` (1-based).

    Exponential backoff: base * 2^(attempt-1), with up to 10% jitter,
    capped at ``max_backoff``.
    """
    if attempt < 1:
        raise ValueError("attempt must be >= 1")

    delay = base * (2 ** min(attempt - 1, _MAX_BACKOFF_EXPONENT))

    if jitter:
        delay += delay * random.uniform(0, 0.1)

    return min(delay, max_backoff)


@dataclass(frozen=True)
class RetryPolicy:
    """How many attempts a subscription gets and how long to wait between them."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: bool = True

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("backoff delays must be >= 0")

    @classmethod
    def from_settings(cls, settings: DispatchSettings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.backoff_base_seconds,
            max_delay=settings.backoff_max_seconds,
            jitter=settings.backoff_jitter,
        )

    def delay_for(self, attempt: int) -> float:
        return calculate_backoff(
            attempt,
            base=self.base_delay,
            max_backoff=self.max_delay,
            jitter=self.jitter,
        )


class DeliveryHandle:
    """
    Handle for one dispatched event.

    Awaiting the handle yields the aggregate ``DeliveryResult`` once every
    subscription has reached a terminal state. Partial failure is a normal
    result, not an exception.
    """

    def __init__(self, event: Event, subscription_ids: List[str]):
        self.event = event
        self.subscription_ids = subscription_ids
        self._cancelled = asyncio.Event()
        self._task: Optional["asyncio.Task[DeliveryResult]"] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop issuing new attempts.

        Attempts already in flight finish or time out on their own;
        subscriptions that never reached a terminal state are reported
        as cancelled.
        """
        if not self._cancelled.is_set():
            self._cancelled.set()
            logger.info("webhook_dispatch_cancelled", event_id=self.event.id)

    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def wait_cancelled(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; returns early on cancellation."""
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def result(self) -> DeliveryResult:
        if self._task is None:
            raise RuntimeError("Delivery has not been started")
        try:
            return await asyncio.shield(self._task)
        except asyncio.CancelledError:
            # The awaiting caller went away; stop retrying in the background
            self.cancel()
            raise

    def __await__(self):
        return self.result().__await__()


class DeliveryEngine:
    """
    Delivers events to subscriptions with retry support.

    Features:
    - One asyncio task per subscription; failures are isolated
    - Sequential retries with exponential backoff per subscription
    - HMAC signature header when the subscription has a secret
    - Bounded total timeout per attempt
    - Global cap on concurrent HTTP attempts
    - Optional delivery store receiving every attempt
    """

    def __init__(
        self,
        settings: Optional[DispatchSettings] = None,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        client: Optional[httpx.AsyncClient] = None,
        store: Optional[DeliveryStore] = None,
    ):
        self.settings = settings or get_settings()
        self.retry_policy = retry_policy or RetryPolicy.from_settings(self.settings)
        self.timeout_seconds = self.settings.timeout_seconds
        self.store = store

        self._client = client
        self._owns_client = client is None
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._handles: Set[DeliveryHandle] = set()

    async def start(self) -> None:
        self._get_client()
        logger.info(
            "delivery_engine_started",
            max_attempts=self.retry_policy.max_attempts,
            timeout_seconds=self.timeout_seconds,
        )

    async def stop(self) -> None:
        """Cancel outstanding deliveries, wait for them, close the HTTP client."""
        handles = list(self._handles)
        for handle in handles:
            handle.cancel()
        if handles:
            await asyncio.gather(
                *(handle.result() for handle in handles),
                return_exceptions=True,
            )

        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

        logger.info("delivery_engine_stopped")

    async def __aenter__(self) -> "DeliveryEngine":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    @property
    def pending(self) -> int:
        """Dispatched events that have not finished yet."""
        return len(self._handles)

    # Dispatch

    def dispatch(
        self,
        event: Event,
        subscriptions: Iterable[Subscription],
    ) -> DeliveryHandle:
        """
        Start delivering an event to every given subscription.

        Must be called from a running event loop. Returns immediately; all
        per-subscription tasks have been started when it does.

        Args:
            event: The event envelope
            subscriptions: Subscriptions resolved for this event

        Returns:
            Handle resolving to the aggregate result
        """
        subscriptions = list(subscriptions)
        handle = DeliveryHandle(event, [s.id for s in subscriptions])
        body = serialize_event(event)

        tasks = [
            asyncio.create_task(self._deliver_with_retry(event, subscription, body, handle))
            for subscription in subscriptions
        ]
        handle._task = asyncio.create_task(self._collect(event, tasks))

        self._handles.add(handle)
        handle._task.add_done_callback(lambda _: self._handles.discard(handle))

        logger.info(
            "webhook_event_dispatched",
            event_id=event.id,
            event_type=event.type,
            subscriptions=len(subscriptions),
        )
        return handle

    async def deliver(
        self,
        event: Event,
        subscriptions: Iterable[Subscription],
    ) -> DeliveryResult:
        """Dispatch and wait for all subscriptions to finish."""
        return await self.dispatch(event, subscriptions)

    async def _collect(
        self,
        event: Event,
        tasks: List["asyncio.Task[SubscriptionResult]"],
    ) -> DeliveryResult:
        results = await asyncio.gather(*tasks)
        result = DeliveryResult(event_id=event.id, results=list(results))

        logger.info(
            "webhook_event_completed",
            event_id=event.id,
            event_type=event.type,
            total=result.total,
            succeeded=result.succeeded,
            failed=len(result.failed),
        )
        return result

    # Per-subscription state machine

    async def _deliver_with_retry(
        self,
        event: Event,
        subscription: Subscription,
        body: bytes,
        handle: DeliveryHandle,
    ) -> SubscriptionResult:
        """Deliver an event to one subscription with retry logic."""
        result = SubscriptionResult(
            subscription_id=subscription.id,
            endpoint_url=subscription.endpoint_url,
            status=DeliveryStatus.FAILED,
        )
        log = logger.bind(
            subscription_id=subscription.id,
            event_id=event.id,
            event_type=event.type,
        )
        max_attempts = subscription.max_attempts or self.retry_policy.max_attempts
        last_error: Optional[DeliveryError] = None

        try:
            for attempt_number in range(1, max_attempts + 1):
                if handle.cancelled:
                    result.status = DeliveryStatus.CANCELLED
                    result.error = "Delivery cancelled before completion"
                    log.info("webhook_delivery_cancelled", attempts=len(result.attempts))
                    return result

                attempt = DeliveryAttempt(
                    subscription_id=subscription.id,
                    event_id=event.id,
                    attempt_number=attempt_number,
                )
                result.attempts.append(attempt)

                error = await self._send(event, subscription, body, attempt)
                attempt.finished_at = utcnow()

                if error is None:
                    attempt.outcome = AttemptOutcome.SUCCESS
                    await self._record(attempt)
                    result.status = DeliveryStatus.SUCCESS
                    log.info(
                        "webhook_delivered",
                        url=subscription.endpoint_url,
                        attempt=attempt_number,
                        status_code=attempt.http_status,
                        duration_ms=attempt.duration_ms,
                    )
                    return result

                last_error = error
                attempt.error = error.message

                if attempt_number >= max_attempts:
                    attempt.outcome = AttemptOutcome.FAILED_TERMINAL
                    await self._record(attempt)
                    break

                attempt.outcome = AttemptOutcome.FAILED_RETRYABLE
                await self._record(attempt)

                delay = self.retry_policy.delay_for(attempt_number)
                log.warning(
                    "webhook_delivery_retrying",
                    url=subscription.endpoint_url,
                    attempt=attempt_number,
                    max_attempts=max_attempts,
                    delay_seconds=round(delay, 3),
                    error=error.message,
                )
                if delay > 0:
                    await handle.wait_cancelled(delay)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.exception("webhook_delivery_error", url=subscription.endpoint_url)
            last_error = DeliveryError(f"Delivery error: {e}")
            if result.attempts and result.attempts[-1].finished_at is None:
                attempt = result.attempts[-1]
                attempt.finished_at = utcnow()
                attempt.outcome = AttemptOutcome.FAILED_TERMINAL
                attempt.error = last_error.message
                await self._record(attempt)

        failure = TerminalDeliveryFailure(
            subscription_id=subscription.id,
            attempts=len(result.attempts),
            last_error=last_error,
        )
        result.status = DeliveryStatus.FAILED
        result.error = failure.message
        log.error(
            "webhook_delivery_failed",
            url=subscription.endpoint_url,
            attempts=failure.attempts,
            error=failure.message,
        )
        return result

    async def _send(
        self,
        event: Event,
        subscription: Subscription,
        body: bytes,
        attempt: DeliveryAttempt,
    ) -> Optional[DeliveryError]:
        """Perform a single HTTP attempt. Returns None on a 2xx response."""
        timeout = subscription.timeout_seconds or self.timeout_seconds

        # Custom headers first; standard and signature headers replace them by name.
        headers = httpx.Headers(subscription.headers)
        headers.update(
            {
                "Content-Type": "application/json",
                "User-Agent": self.settings.user_agent,
                "X-Webhook-Event": event.type,
                "X-Webhook-Id": event.id,
                "X-Webhook-Timestamp": str(event.timestamp),
                "X-Webhook-Attempt": str(attempt.attempt_number),
            }
        )
        if subscription.secret is not None:
            headers[SIGNATURE_HEADER] = sign(body, subscription.secret)

        client = self._get_client()

        async with self._get_semaphore():
            attempt.started_at = utcnow()
            try:
                response = await asyncio.wait_for(
                    client.post(
                        subscription.endpoint_url,
                        content=body,
                        headers=headers,
                        timeout=timeout,
                    ),
                    timeout=timeout,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException):
                return DeliveryTimeoutError(timeout)
            except httpx.HTTPError as e:
                return DeliveryNetworkError(f"Connection error: {str(e) or type(e).__name__}")

        attempt.http_status = response.status_code
        if response.is_success:
            return None

        return DeliveryRejectedError(response.status_code, response.text[:200] or None)

    async def _record(self, attempt: DeliveryAttempt) -> None:
        if self.store is None:
            return
        try:
            await self.store.record_attempt(attempt)
        except Exception:
            logger.exception(
                "delivery_store_error",
                subscription_id=attempt.subscription_id,
                event_id=attempt.event_id,
            )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                follow_redirects=False,
                trust_env=self.settings.trust_env,
            )
            self._owns_client = True
        return self._client

    def _get_semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.settings.max_concurrent_deliveries)
        return self._semaphore
