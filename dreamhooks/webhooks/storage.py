"""Pluggable sinks for delivery attempts."""

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from datetime import timedelta
from typing import Deque, Dict, List, Optional

from .models import AttemptOutcome, DeliveryAttempt, utcnow


class DeliveryStore(ABC):
    """Receives every delivery attempt once it has finished.

    Persistence is up to the implementation; the delivery engine only
    writes to it and never reads back.
    """

    @abstractmethod
    async def record_attempt(self, attempt: DeliveryAttempt) -> None:
        """Record a finished attempt."""


class InMemoryDeliveryStore(DeliveryStore):
    """Keeps the most recent attempts per subscription in memory."""

    def __init__(self, max_attempts_per_subscription: int = 1000):
        self.max_attempts_per_subscription = max_attempts_per_subscription
        self._attempts: Dict[str, Deque[DeliveryAttempt]] = defaultdict(
            lambda: deque(maxlen=self.max_attempts_per_subscription)
        )
        self._lock: Optional[asyncio.Lock] = None

    def _get_lock(self) -> asyncio.Lock:
        # Created on first use so the store can be built outside a running loop.
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def record_attempt(self, attempt: DeliveryAttempt) -> None:
        async with self._get_lock():
            self._attempts[attempt.subscription_id].append(attempt)

    async def get_attempts(
        self,
        subscription_id: str,
        limit: int = 100,
        event_id: Optional[str] = None,
    ) -> List[DeliveryAttempt]:
        """Most recent attempts first."""
        async with self._get_lock():
            attempts = list(self._attempts.get(subscription_id, ()))

        if event_id is not None:
            attempts = [a for a in attempts if a.event_id == event_id]

        attempts.reverse()
        return attempts[:limit]

    async def get_recent_failures(
        self,
        subscription_id: str,
        hours: int = 24,
    ) -> List[DeliveryAttempt]:
        cutoff = utcnow() - timedelta(hours=hours)
        attempts = await self.get_attempts(
            subscription_id, limit=self.max_attempts_per_subscription
        )
        return [
            a for a in attempts
            if a.outcome in (AttemptOutcome.FAILED_RETRYABLE, AttemptOutcome.FAILED_TERMINAL)
            and a.started_at >= cutoff
        ]

    async def clear(self) -> None:
        async with self._get_lock():
            self._attempts.clear()
