"""Webhook data models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventType(str, Enum):
    """Known webhook event types."""

    DREAM_CREATED = "dream_created"
    USER_SIGNUP = "user_signup"
    PAYMENT_SUCCESS = "payment_success"
    ANALYSIS_COMPLETE = "analysis_complete"

    # Connectivity check
    TEST_PING = "webhook.test"


class AttemptOutcome(str, Enum):
    """Outcome of a single delivery attempt."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED_RETRYABLE = "failed_retryable"
    FAILED_TERMINAL = "failed_terminal"


class DeliveryStatus(str, Enum):
    """Terminal status of one subscription's delivery."""
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Event:
    """Canonical event envelope. Built by ``build_event``."""
    id: str
    type: str
    payload: Any
    timestamp: int  # epoch milliseconds

    def to_wire(self) -> Dict[str, Any]:
        """Body fields sent to subscribers."""
        return {
            "event": self.type,
            "payload": self.payload,
            "timestamp": self.timestamp,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "payload": self.payload,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class Subscription:
    """A registered endpoint with the event types it receives.

    ``timeout_seconds`` and ``max_attempts`` override the engine defaults
    when set. ``headers`` are sent with every request to the endpoint.
    """
    id: str
    endpoint_url: str
    event_types: FrozenSet[str]
    secret: Optional[str] = None
    active: bool = True
    headers: Dict[str, str] = field(default_factory=dict, hash=False)
    timeout_seconds: Optional[float] = None
    max_attempts: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)

    def subscribes_to(self, event_type: str) -> bool:
        return self.active and event_type in self.event_types

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary. The secret is never included."""
        return {
            "id": self.id,
            "endpoint_url": self.endpoint_url,
            "event_types": sorted(self.event_types),
            "has_secret": self.secret is not None,
            "active": self.active,
            "header_names": sorted(self.headers),
            "timeout_seconds": self.timeout_seconds,
            "max_attempts": self.max_attempts,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class DeliveryAttempt:
    """A single HTTP call for one (subscription, event) pair."""
    subscription_id: str
    event_id: str
    attempt_number: int
    started_at: datetime = field(default_factory=utcnow)
    outcome: AttemptOutcome = AttemptOutcome.PENDING
    http_status: Optional[int] = None
    error: Optional[str] = None
    finished_at: Optional[datetime] = None

    @property
    def duration_ms(self) -> Optional[int]:
        if self.finished_at is None:
            return None
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subscription_id": self.subscription_id,
            "event_id": self.event_id,
            "attempt_number": self.attempt_number,
            "outcome": self.outcome.value,
            "http_status": self.http_status,
            "error": self.error,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_ms": self.duration_ms,
        }


@dataclass
class SubscriptionResult:
    """Terminal report for one subscription's delivery of an event."""
    subscription_id: str
    endpoint_url: str
    status: DeliveryStatus
    attempts: List[DeliveryAttempt] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == DeliveryStatus.SUCCESS

    @property
    def total_attempts(self) -> int:
        return len(self.attempts)

    @property
    def last_attempt(self) -> Optional[DeliveryAttempt]:
        return self.attempts[-1] if self.attempts else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subscription_id": self.subscription_id,
            "endpoint_url": self.endpoint_url,
            "status": self.status.value,
            "error": self.error,
            "attempts": [a.to_dict() for a in self.attempts],
        }


@dataclass(frozen=True)
class DeliveryFailure:
    subscription_id: str
    error: str


@dataclass
class DeliveryResult:
    """Aggregate outcome of delivering one event to its subscribers."""
    event_id: str
    results: List[SubscriptionResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.succeeded)

    @property
    def failed(self) -> List[DeliveryFailure]:
        return [
            DeliveryFailure(
                subscription_id=r.subscription_id,
                error=r.error or r.status.value,
            )
            for r in self.results
            if not r.succeeded
        ]

    def get(self, subscription_id: str) -> Optional[SubscriptionResult]:
        for result in self.results:
            if result.subscription_id == subscription_id:
                return result
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": [
                {"subscription_id": f.subscription_id, "error": f.error}
                for f in self.failed
            ],
        }
