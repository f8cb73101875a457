"""Event envelope construction and wire serialization."""

import copy
import json
import numbers
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union
from uuid import uuid4

from .exceptions import InvalidEventError
from .models import Event, EventType


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _event_type_value(event_type: Union[str, EventType]) -> str:
    if isinstance(event_type, Enum):
        return str(event_type.value)
    return event_type


def _require(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidEventError(f"{name} must be a non-empty string")
    return value


def generate_event_id() -> str:
    return f"evt_{uuid4().hex}"


def build_event(
    event_type: Union[str, EventType],
    payload: Any,
    *,
    event_id: Optional[str] = None,
    timestamp: Optional[int] = None,
) -> Event:
    """
    Build an immutable event envelope.

    Args:
        event_type: Event type name (e.g. ``dream_created``)
        payload: Any JSON-serializable value
        event_id: Explicit id (generated when omitted)
        timestamp: Epoch milliseconds (defaults to now)

    Returns:
        The event envelope

    Raises:
        InvalidEventError: If the type is empty or the payload is not JSON
    """
    event_type = _require(_event_type_value(event_type), "event_type")

    try:
        json.dumps(payload, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise InvalidEventError(f"payload is not JSON serializable: {e}") from e

    if timestamp is None:
        timestamp = int(time.time() * 1000)
    elif isinstance(timestamp, bool) or not isinstance(timestamp, int) or timestamp < 0:
        raise InvalidEventError("timestamp must be a non-negative integer (epoch ms)")

    return Event(
        id=event_id or generate_event_id(),
        type=event_type,
        payload=copy.deepcopy(payload),
        timestamp=timestamp,
    )


def serialize_event(event: Event) -> bytes:
    """Serialize an event to the exact bytes POSTed (and signed)."""
    return json.dumps(
        event.to_wire(),
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


class EventBuilder:
    """Constructors for the known event shapes."""

    @staticmethod
    def dream_created(dream_id: str, user_id: str, title: str, content: str) -> Event:
        payload = {
            "dream_id": _require(dream_id, "dream_id"),
            "user_id": _require(user_id, "user_id"),
            "title": _require(title, "title"),
            "content": _require(content, "content"),
            "created_at": _now_iso(),
        }
        return build_event(EventType.DREAM_CREATED, payload)

    @staticmethod
    def user_signup(user_id: str, email: str, plan: str = "free") -> Event:
        email = _require(email, "email")
        if "@" not in email:
            raise InvalidEventError(f"Invalid email address: {email}")

        payload = {
            "user_id": _require(user_id, "user_id"),
            "email": email,
            "plan": _require(plan, "plan"),
            "signup_at": _now_iso(),
        }
        return build_event(EventType.USER_SIGNUP, payload)

    @staticmethod
    def payment_success(
        user_id: str,
        amount: float,
        plan: str,
        currency: str = "USD",
    ) -> Event:
        if (
            isinstance(amount, bool)
            or not isinstance(amount, numbers.Real)
            or amount < 0
        ):
            raise InvalidEventError("amount must be a non-negative number")

        payload = {
            "user_id": _require(user_id, "user_id"),
            "amount": amount,
            "plan": _require(plan, "plan"),
            "currency": _require(currency, "currency").upper(),
            "paid_at": _now_iso(),
        }
        return build_event(EventType.PAYMENT_SUCCESS, payload)

    @staticmethod
    def analysis_complete(
        dream_id: str,
        user_id: str,
        analysis: str,
        confidence: float,
    ) -> Event:
        if (
            isinstance(confidence, bool)
            or not isinstance(confidence, numbers.Real)
            or not 0 <= confidence <= 1
        ):
            raise InvalidEventError("confidence must be a number between 0 and 1")

        payload = {
            "dream_id": _require(dream_id, "dream_id"),
            "user_id": _require(user_id, "user_id"),
            "analysis": _require(analysis, "analysis"),
            "confidence": confidence,
            "analyzed_at": _now_iso(),
        }
        return build_event(EventType.ANALYSIS_COMPLETE, payload)

    @staticmethod
    def test_ping(message: str = "This is a test webhook event") -> Event:
        payload: Dict[str, Any] = {
            "test": True,
            "message": _require(message, "message"),
            "sent_at": _now_iso(),
        }
        return build_event(EventType.TEST_PING, payload)
