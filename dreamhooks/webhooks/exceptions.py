"""Exceptions raised by the webhook dispatch subsystem."""

from typing import Optional


class WebhookError(Exception):
    """Base exception for webhook errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidEventError(WebhookError):
    """Raised when an event envelope cannot be built from the given input."""


class InvalidSubscriptionError(WebhookError):
    """Raised when a subscription is rejected on add."""


class SubscriptionNotFoundError(WebhookError):
    """Raised when a subscription id is unknown."""

    def __init__(self, subscription_id: str):
        super().__init__(f"Webhook not found: {subscription_id}")
        self.subscription_id = subscription_id


class DeliveryError(WebhookError):
    """Base class for failures of a single delivery attempt.

    All delivery errors are retryable until the attempt budget runs out.
    """

    retryable = True

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DeliveryTimeoutError(DeliveryError):
    """A single attempt exceeded its timeout."""

    def __init__(self, timeout_seconds: float):
        super().__init__(f"Request timed out after {timeout_seconds:g}s")
        self.timeout_seconds = timeout_seconds


class DeliveryNetworkError(DeliveryError):
    """Connection refused, DNS failure and other transport errors."""


class DeliveryRejectedError(DeliveryError):
    """The subscriber answered with a non-2xx status."""

    def __init__(self, status_code: int, body: Optional[str] = None):
        message = f"HTTP {status_code}"
        if body:
            message = f"{message}: {body}"
        super().__init__(message, status_code=status_code)
        self.body = body


class TerminalDeliveryFailure(WebhookError):
    """Retry budget exhausted for one subscription.

    Reported inside the aggregate delivery result; never raised to the
    producer that triggered the event.
    """

    def __init__(
        self,
        subscription_id: str,
        attempts: int,
        last_error: Optional[DeliveryError] = None,
    ):
        reason = last_error.message if last_error else "unknown error"
        super().__init__(f"Delivery failed after {attempts} attempt(s): {reason}")
        self.subscription_id = subscription_id
        self.attempts = attempts
        self.last_error = last_error
