"""Webhook payload signing and verification."""

import hashlib
import hmac
import secrets
import string
from typing import Any, Dict, Union

SIGNATURE_HEADER = "X-Webhook-Signature"

_HEX_DIGITS = frozenset(string.hexdigits)
_SIGNATURE_LENGTH = hashlib.sha256().digest_size * 2


def _to_bytes(payload: Union[str, bytes]) -> bytes:
    if isinstance(payload, str):
        return payload.encode("utf-8")
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return bytes(payload)
    raise TypeError(f"payload must be str or bytes, not {type(payload).__name__}")


def sign(payload: Union[str, bytes], secret: str) -> str:
    """
    Sign a payload.

    The signature is the lowercase hex HMAC-SHA256 of the exact payload bytes,
    keyed with the subscription secret.

    Args:
        payload: The serialized body (str is encoded as UTF-8)
        secret: The subscription secret

    Returns:
        Hex digest string

    Raises:
        TypeError: If the payload is not str or bytes-like
    """
    return hmac.new(
        secret.encode("utf-8"),
        _to_bytes(payload),
        hashlib.sha256,
    ).hexdigest()


def verify(payload: Union[str, bytes], signature: Any, secret: Any) -> bool:
    """
    Verify a webhook signature.

    Never raises: malformed input of any kind returns False.

    Args:
        payload: The raw body exactly as received
        signature: The X-Webhook-Signature header value
        secret: The subscription secret

    Returns:
        True if the signature matches
    """
    if not isinstance(signature, str) or not isinstance(secret, str):
        return False

    candidate = signature.strip().lower()
    if len(candidate) != _SIGNATURE_LENGTH or not _HEX_DIGITS.issuperset(candidate):
        return False

    try:
        expected = sign(payload, secret)
    except (TypeError, ValueError):
        return False

    # Constant-time comparison
    return hmac.compare_digest(expected, candidate)


def generate_secret(length: int = 32) -> str:
    """
    Generate a random webhook secret.

    Args:
        length: Length of the secret in bytes

    Returns:
        Hex-encoded secret string
    """
    return secrets.token_hex(length)


class WebhookSigner:
    """Signs and verifies payloads with one fixed secret."""

    def __init__(self, secret: str):
        self.secret = secret

    def sign(self, payload: Union[str, bytes]) -> str:
        return sign(payload, self.secret)

    def verify(self, payload: Union[str, bytes], signature: Any) -> bool:
        return verify(payload, signature, self.secret)

    def headers_for(self, payload: Union[str, bytes]) -> Dict[str, str]:
        """Headers a sender attaches to a signed body."""
        return {SIGNATURE_HEADER: self.sign(payload)}
