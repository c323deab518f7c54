"""
Abstract payment provider interface.

Every provider adapter (Midtrans, Xendit, ...) implements this capability
set so the checkout route and the webhook worker never branch on provider
names. Adapters are immutable after construction and safe to share between
concurrent requests.
"""

import json
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

from paylink.errors import MalformedPayloadError
from paylink.models.enums import TransactionStatus

ORDER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
MAX_ORDER_ID_LENGTH = 50


@dataclass(frozen=True)
class PaymentResult:
    """Result of creating a payment with the provider."""

    provider_tx_id: str  # Provider-side reference (token, invoice id)
    checkout_url: str  # Absolute HTTPS hosted checkout URL


@dataclass(frozen=True)
class Verification:
    """Outcome of webhook signature verification."""

    event_id: str
    valid: bool


@dataclass(frozen=True)
class Notification:
    """A verified webhook body mapped onto the local transaction lifecycle."""

    event_id: str  # Canonical idempotency key for (provider, event_id)
    provider_tx_id: str  # Our order reference, as sent at checkout
    status: Optional[TransactionStatus]  # None: no lifecycle change
    raw_status: str = ""


class PaymentProvider(ABC):
    """Abstract base class for payment provider adapters."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier (e.g. 'midtrans')."""
        ...

    @abstractmethod
    async def create_payment(self, tx: Any) -> PaymentResult:
        """
        Create a payment intent with the provider for a PENDING transaction.

        Raises:
            InvalidArgumentError: Amount, order id or currency rejected locally.
            ProviderUnavailableError: Provider could not be reached.
        """
        ...

    @abstractmethod
    def verify_signature(self, headers: Mapping[str, str], body: bytes) -> Verification:
        """
        Authenticate a webhook delivery.

        Must be side-effect free. Any comparison involving the provider
        secret runs in constant time.

        Raises:
            MalformedPayloadError: Body is not parseable or lacks required fields.
        """
        ...

    @abstractmethod
    async def get_transaction_status(self, provider_tx_id: str) -> str:
        """
        Fetch the provider's view of a transaction status.

        Raises:
            InvalidArgumentError: Empty provider_tx_id.
            NotFoundError: Provider does not know the transaction.
            ProviderUnavailableError: Provider could not be reached.
        """
        ...

    @abstractmethod
    def parse_notification(self, body: bytes, event_id: str = "") -> Notification:
        """
        Map a verified webhook body onto a Notification.

        ``event_id`` is the identifier derived when the webhook was verified;
        adapters whose payload alone cannot identify the delivery use it.
        """
        ...


def is_valid_order_id(order_id: Optional[str], max_length: int = MAX_ORDER_ID_LENGTH) -> bool:
    """Order ids are 1..max_length chars of alphanumerics, dash and underscore."""
    if not order_id or len(order_id) > max_length:
        return False
    return ORDER_ID_PATTERN.fullmatch(order_id) is not None


def constant_time_compare(expected: str, given: str) -> bool:
    """
    Compare two strings without leaking the position of the first mismatch.

    Every byte pair is XOR-ed into an accumulator; the loop always runs to
    the end. Length is not secret (signatures are fixed-width hex digests),
    so a length mismatch returns early.
    """
    a = expected.encode("utf-8")
    b = given.encode("utf-8")
    if len(a) != len(b):
        return False
    result = 0
    for x, y in zip(a, b):
        result |= x ^ y
    return result == 0


def load_json_object(body: bytes) -> dict[str, Any]:
    """Decode a webhook body that must be a UTF-8 JSON object."""
    if not body:
        raise MalformedPayloadError("empty payload")
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedPayloadError("invalid JSON payload") from e
    if not isinstance(payload, dict):
        raise MalformedPayloadError("payload must be a JSON object")
    return payload


def require_string(payload: Mapping[str, Any], field: str) -> str:
    """Read a required field, accepting JSON numbers as their string form."""
    value = payload.get(field)
    if isinstance(value, bool) or value is None:
        raise MalformedPayloadError(f"missing required field: {field}")
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str) or not value:
        raise MalformedPayloadError(f"missing required field: {field}")
    return value
