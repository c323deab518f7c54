"""
Xendit adapter (header-token webhook scheme).

Xendit authenticates callbacks with a static ``x-callback-token`` header.
When no webhook token is configured the integrator has opted out and every
well-formed callback is accepted.

Payment creation targets the Invoice API. This version returns
deterministic invoice ids and checkout URLs keyed by the external id.
"""

import hashlib
import hmac
import logging
from collections.abc import Mapping
from typing import Any

from paylink.errors import InvalidArgumentError
from paylink.models.enums import TransactionStatus
from paylink.providers.base import (
    Notification,
    PaymentProvider,
    PaymentResult,
    Verification,
    is_valid_order_id,
    load_json_object,
    require_string,
)

logger = logging.getLogger("paylink.providers.xendit")

CHECKOUT_HOST = "https://checkout-staging.xendit.co"
MAX_EXTERNAL_ID_LENGTH = 64

_STATUS_MAP = {
    "PAID": TransactionStatus.PAID,
    "SETTLED": TransactionStatus.PAID,
    "PENDING": TransactionStatus.PENDING,
    "EXPIRED": TransactionStatus.EXPIRED,
    "FAILED": TransactionStatus.FAILED,
}


def derive_event_id(body: bytes) -> str:
    """Deterministic idempotency key for callbacks without a webhook-id header."""
    return hashlib.sha256(body).hexdigest()[:16]


class XenditProvider(PaymentProvider):
    def __init__(self, api_key: str, webhook_token: str = ""):
        self._api_key = api_key
        self._webhook_token = webhook_token

    @property
    def name(self) -> str:
        return "xendit"

    async def create_payment(self, tx: Any) -> PaymentResult:
        if tx is None:
            raise InvalidArgumentError("transaction is required")
        if tx.amount is None or tx.amount <= 0:
            raise InvalidArgumentError("amount must be positive")
        if not tx.provider_tx_id:
            raise InvalidArgumentError("order ID is required")
        if not is_valid_order_id(tx.provider_tx_id, max_length=MAX_EXTERNAL_ID_LENGTH):
            raise InvalidArgumentError("invalid external ID format")
        if not tx.currency:
            raise InvalidArgumentError("currency is required")

        logger.info(
            "Creating Xendit invoice external_id=%s amount=%d currency=%s",
            tx.provider_tx_id,
            tx.amount,
            tx.currency,
        )

        invoice_id = f"xnd_inv_{tx.provider_tx_id}"
        checkout_url = f"{CHECKOUT_HOST}/web/{invoice_id}"

        logger.info("Xendit invoice created invoice_id=%s checkout_url=%s", invoice_id, checkout_url)
        return PaymentResult(provider_tx_id=invoice_id, checkout_url=checkout_url)

    def verify_signature(self, headers: Mapping[str, str], body: bytes) -> Verification:
        load_json_object(body)

        if self._webhook_token:
            callback_token = headers.get("x-callback-token") or ""
            if not hmac.compare_digest(
                callback_token.encode("utf-8"), self._webhook_token.encode("utf-8")
            ):
                logger.warning("Invalid Xendit callback token")
                return Verification(event_id="", valid=False)

        event_id = headers.get("webhook-id") or derive_event_id(body)
        logger.info("Xendit webhook verified event_id=%s", event_id)
        return Verification(event_id=event_id, valid=True)

    async def get_transaction_status(self, provider_tx_id: str) -> str:
        if not provider_tx_id:
            raise InvalidArgumentError("provider transaction ID is required")

        logger.info("Getting Xendit invoice status invoice_id=%s", provider_tx_id)
        # Production: GET https://api.xendit.co/v2/invoices/{invoice_id}
        return "PENDING"

    def parse_notification(self, body: bytes, event_id: str = "") -> Notification:
        payload = load_json_object(body)
        external_id = require_string(payload, "external_id")
        raw_status = require_string(payload, "status").upper()
        return Notification(
            event_id=event_id or derive_event_id(body),
            provider_tx_id=external_id,
            status=_STATUS_MAP.get(raw_status),
            raw_status=raw_status,
        )
