"""
Midtrans adapter (HMAC-hash webhook scheme).

Webhook notifications carry ``signature_key`` computed as
``hex(SHA512(order_id + status_code + gross_amount + server_key))`` with no
separators. The adapter recomputes it and compares in constant time.

Payment creation targets the Snap API. This version returns deterministic
Snap tokens and redirect URLs keyed by the order id; swapping in the real
HTTPS call keeps the same validation, URL shape and log fields.
"""

import hashlib
import logging
from collections.abc import Mapping
from typing import Any

from paylink.errors import InvalidArgumentError, MalformedPayloadError
from paylink.models.enums import TransactionStatus
from paylink.providers.base import (
    Notification,
    PaymentProvider,
    PaymentResult,
    Verification,
    constant_time_compare,
    is_valid_order_id,
    load_json_object,
    require_string,
)

logger = logging.getLogger("paylink.providers.midtrans")

SANDBOX_SNAP_HOST = "https://app.sandbox.midtrans.com"
PRODUCTION_SNAP_HOST = "https://app.midtrans.com"

REQUIRED_FIELDS = ("order_id", "status_code", "gross_amount", "signature_key", "transaction_id")

_STATUS_MAP = {
    "settlement": TransactionStatus.PAID,
    "capture": TransactionStatus.PAID,
    "pending": TransactionStatus.PENDING,
    "deny": TransactionStatus.FAILED,
    "cancel": TransactionStatus.FAILED,
    "failure": TransactionStatus.FAILED,
    "expire": TransactionStatus.EXPIRED,
}

_STATUS_CODE_MAP = {
    "200": TransactionStatus.PAID,
    "201": TransactionStatus.PENDING,
    "202": TransactionStatus.FAILED,
    "407": TransactionStatus.EXPIRED,
}


def compute_signature(order_id: str, status_code: str, gross_amount: str, server_key: str) -> str:
    raw = (order_id + status_code + gross_amount + server_key).encode("utf-8")
    return hashlib.sha512(raw).hexdigest()


class MidtransProvider(PaymentProvider):
    def __init__(self, server_key: str, sandbox: bool = True):
        self._server_key = server_key
        self._snap_host = SANDBOX_SNAP_HOST if sandbox else PRODUCTION_SNAP_HOST

    @property
    def name(self) -> str:
        return "midtrans"

    async def create_payment(self, tx: Any) -> PaymentResult:
        if tx is None:
            raise InvalidArgumentError("transaction is required")
        if tx.amount is None or tx.amount <= 0:
            raise InvalidArgumentError("amount must be positive")
        if not tx.provider_tx_id:
            raise InvalidArgumentError("order ID is required")
        if not is_valid_order_id(tx.provider_tx_id):
            raise InvalidArgumentError("invalid order ID format")
        if not tx.currency:
            raise InvalidArgumentError("currency is required")

        logger.info(
            "Creating Midtrans payment order_id=%s amount=%d currency=%s",
            tx.provider_tx_id,
            tx.amount,
            tx.currency,
        )

        token = f"snap_{tx.provider_tx_id}_{tx.amount}"
        redirect_url = f"{self._snap_host}/snap/v3/redirection/{token}"

        logger.info("Midtrans payment created token=%s redirect_url=%s", token, redirect_url)
        return PaymentResult(provider_tx_id=token, checkout_url=redirect_url)

    def verify_signature(self, headers: Mapping[str, str], body: bytes) -> Verification:
        payload = load_json_object(body)
        fields = {name: require_string(payload, name) for name in REQUIRED_FIELDS}

        order_id = fields["order_id"]
        if not is_valid_order_id(order_id):
            logger.error("Invalid order_id format in Midtrans webhook order_id=%r", order_id[:64])
            raise MalformedPayloadError("invalid order_id format")

        expected = compute_signature(
            order_id, fields["status_code"], fields["gross_amount"], self._server_key
        )
        valid = constant_time_compare(expected, fields["signature_key"])

        if valid:
            logger.info(
                "Midtrans webhook signature verified order_id=%s transaction_id=%s",
                order_id,
                fields["transaction_id"],
            )
        else:
            logger.warning("Invalid signature in Midtrans webhook order_id=%s", order_id)

        return Verification(event_id=fields["transaction_id"], valid=valid)

    async def get_transaction_status(self, provider_tx_id: str) -> str:
        if not provider_tx_id:
            raise InvalidArgumentError("provider transaction ID is required")

        logger.info("Getting Midtrans transaction status provider_tx_id=%s", provider_tx_id)
        # Production: GET https://api.midtrans.com/v2/{order_id}/status
        return "pending"

    def parse_notification(self, body: bytes, event_id: str = "") -> Notification:
        payload = load_json_object(body)
        order_id = require_string(payload, "order_id")
        transaction_id = require_string(payload, "transaction_id")

        raw_status = str(payload.get("transaction_status") or "").lower()
        if raw_status:
            status = _STATUS_MAP.get(raw_status)
            if raw_status == "capture" and str(payload.get("fraud_status", "")).lower() == "challenge":
                status = TransactionStatus.PENDING
        else:
            raw_status = require_string(payload, "status_code")
            status = _STATUS_CODE_MAP.get(raw_status)

        # Midtrans reuses transaction_id for every notification of a payment,
        # so the status is part of the idempotency key.
        return Notification(
            event_id=f"{transaction_id}:{raw_status}",
            provider_tx_id=order_id,
            status=status,
            raw_status=raw_status,
        )
