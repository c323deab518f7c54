"""
Checkout request validation.

All rules run before any side effect, in a fixed order, and the first
failure wins so merchants always get the same message for the same request:
  1. merchant_id present
  2. amount in 1..999,999,999 (smallest currency unit)
  3. currency is a 3-character ISO code
  4. order_id present, at most 50 characters, alphanumerics, dash and
     underscore only
  5. provider_preference present
"""

from dataclasses import dataclass

from paylink.models.schemas import CheckoutRequest
from paylink.providers.base import is_valid_order_id

MAX_AMOUNT = 999_999_999
MAX_ORDER_ID_LENGTH = 50


@dataclass
class ValidationResult:
    valid: bool
    error: str = ""


def validate_checkout(req: CheckoutRequest) -> ValidationResult:
    if not req.merchant_id:
        return ValidationResult(valid=False, error="merchant_id is required")

    if req.amount <= 0:
        return ValidationResult(valid=False, error="amount must be positive")
    if req.amount > MAX_AMOUNT:
        return ValidationResult(valid=False, error="amount exceeds maximum")

    if len(req.currency) != 3:
        return ValidationResult(valid=False, error="currency must be 3-character ISO code")

    if not req.order_id:
        return ValidationResult(valid=False, error="order_id is required")
    if len(req.order_id) > MAX_ORDER_ID_LENGTH:
        return ValidationResult(valid=False, error="order_id too long")
    if not is_valid_order_id(req.order_id, max_length=MAX_ORDER_ID_LENGTH):
        return ValidationResult(valid=False, error="invalid order_id format")

    if not req.provider_preference:
        return ValidationResult(valid=False, error="provider_preference is required")

    return ValidationResult(valid=True)
