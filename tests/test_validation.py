"""Tests for checkout request validation."""

import pytest

from paylink.engine.validation import MAX_AMOUNT, validate_checkout
from paylink.models.schemas import CheckoutRequest


def _request(**overrides) -> CheckoutRequest:
    fields = {
        "merchant_id": "m1",
        "amount": 50000,
        "currency": "IDR",
        "order_id": "order-456",
        "provider_preference": "midtrans",
    }
    fields.update(overrides)
    return CheckoutRequest(**fields)


class TestValidRequests:
    def test_valid_request(self):
        assert validate_checkout(_request()).valid

    def test_maximum_amount(self):
        assert validate_checkout(_request(amount=MAX_AMOUNT)).valid

    def test_order_id_at_limit(self):
        assert validate_checkout(_request(order_id="o" * 50)).valid


class TestRules:
    def test_missing_merchant(self):
        result = validate_checkout(_request(merchant_id=""))
        assert not result.valid
        assert result.error == "merchant_id is required"

    def test_zero_amount(self):
        assert validate_checkout(_request(amount=0)).error == "amount must be positive"

    def test_negative_amount(self):
        assert validate_checkout(_request(amount=-1)).error == "amount must be positive"

    def test_amount_over_maximum(self):
        assert validate_checkout(_request(amount=MAX_AMOUNT + 1)).error == "amount exceeds maximum"

    def test_currency_length(self):
        for currency in ("", "ID", "IDRR"):
            result = validate_checkout(_request(currency=currency))
            assert result.error == "currency must be 3-character ISO code"

    def test_missing_order_id(self):
        assert validate_checkout(_request(order_id="")).error == "order_id is required"

    def test_order_id_too_long(self):
        assert validate_checkout(_request(order_id="o" * 51)).error == "order_id too long"

    @pytest.mark.parametrize("order_id", ["bad id!", "order 123", "order/1", "order-1\n"])
    def test_order_id_format(self, order_id):
        assert validate_checkout(_request(order_id=order_id)).error == "invalid order_id format"

    def test_order_id_length_checked_before_format(self):
        assert validate_checkout(_request(order_id="!" * 51)).error == "order_id too long"

    def test_missing_provider(self):
        assert validate_checkout(_request(provider_preference="")).error == "provider_preference is required"


class TestPriorityOrder:
    def test_first_failing_rule_wins(self):
        """Missing merchant is reported even when the amount is also invalid."""
        result = validate_checkout(_request(merchant_id="", amount=0, currency=""))
        assert result.error == "merchant_id is required"

    def test_empty_request(self):
        assert validate_checkout(CheckoutRequest()).error == "merchant_id is required"
