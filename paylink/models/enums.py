"""Enumerations for the gateway domain model."""

from enum import Enum


class TransactionStatus(str, Enum):
    """Lifecycle states for a payment attempt."""

    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.PENDING


class Provider(str, Enum):
    """Payment providers with a registered adapter."""

    MIDTRANS = "midtrans"
    XENDIT = "xendit"
