from paylink.models.enums import Provider, TransactionStatus
from paylink.models.transaction import Base, Merchant, Transaction, WebhookEvent

__all__ = [
    "Base",
    "Transaction",
    "WebhookEvent",
    "Merchant",
    "Provider",
    "TransactionStatus",
]
