"""Wire DTOs for the merchant-facing API."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from paylink.models.enums import TransactionStatus
from paylink.models.transaction import Transaction


class CheckoutRequest(BaseModel):
    # Defaults let missing fields reach the rule checks in
    # paylink.engine.validation instead of failing schema parsing.
    merchant_id: str = ""
    amount: int = 0
    currency: str = ""
    order_id: str = ""
    provider_preference: str = ""


class CheckoutResponse(BaseModel):
    checkout_url: str
    provider_tx_id: str


class TransactionView(BaseModel):
    id: str
    status: str


class TransactionRecord(BaseModel):
    """Full, serializable snapshot of a Transaction row."""

    id: str
    merchant_id: str
    provider: str
    provider_tx_id: str
    amount: int
    currency: str
    status: TransactionStatus
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, tx: Transaction) -> "TransactionRecord":
        return cls(
            id=tx.id,
            merchant_id=tx.merchant_id,
            provider=tx.provider,
            provider_tx_id=tx.provider_tx_id,
            amount=tx.amount,
            currency=tx.currency,
            status=TransactionStatus(tx.status),
            metadata=dict(tx.metadata_ or {}),
            created_at=tx.created_at,
            updated_at=tx.updated_at,
        )
