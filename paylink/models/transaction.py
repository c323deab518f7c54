"""SQLAlchemy models for the gateway."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class Transaction(Base):
    """
    The long-lived record of a payment attempt.

    Created by checkout before the provider is called, so every
    provider-side reference has a local row. Only the webhook worker moves
    the status forward (PENDING -> PAID/FAILED/EXPIRED); terminal statuses
    are never rewritten and rows are never deleted.
    """

    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint("provider", "provider_tx_id", name="uq_provider_tx"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    merchant_id = Column(String(100), nullable=False, index=True)
    provider = Column(String(30), nullable=False)
    provider_tx_id = Column(String(50), nullable=False)
    amount = Column(BigInteger, nullable=False)  # Smallest currency unit
    currency = Column(String(3), nullable=False)
    status = Column(String(10), nullable=False, default="PENDING")
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)


class WebhookEvent(Base):
    """
    Envelope of a verified webhook delivery.

    The (provider, event_id) unique constraint is the idempotency anchor:
    a redelivered event finds its row and is not applied twice.
    """

    __tablename__ = "webhook_events"
    __table_args__ = (
        UniqueConstraint("provider", "event_id", name="uq_provider_event"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    provider = Column(String(30), nullable=False)
    event_id = Column(String(100), nullable=False)
    payload = Column(Text, nullable=False)
    received_at = Column(DateTime(timezone=True), default=_utcnow)
    processed = Column(Boolean, nullable=False, default=False)


class Merchant(Base):
    """Merchant identity. API keys are stored only as SHA-256 hex digests."""

    __tablename__ = "merchants"

    id = Column(String(100), primary_key=True)
    name = Column(String(200), nullable=False)
    api_key_hash = Column(String(64), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
