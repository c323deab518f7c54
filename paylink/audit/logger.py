"""
Webhook event audit store.

Every verified webhook the worker handles gets a ``webhook_events`` row
keyed by (provider, event_id):
  - Provider and event id (the idempotency key)
  - Raw payload as received
  - Received timestamp (UTC)
  - Processed flag, set once the event has been applied

Rows are never deleted. A redelivered event finds its processed row and is
skipped, which is what makes at-least-once delivery safe.
"""

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paylink.models.transaction import WebhookEvent

logger = logging.getLogger("paylink.audit")


async def record_webhook_event(
    session: AsyncSession,
    provider: str,
    event_id: str,
    payload: str,
) -> tuple[WebhookEvent, bool]:
    """
    Fetch or create the audit row for a webhook event.

    Returns:
        The WebhookEvent and whether it was created by this call.

    Raises:
        IntegrityError: A concurrent worker inserted the same event first;
            the caller's retry will find the existing row.
    """
    result = await session.execute(
        select(WebhookEvent).where(
            WebhookEvent.provider == provider,
            WebhookEvent.event_id == event_id,
        )
    )
    event = result.scalar_one_or_none()
    if event is not None:
        return event, False

    event = WebhookEvent(provider=provider, event_id=event_id, payload=payload, processed=False)
    session.add(event)
    await session.flush()
    return event, True


def log_event(
    action: str,
    provider: str,
    event_id: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> None:
    """Emit a single-line audit record for a webhook lifecycle step."""
    logger.info(
        "AUDIT | provider=%s event=%s action=%s | %s",
        provider,
        event_id or "-",
        action,
        " ".join(f"{k}={v}" for k, v in details.items()) if details else "",
    )
