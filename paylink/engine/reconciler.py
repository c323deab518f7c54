"""
Webhook reconciliation: apply a verified provider event to local state.

For each job:
  1. Parse the body into a Notification (canonical event id, order
     reference, mapped status)
  2. Record the (provider, event_id) audit row; a processed row means the
     event was already applied and nothing changes
  3. Look up the transaction by (provider, provider_tx_id)
  4. Move PENDING -> terminal; terminal statuses are never rewritten
  5. Mark the event processed and commit

Because of (2) and (4), any permutation or duplication of deliveries for a
payment converges to the same final state.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paylink.audit.logger import log_event, record_webhook_event
from paylink.errors import NotFoundError
from paylink.models.enums import TransactionStatus
from paylink.models.transaction import Transaction
from paylink.providers.base import Notification, PaymentProvider
from paylink.queue.enqueuer import WebhookJob

logger = logging.getLogger("paylink.engine.reconciler")


async def apply_webhook(session: AsyncSession, provider: PaymentProvider, job: WebhookJob) -> bool:
    """
    Apply one webhook job.

    Returns:
        True if the event was applied by this call, False for a duplicate.

    Raises:
        MalformedPayloadError: Payload cannot be mapped to a notification.
        NotFoundError: No local transaction matches the order reference.
    """
    notification = provider.parse_notification(job.payload.encode("utf-8"), job.event_id)

    event, _ = await record_webhook_event(
        session, provider.name, notification.event_id, job.payload
    )
    if event.processed:
        log_event("duplicate_skipped", provider.name, notification.event_id)
        return False

    result = await session.execute(
        select(Transaction).where(
            Transaction.provider == provider.name,
            Transaction.provider_tx_id == notification.provider_tx_id,
        )
    )
    tx = result.scalar_one_or_none()
    if tx is None:
        await session.rollback()
        raise NotFoundError(
            f"transaction not found: {provider.name}/{notification.provider_tx_id}"
        )

    previous = tx.status
    changed = _advance_status(tx, notification)
    event.processed = True

    log_event(
        "status_updated" if changed else "status_unchanged",
        provider.name,
        notification.event_id,
        details={
            "tx": tx.id,
            "order_id": notification.provider_tx_id,
            "from": previous,
            "to": tx.status,
            "provider_status": notification.raw_status,
        },
    )
    await session.commit()
    return True


def _advance_status(tx: Transaction, notification: Notification) -> bool:
    """Apply a forward-only status transition. Returns True if the row changed."""
    new = notification.status
    current = TransactionStatus(tx.status)

    if new is None or new is current:
        return False
    if current.is_terminal:
        logger.info(
            "Ignoring %s for terminal transaction tx=%s status=%s",
            new.value,
            tx.id,
            current.value,
        )
        return False
    if not new.is_terminal:
        return False

    tx.status = new.value
    tx.updated_at = datetime.now(timezone.utc)
    return True
