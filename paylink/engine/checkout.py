"""
Checkout execution.

The Transaction row is committed as PENDING before the provider is called,
so every provider-side reference has a local record. The provider's
reference and hosted URL are stored on the row's metadata. A provider
failure marks the row FAILED; until the provider has accepted the order the
merchant may resubmit it, which resets that row to PENDING. Any other
existing row is a duplicate.
"""

import asyncio
import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paylink.errors import InvalidArgumentError, ProviderUnavailableError
from paylink.models.enums import TransactionStatus
from paylink.models.schemas import CheckoutRequest, CheckoutResponse
from paylink.models.transaction import Transaction
from paylink.providers.base import PaymentProvider

logger = logging.getLogger("paylink.engine.checkout")


async def create_checkout(
    session: AsyncSession,
    provider: PaymentProvider,
    req: CheckoutRequest,
    timeout: float = 10.0,
) -> CheckoutResponse:
    """
    Persist a PENDING transaction and create the payment with the provider.

    Raises:
        InvalidArgumentError: Duplicate order or input rejected by the adapter.
        ProviderUnavailableError: Provider call failed or timed out.
    """
    existing = await session.execute(
        select(Transaction).where(
            Transaction.provider == provider.name,
            Transaction.provider_tx_id == req.order_id,
        )
    )
    tx = existing.scalar_one_or_none()
    if tx is None:
        tx = Transaction(
            merchant_id=req.merchant_id,
            provider=provider.name,
            provider_tx_id=req.order_id,
            amount=req.amount,
            currency=req.currency.upper(),
            status=TransactionStatus.PENDING.value,
            metadata_={},
        )
        session.add(tx)
    elif _is_retryable(tx, req):
        # The provider never accepted this order: reuse the row.
        logger.info(
            "Retrying failed checkout provider=%s order_id=%s tx_id=%s",
            provider.name,
            req.order_id,
            tx.id,
        )
        tx.amount = req.amount
        tx.currency = req.currency.upper()
        tx.status = TransactionStatus.PENDING.value
        tx.metadata_ = {}
        tx.updated_at = datetime.now(timezone.utc)
    else:
        raise InvalidArgumentError("order_id already exists")
    await session.commit()

    try:
        result = await asyncio.wait_for(provider.create_payment(tx), timeout)
    except InvalidArgumentError as e:
        await _mark_failed(session, tx, e.message)
        raise
    except asyncio.TimeoutError as e:
        await _mark_failed(session, tx, "provider timed out")
        raise ProviderUnavailableError("payment creation failed") from e
    except Exception as e:
        logger.error("Failed to create payment provider=%s order_id=%s error=%s", provider.name, req.order_id, e)
        await _mark_failed(session, tx, str(e))
        raise ProviderUnavailableError("payment creation failed") from e

    tx.metadata_ = {
        **(tx.metadata_ or {}),
        "provider_reference": result.provider_tx_id,
        "checkout_url": result.checkout_url,
    }
    tx.updated_at = datetime.now(timezone.utc)
    await session.commit()

    logger.info(
        "Checkout created provider=%s order_id=%s amount=%d tx_id=%s",
        provider.name,
        req.order_id,
        req.amount,
        tx.id,
    )
    return CheckoutResponse(checkout_url=result.checkout_url, provider_tx_id=result.provider_tx_id)


def _is_retryable(tx: Transaction, req: CheckoutRequest) -> bool:
    """FAILED at checkout (no provider reference yet) and owned by the same merchant."""
    return (
        tx.status == TransactionStatus.FAILED.value
        and tx.merchant_id == req.merchant_id
        and "provider_reference" not in (tx.metadata_ or {})
    )


async def _mark_failed(session: AsyncSession, tx: Transaction, reason: str) -> None:
    tx.status = TransactionStatus.FAILED.value
    tx.metadata_ = {**(tx.metadata_ or {}), "error": reason}
    tx.updated_at = datetime.now(timezone.utc)
    await session.commit()
