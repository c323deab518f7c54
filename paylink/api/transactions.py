"""
Transaction lookup endpoint.

GET /v1/tx/{tx_id}: Current status of a transaction. Read-only.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from paylink.api.dependencies import get_session
from paylink.errors import NotFoundError
from paylink.models.schemas import TransactionView
from paylink.models.transaction import Transaction

router = APIRouter(tags=["transactions"])


@router.get("/tx/{tx_id}", response_model=TransactionView)
async def get_transaction(tx_id: str, session: AsyncSession = Depends(get_session)):
    tx = await session.get(Transaction, tx_id)
    if tx is None:
        raise NotFoundError("transaction not found")
    return TransactionView(id=tx.id, status=tx.status.lower())
