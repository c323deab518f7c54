"""Merchant API-key lookup."""

import hashlib
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paylink.errors import AuthenticationError, PermissionDeniedError
from paylink.models.transaction import Merchant


def hash_api_key(api_key: str) -> str:
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


async def lookup_by_api_key(session: AsyncSession, api_key_hash: str) -> Optional[str]:
    """Return the merchant id owning the hashed key, or None."""
    result = await session.execute(select(Merchant.id).where(Merchant.api_key_hash == api_key_hash))
    return result.scalar_one_or_none()


async def authenticate_merchant(session: AsyncSession, api_key: Optional[str], merchant_id: str) -> str:
    """
    Resolve the caller's merchant and check it matches the request body.

    Raises:
        AuthenticationError: Missing or unknown API key.
        PermissionDeniedError: Key belongs to a different merchant.
    """
    if not api_key:
        raise AuthenticationError("API key required")
    owner = await lookup_by_api_key(session, hash_api_key(api_key))
    if owner is None:
        raise AuthenticationError("invalid API key")
    if owner != merchant_id:
        raise PermissionDeniedError("API key does not belong to merchant_id")
    return owner
