"""
Merchant checkout endpoint.

POST /v1/checkout: Create a payment with the preferred provider and return
the hosted checkout URL.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from paylink.api.dependencies import get_registry, get_session, get_settings
from paylink.config import Settings
from paylink.engine.checkout import create_checkout
from paylink.engine.merchants import authenticate_merchant
from paylink.engine.validation import validate_checkout
from paylink.errors import InvalidArgumentError, UnknownProviderError
from paylink.metrics import metrics
from paylink.models.schemas import CheckoutRequest, CheckoutResponse
from paylink.providers.registry import ProviderRegistry

logger = logging.getLogger("paylink.api.checkout")

router = APIRouter(tags=["checkout"])


@router.post("/checkout", response_model=CheckoutResponse)
async def checkout(
    body: CheckoutRequest,
    x_api_key: Optional[str] = Header(None),
    session: AsyncSession = Depends(get_session),
    registry: ProviderRegistry = Depends(get_registry),
    config: Settings = Depends(get_settings),
):
    """
    Create a checkout.

    Validation happens before any side effect. An unknown provider is the
    merchant's mistake here, so it is a 400 rather than the webhook route's
    404.
    """
    result = validate_checkout(body)
    if not result.valid:
        logger.warning("Checkout validation failed error=%s", result.error)
        raise InvalidArgumentError(result.error)

    if config.require_merchant_auth:
        await authenticate_merchant(session, x_api_key, body.merchant_id)

    try:
        provider = registry.get(body.provider_preference)
    except UnknownProviderError as e:
        logger.error("Failed to resolve adapter provider=%s", body.provider_preference)
        raise InvalidArgumentError(e.message) from e

    response = await create_checkout(
        session, provider, body, timeout=config.provider_timeout_seconds
    )
    metrics.record_checkout(provider.name)
    return response
