"""
Provider webhook endpoint.

POST /v1/webhook/{provider}: Authenticate a provider callback and enqueue
it for the worker. 200 is returned only after the broker accepted the job,
so a provider never sees success for an event that was lost.
"""

import logging

from fastapi import APIRouter, Depends, Request

from paylink.api.dependencies import get_broker, get_registry, get_settings
from paylink.config import Settings
from paylink.errors import (
    BrokerUnavailableError,
    InvalidArgumentError,
    InvalidSignatureError,
    MalformedPayloadError,
)
from paylink.metrics import metrics
from paylink.providers.registry import ProviderRegistry
from paylink.queue.broker import Broker
from paylink.queue.enqueuer import WebhookEnqueuer

logger = logging.getLogger("paylink.api.webhooks")

router = APIRouter(tags=["webhooks"])


async def read_bounded_body(request: Request, limit: int) -> bytes:
    """Read the request body, refusing anything larger than ``limit`` bytes."""
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise InvalidArgumentError("request body too large")

    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            raise InvalidArgumentError("request body too large")
    return bytes(body)


@router.post("/webhook/{provider}")
async def handle_webhook(
    provider: str,
    request: Request,
    registry: ProviderRegistry = Depends(get_registry),
    broker: Broker = Depends(get_broker),
    config: Settings = Depends(get_settings),
):
    body = await read_bounded_body(request, config.max_webhook_body_bytes)
    if not body:
        raise InvalidArgumentError("empty request body")

    adapter = registry.get(provider)
    metrics.record_webhook("received")

    try:
        verification = adapter.verify_signature(request.headers, body)
    except MalformedPayloadError as e:
        logger.error("Webhook verification error provider=%s error=%s", provider, e.message)
        metrics.record_webhook("failed")
        raise

    if not verification.valid:
        logger.warning("Invalid webhook signature provider=%s", provider)
        metrics.record_webhook("failed")
        raise InvalidSignatureError("invalid signature")

    try:
        await WebhookEnqueuer(broker).enqueue(provider, body, verification.event_id)
    except BrokerUnavailableError as e:
        logger.error("Failed to enqueue webhook provider=%s error=%s", provider, e.message)
        metrics.record_webhook("failed")
        raise BrokerUnavailableError("failed to enqueue webhook") from e

    return {"status": "queued", "event_id": verification.event_id}
