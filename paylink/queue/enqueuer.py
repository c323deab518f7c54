"""Webhook job payload and the producer side of the queue."""

import logging
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from paylink.queue.broker import Broker

logger = logging.getLogger("paylink.queue.enqueuer")

QUEUE_KEY = "queue:webhooks"
DLQ_KEY = "queue:webhooks:dlq"


class WebhookJob(BaseModel):
    """A verified webhook waiting for the worker."""

    provider: str
    payload: str  # Raw request body (validated UTF-8 JSON)
    event_id: str = ""  # Event id derived at verification time
    retries: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def encode(self) -> str:
        return self.model_dump_json()

    @classmethod
    def decode(cls, raw: str) -> "WebhookJob":
        return cls.model_validate_json(raw)


class WebhookEnqueuer:
    def __init__(self, broker: Broker):
        self._broker = broker

    async def enqueue(self, provider: str, body: bytes, event_id: str = "") -> WebhookJob:
        """
        Push a freshly verified webhook. Returns only once the broker accepted it.

        Raises:
            BrokerUnavailableError: The push was not accepted.
        """
        job = WebhookJob(provider=provider, payload=body.decode("utf-8"), event_id=event_id)
        await self._broker.push_left(QUEUE_KEY, job.encode())
        logger.info("Webhook enqueued provider=%s event_id=%s", provider, event_id or "-")
        return job

    async def requeue(self, job: WebhookJob) -> None:
        await self._broker.push_left(QUEUE_KEY, job.encode())

    async def dead_letter(self, job: WebhookJob) -> None:
        await self._broker.push_left(DLQ_KEY, job.encode())
        logger.error(
            "Webhook moved to DLQ provider=%s event_id=%s retries=%d",
            job.provider,
            job.event_id or "-",
            job.retries,
        )
