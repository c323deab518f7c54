"""
Webhook worker: the consumer side of the queue.

Single cooperative loop:

  1. Stop requested? Return (graceful shutdown)
  2. Blocking pop from ``queue:webhooks`` (5s timeout, then loop)
  3. Decode the job; corrupted payloads are logged and dropped
  4. Apply it through the reconciler
  5. On failure re-push with ``retries + 1`` after RETRY_DELAY, or move it
     to ``queue:webhooks:dlq`` once the retry budget is spent. Jobs that
     cannot succeed on any attempt are dead-lettered immediately

Business failures never escape the loop. A stop request lets the current
job finish and the loop exits before the next pop.
"""

import asyncio
import logging
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paylink.engine.reconciler import apply_webhook
from paylink.engine.retry import MAX_RETRIES, RETRY_DELAY, next_attempt
from paylink.errors import BrokerUnavailableError, MalformedPayloadError, UnknownProviderError
from paylink.metrics import MetricsRegistry, metrics as default_metrics
from paylink.providers.registry import ProviderRegistry
from paylink.queue.broker import Broker
from paylink.queue.enqueuer import QUEUE_KEY, WebhookEnqueuer, WebhookJob

logger = logging.getLogger("paylink.engine.worker")

MIN_POP_TIMEOUT = 1.0
MAX_POP_TIMEOUT = 30.0
MIN_ERROR_BACKOFF = 0.1
PUSH_ATTEMPTS = 3


class WebhookWorker:
    def __init__(
        self,
        broker: Broker,
        registry: ProviderRegistry,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        metrics: Optional[MetricsRegistry] = None,
        pop_timeout: float = 5.0,
        retry_delay: float = RETRY_DELAY,
        max_retries: int = MAX_RETRIES,
        error_backoff: float = 1.0,
    ):
        if not MIN_POP_TIMEOUT <= pop_timeout <= MAX_POP_TIMEOUT:
            raise ValueError(
                f"pop_timeout must be between {MIN_POP_TIMEOUT} and {MAX_POP_TIMEOUT} seconds"
            )
        if error_backoff < MIN_ERROR_BACKOFF:
            raise ValueError(f"error_backoff must be at least {MIN_ERROR_BACKOFF} seconds")

        self._broker = broker
        self._enqueuer = WebhookEnqueuer(broker)
        self._registry = registry
        self._session_factory = session_factory
        self._metrics = metrics or default_metrics
        self._pop_timeout = pop_timeout
        self._retry_delay = retry_delay
        self._max_retries = max_retries
        self._error_backoff = error_backoff
        self._stop = asyncio.Event()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Request a graceful shutdown; the current job is allowed to finish."""
        if not self._stop.is_set():
            logger.info("Shutting down worker...")
        self._stop.set()

    async def run(self) -> None:
        logger.info("Worker processing jobs queue=%s", QUEUE_KEY)
        while not self._stop.is_set():
            await self.process_next()
        logger.info("Worker stopped")

    async def process_next(self) -> bool:
        """Pop and handle at most one job. Returns True if a job was taken off the queue."""
        try:
            item = await self._broker.blocking_pop_right(QUEUE_KEY, self._pop_timeout)
        except BrokerUnavailableError as e:
            logger.error("Dequeue failed, backing off %.1fs: %s", self._error_backoff, e)
            await self._sleep(self._error_backoff)
            return False

        if item is None:
            return False

        _, raw = item
        try:
            job = WebhookJob.decode(raw)
        except ValidationError as e:
            logger.error("Dropping malformed job: %s", e)
            return True

        if self._stop.is_set():
            # Popped while shutting down: hand it back untouched.
            await self._push(job, dead_letter=False)
            return True

        if not await self.handle_job(job):
            await self._retry_or_dead_letter(job)
        return True

    async def handle_job(self, job: WebhookJob) -> bool:
        """
        Apply a job to local state. Returns False when the job should be retried.

        A job that can never succeed (unknown provider, body that does not map
        to a notification) goes straight to the dead-letter list.
        """
        try:
            provider = self._registry.get(job.provider)
            async with self._session_factory() as session:
                applied = await apply_webhook(session, provider, job)
        except (UnknownProviderError, MalformedPayloadError) as e:
            logger.error(
                "Webhook job rejected provider=%s event_id=%s error=%s",
                job.provider,
                job.event_id or "-",
                e,
            )
            self._metrics.record_webhook("failed")
            await self._push(job, dead_letter=True)
            return True
        except Exception as e:
            logger.warning(
                "Webhook job failed provider=%s event_id=%s retries=%d error=%s",
                job.provider,
                job.event_id or "-",
                job.retries,
                e,
            )
            return False

        if applied:
            self._metrics.record_webhook("processed")
        logger.info(
            "Webhook job done provider=%s event_id=%s applied=%s",
            job.provider,
            job.event_id or "-",
            applied,
        )
        return True

    async def _retry_or_dead_letter(self, job: WebhookJob) -> None:
        decision = next_attempt(job, self._max_retries)
        if decision.dead_letter:
            self._metrics.record_webhook("failed")
            await self._push(decision.job, dead_letter=True)
            return

        logger.info(
            "Retrying webhook job provider=%s retry=%d/%d in %.1fs",
            job.provider,
            decision.job.retries,
            self._max_retries,
            self._retry_delay,
        )
        await self._sleep(self._retry_delay)
        await self._push(decision.job, dead_letter=False)

    async def _push(self, job: WebhookJob, dead_letter: bool) -> None:
        push = self._enqueuer.dead_letter if dead_letter else self._enqueuer.requeue
        for attempt in range(1, PUSH_ATTEMPTS + 1):
            try:
                await push(job)
                return
            except BrokerUnavailableError as e:
                logger.error("Re-push failed attempt=%d/%d: %s", attempt, PUSH_ATTEMPTS, e)
                if attempt < PUSH_ATTEMPTS:
                    await asyncio.sleep(self._error_backoff)
        logger.critical(
            "Webhook job lost provider=%s event_id=%s payload=%s",
            job.provider,
            job.event_id or "-",
            job.payload[:200],
        )

    async def _sleep(self, seconds: float) -> None:
        """Sleep that returns early when a stop is requested."""
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._stop.wait(), seconds)
        except asyncio.TimeoutError:
            pass


async def shutdown_worker(worker: WebhookWorker, task: "asyncio.Task[None]", timeout: float) -> None:
    """Stop the worker and wait for its loop, cancelling it after ``timeout`` seconds."""
    worker.stop()
    try:
        await asyncio.wait_for(task, timeout)
    except asyncio.TimeoutError:
        logger.error("Worker did not stop within %.0fs; cancelled", timeout)
