"""
PayLink — payment-orchestration gateway.

Merchants submit one normalized checkout request; the gateway forwards it to
the chosen provider and returns a hosted checkout URL. Provider webhooks are
authenticated, queued, and applied to local transaction state by the
webhook worker running alongside the API.

Start the server:
    python -m paylink serve

Or directly:
    uvicorn paylink.main:app
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from paylink import __version__
from paylink.api.checkout import router as checkout_router
from paylink.api.dependencies import get_registry
from paylink.api.errors import register_exception_handlers
from paylink.api.health import router as health_router
from paylink.api.transactions import router as transactions_router
from paylink.api.webhooks import router as webhooks_router
from paylink.config import LOG_FORMAT, settings
from paylink.database import async_session, engine, init_db
from paylink.engine.worker import WebhookWorker, shutdown_worker
from paylink.metrics import metrics
from paylink.queue.broker import get_broker

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format=LOG_FORMAT,
)
logger = logging.getLogger("paylink.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the database and run the webhook worker for the app's lifetime."""
    await init_db()
    broker = get_broker()

    worker = None
    task = None
    if settings.run_worker:
        worker = WebhookWorker(
            broker,
            get_registry(),
            async_session,
            pop_timeout=settings.worker_pop_timeout,
            retry_delay=settings.retry_delay_seconds,
            max_retries=settings.max_retries,
            error_backoff=settings.worker_error_backoff,
        )
        task = asyncio.create_task(worker.run(), name="webhook-worker")

    logger.info("Server listening port=%d worker=%s", settings.port, settings.run_worker)
    yield

    if worker is not None and task is not None:
        await shutdown_worker(worker, task, settings.shutdown_timeout)
    await broker.close()
    await engine.dispose()


app = FastAPI(
    title="PayLink",
    description=(
        "Payment-orchestration gateway: one checkout API over multiple payment "
        "providers, with authenticated webhooks processed at-least-once and "
        "applied idempotently."
    ),
    version=__version__,
    lifespan=lifespan,
)

register_exception_handlers(app)


@app.middleware("http")
async def record_request_metrics(request: Request, call_next):
    """Count /v1 requests and their latency."""
    if not request.url.path.startswith("/v1/"):
        return await call_next(request)

    start = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        metrics.record_request(False, (time.perf_counter() - start) * 1000)
        raise

    duration_ms = (time.perf_counter() - start) * 1000
    metrics.record_request(response.status_code < 400, duration_ms)
    logger.info(
        "Request completed method=%s path=%s status=%d duration_ms=%.1f",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


app.include_router(health_router)
app.include_router(checkout_router, prefix="/v1")
app.include_router(webhooks_router, prefix="/v1")
app.include_router(transactions_router, prefix="/v1")
