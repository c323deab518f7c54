"""
Process entry points.

    python -m paylink serve    # API server (runs the webhook worker too)
    python -m paylink worker   # Standalone webhook worker

Exit code 0 on clean shutdown, 1 when initialization fails.
"""

import argparse
import asyncio
import logging
import signal
import sys

from pydantic import ValidationError

logger = logging.getLogger("paylink")


async def _check_database() -> None:
    from paylink.database import engine, ping_db

    try:
        await ping_db()
    finally:
        await engine.dispose()


def serve() -> int:
    import uvicorn
    from sqlalchemy.exc import SQLAlchemyError

    from paylink.config import settings

    try:
        asyncio.run(_check_database())
    except (SQLAlchemyError, OSError) as e:
        logger.error("Failed to connect to database: %s", e)
        return 1

    uvicorn.run(
        "paylink.main:app",
        host="0.0.0.0",
        port=settings.port,
        timeout_keep_alive=settings.read_timeout_seconds,
        log_level=settings.log_level.lower(),
    )
    return 0


async def run_worker() -> int:
    from sqlalchemy.exc import SQLAlchemyError

    from paylink.api.dependencies import get_registry
    from paylink.config import settings
    from paylink.database import async_session, engine, init_db
    from paylink.engine.worker import WebhookWorker, shutdown_worker
    from paylink.queue.broker import get_broker

    try:
        await init_db()
    except (SQLAlchemyError, OSError) as e:
        logger.error("Failed to connect to database: %s", e)
        await engine.dispose()
        return 1

    broker = get_broker()
    worker = WebhookWorker(
        broker,
        get_registry(),
        async_session,
        pop_timeout=settings.worker_pop_timeout,
        retry_delay=settings.retry_delay_seconds,
        max_retries=settings.max_retries,
        error_backoff=settings.worker_error_backoff,
    )

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_requested.set)

    task = asyncio.create_task(worker.run(), name="webhook-worker")
    stop_wait = asyncio.create_task(stop_requested.wait())
    try:
        await asyncio.wait({task, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
        await shutdown_worker(worker, task, settings.shutdown_timeout)
    finally:
        stop_wait.cancel()
        await broker.close()
        await engine.dispose()
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="paylink", description="PayLink payment gateway")
    parser.add_argument("command", choices=["serve", "worker"], help="Process to run")
    args = parser.parse_args(argv)

    try:
        from paylink.config import LOG_FORMAT, settings
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )

    if args.command == "serve":
        return serve()
    return asyncio.run(run_worker())


if __name__ == "__main__":
    sys.exit(main())
