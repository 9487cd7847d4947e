"""
Meta Platform worker process

Consumes the app_builds and bot_messages queues:

    python -m metaplatform.worker
"""
import asyncio
import logging
import signal

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from metaplatform.config import settings

if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=f"metaplatform-worker@{settings.app_version}",
        traces_sample_rate=settings.sentry_traces_sample_rate,
        integrations=[
            SqlalchemyIntegration(),
            RedisIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        send_default_pii=False,
    )

from metaplatform.database import SessionLocal
from metaplatform.init_db import init_database
from metaplatform.services.queue_service import QueueService
from metaplatform.services.worker_service import create_worker

if settings.log_format == "json":
    logging.basicConfig(
        level=settings.log_level,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
else:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

logger = logging.getLogger(__name__)


async def run_worker() -> None:
    """Run until SIGINT/SIGTERM"""
    db = SessionLocal()
    try:
        init_database(db)
    finally:
        db.close()

    if not QueueService.is_available():
        logger.warning(f"Redis is not reachable at {settings.redis_url}; jobs will be picked up once it is")

    worker = create_worker()
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            pass

    await worker.start()
    logger.info("Worker process ready")
    try:
        await stop_event.wait()
    finally:
        await worker.stop()
        logger.info(f"Worker summary: {worker.get_status()}")


def main() -> None:
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        logger.info("Worker interrupted")


if __name__ == "__main__":
    main()
