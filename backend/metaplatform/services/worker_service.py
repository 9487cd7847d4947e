"""
Queue worker
Polls the Redis queues and dispatches each job to its handler:
- app_builds: application builds
- bot_messages: bot message pipeline
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from metaplatform.config import settings
from metaplatform.database import get_db_context
from metaplatform.services.queue_service import QueueService
from metaplatform.utils.metrics import queue_jobs_processed_total

logger = logging.getLogger(__name__)


class WorkerStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class QueueHandler:
    """Handler registered for one queue"""
    queue: str
    handler: Callable[[Dict[str, Any]], Any]
    processed_count: int = 0
    error_count: int = 0
    last_job_at: Optional[datetime] = None
    last_error: Optional[str] = None


class PollingWorker:
    """
    Interval-driven queue consumer

    Every tick pops at most one job per registered queue. Synchronous
    handlers run in a worker thread, coroutine handlers on the loop; their
    exceptions are logged and counted, never propagated into the loop.
    """

    def __init__(
        self,
        interval_seconds: Optional[float] = None,
        consume: Optional[Callable[[str], Optional[Dict[str, Any]]]] = None,
    ):
        self.interval_seconds = settings.worker_poll_interval if interval_seconds is None else interval_seconds
        self._consume = consume or QueueService.consume_event
        self._handlers: Dict[str, QueueHandler] = {}
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.status = WorkerStatus.IDLE

    def register_handler(self, queue: str, handler: Callable[[Dict[str, Any]], Any]) -> None:
        self._handlers[queue] = QueueHandler(queue=queue, handler=handler)
        logger.info(f"Registered handler for queue: {queue}")

    @property
    def queues(self) -> List[str]:
        return list(self._handlers)

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("Worker is already running")
            return

        self._running = True
        self.status = WorkerStatus.RUNNING
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Worker started, listening on: {', '.join(self.queues)}")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.status = WorkerStatus.STOPPED
        logger.info("Worker stopped")

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"Worker loop error: {e}", exc_info=True)
            await asyncio.sleep(self.interval_seconds)

    async def poll_once(self) -> int:
        """Pop and handle one job per queue; returns the number of jobs handled"""
        handled = 0
        for queue_handler in list(self._handlers.values()):
            job = await asyncio.to_thread(self._consume, queue_handler.queue)
            if job is None:
                continue
            await self._dispatch(queue_handler, job)
            handled += 1
        return handled

    async def _dispatch(self, queue_handler: QueueHandler, job: Dict[str, Any]) -> None:
        queue_handler.last_job_at = datetime.utcnow()
        logger.info(f"Processing job from {queue_handler.queue}")
        try:
            if asyncio.iscoroutinefunction(queue_handler.handler):
                await queue_handler.handler(job)
            else:
                await asyncio.to_thread(queue_handler.handler, job)
            queue_handler.processed_count += 1
            queue_jobs_processed_total.labels(queue=queue_handler.queue, status="success").inc()
        except Exception as e:
            queue_handler.error_count += 1
            queue_handler.last_error = str(e)
            queue_jobs_processed_total.labels(queue=queue_handler.queue, status="error").inc()
            logger.error(f"Job from {queue_handler.queue} failed: {e}")

    def get_status(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "interval_seconds": self.interval_seconds,
            "queues": [
                {
                    "queue": h.queue,
                    "processed_count": h.processed_count,
                    "error_count": h.error_count,
                    "last_job_at": h.last_job_at.isoformat() if h.last_job_at else None,
                    "last_error": h.last_error,
                }
                for h in self._handlers.values()
            ],
        }


# ========== Job handlers ==========


def handle_build_job(job: Dict[str, Any]) -> None:
    """app_builds job: {"application_id", "action": "build"}"""
    from metaplatform.services.build_service import BuildService

    if job.get("action") != "build":
        logger.warning(f"Ignoring build job with unknown action: {job.get('action')}")
        return
    application_id = job.get("application_id")
    if not application_id:
        logger.warning("Ignoring build job without application_id")
        return

    with get_db_context() as db:
        BuildService(db).build_application(UUID(str(application_id)))


def handle_bot_message_job(job: Dict[str, Any]) -> None:
    """bot_messages job: {"botId", "userId", "message", "instanceId"?}"""
    from metaplatform.services.bot_pipeline import BotMessagePipeline

    bot_id, user_id, message = job.get("botId"), job.get("userId"), job.get("message")
    if not (bot_id and user_id and message):
        logger.warning("Ignoring bot message job without botId, userId or message")
        return

    instance_id = job.get("instanceId")
    with get_db_context() as db:
        BotMessagePipeline(db).process_bot_message(
            UUID(str(bot_id)),
            UUID(str(user_id)),
            message,
            instance_id=UUID(str(instance_id)) if instance_id else None,
        )


def create_worker(interval_seconds: Optional[float] = None) -> PollingWorker:
    """Worker with the build and bot message handlers registered"""
    worker = PollingWorker(interval_seconds=interval_seconds)
    worker.register_handler(settings.app_builds_queue, handle_build_job)
    worker.register_handler(settings.bot_messages_queue, handle_bot_message_job)
    return worker
