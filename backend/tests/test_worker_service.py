"""
Worker tests
Polling loop, dispatch and the queue job handlers
"""
import asyncio
from unittest.mock import MagicMock, patch

import pytest

from metaplatform.config import settings
from metaplatform.services import worker_service
from metaplatform.services.worker_service import (
    PollingWorker,
    WorkerStatus,
    create_worker,
    handle_bot_message_job,
    handle_build_job,
)


class FakeQueues:
    """In-memory stand-in for QueueService.consume_event"""

    def __init__(self, jobs=None):
        self.jobs = {queue: list(items) for queue, items in (jobs or {}).items()}

    def consume(self, queue):
        items = self.jobs.get(queue)
        return items.pop(0) if items else None


class TestPollingWorker:
    """PollingWorker tests"""

    @pytest.mark.asyncio
    async def test_poll_once_handles_one_job_per_queue(self):
        queues = FakeQueues({"a": [{"n": 1}, {"n": 2}], "b": [{"n": 3}]})
        seen = []
        worker = PollingWorker(interval_seconds=0, consume=queues.consume)
        worker.register_handler("a", lambda job: seen.append(("a", job["n"])))
        worker.register_handler("b", lambda job: seen.append(("b", job["n"])))

        handled = await worker.poll_once()

        assert handled == 2
        assert seen == [("a", 1), ("b", 3)]

    @pytest.mark.asyncio
    async def test_empty_queues(self):
        worker = PollingWorker(interval_seconds=0, consume=FakeQueues().consume)
        worker.register_handler("a", MagicMock())

        assert await worker.poll_once() == 0

    @pytest.mark.asyncio
    async def test_coroutine_handler(self):
        seen = []

        async def handler(job):
            seen.append(job)

        worker = PollingWorker(interval_seconds=0, consume=FakeQueues({"a": [{"x": 1}]}).consume)
        worker.register_handler("a", handler)

        await worker.poll_once()

        assert seen == [{"x": 1}]

    @pytest.mark.asyncio
    async def test_handler_errors_are_counted_not_raised(self):
        def failing(job):
            raise RuntimeError("kaboom")

        worker = PollingWorker(interval_seconds=0, consume=FakeQueues({"a": [{}, {}]}).consume)
        worker.register_handler("a", failing)

        await worker.poll_once()
        await worker.poll_once()

        queue_status = worker.get_status()["queues"][0]
        assert queue_status["error_count"] == 2
        assert queue_status["processed_count"] == 0
        assert queue_status["last_error"] == "kaboom"

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        queues = FakeQueues({"a": [{"n": 1}]})
        handled = asyncio.Event()

        async def handler(job):
            handled.set()

        worker = PollingWorker(interval_seconds=0.01, consume=queues.consume)
        worker.register_handler("a", handler)

        await worker.start()
        assert worker.is_running
        assert worker.status == WorkerStatus.RUNNING

        await asyncio.wait_for(handled.wait(), timeout=2)
        await worker.stop()

        assert not worker.is_running
        assert worker.get_status()["status"] == "stopped"
        assert worker.get_status()["queues"][0]["processed_count"] == 1

    def test_create_worker_registers_queues(self):
        worker = create_worker(interval_seconds=5)

        assert worker.queues == [settings.app_builds_queue, settings.bot_messages_queue]
        assert worker.get_status()["status"] == "idle"


class TestJobHandlers:
    """Queue job handlers"""

    def test_build_job(self):
        with patch.object(worker_service, "get_db_context") as db_context, \
                patch("metaplatform.services.build_service.BuildService") as build_service:
            handle_build_job({"application_id": "00000000-0000-0000-0000-000000000001", "action": "build"})

        build_service.assert_called_once_with(db_context.return_value.__enter__.return_value)
        build_service.return_value.build_application.assert_called_once()

    def test_build_job_unknown_action_ignored(self):
        with patch("metaplatform.services.build_service.BuildService") as build_service:
            handle_build_job({"application_id": "00000000-0000-0000-0000-000000000001", "action": "deploy"})

        build_service.assert_not_called()

    def test_bot_message_job(self):
        job = {
            "botId": "00000000-0000-0000-0000-000000000001",
            "userId": "00000000-0000-0000-0000-000000000002",
            "message": "hello",
        }
        with patch.object(worker_service, "get_db_context"), \
                patch("metaplatform.services.bot_pipeline.BotMessagePipeline") as pipeline:
            handle_bot_message_job(job)

        args = pipeline.return_value.process_bot_message.call_args
        assert str(args.args[0]) == job["botId"]
        assert args.args[2] == "hello"
        assert args.kwargs["instance_id"] is None

    def test_bot_message_job_missing_fields_ignored(self):
        with patch("metaplatform.services.bot_pipeline.BotMessagePipeline") as pipeline:
            handle_bot_message_job({"botId": "x"})

        pipeline.assert_not_called()
