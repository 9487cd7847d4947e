"""
Queue Service tests
Redis list queues with a mocked client
"""
import json
from unittest.mock import MagicMock

import pytest
import redis

from metaplatform.services.queue_service import QueueService
from metaplatform.utils.errors import QueueUnavailableError


@pytest.fixture
def redis_client(monkeypatch):
    client = MagicMock()
    monkeypatch.setattr(QueueService, "_client", client)
    return client


@pytest.fixture
def no_redis(monkeypatch):
    monkeypatch.setattr(QueueService, "get_client", classmethod(lambda cls: None))


class TestPublish:
    """publish_event tests"""

    def test_lpush_json(self, redis_client):
        QueueService.publish_event("bot_messages", {"botId": "b1", "message": "hi"})

        queue, raw = redis_client.lpush.call_args.args
        assert queue == "bot_messages"
        assert json.loads(raw) == {"botId": "b1", "message": "hi"}

    def test_non_json_values_stringified(self, redis_client):
        from uuid import UUID

        QueueService.publish_event("app_builds", {"application_id": UUID(int=1)})

        raw = redis_client.lpush.call_args.args[1]
        assert json.loads(raw) == {"application_id": "00000000-0000-0000-0000-000000000001"}

    def test_unavailable(self, no_redis):
        with pytest.raises(QueueUnavailableError, match="app_builds"):
            QueueService.publish_event("app_builds", {})


class TestConsume:
    """consume_event tests"""

    def test_rpop_decodes(self, redis_client):
        redis_client.rpop.return_value = '{"action": "build"}'

        assert QueueService.consume_event("app_builds") == {"action": "build"}
        redis_client.rpop.assert_called_once_with("app_builds")

    def test_empty_queue(self, redis_client):
        redis_client.rpop.return_value = None

        assert QueueService.consume_event("app_builds") is None

    def test_malformed_payload_dropped(self, redis_client):
        redis_client.rpop.return_value = "not json"

        assert QueueService.consume_event("app_builds") is None

    def test_redis_error(self, redis_client):
        redis_client.rpop.side_effect = redis.ConnectionError("gone")

        assert QueueService.consume_event("app_builds") is None

    def test_unavailable(self, no_redis):
        assert QueueService.consume_event("app_builds") is None


class TestAvailability:
    """is_available / queue_length"""

    def test_available(self, redis_client):
        assert QueueService.is_available() is True

    def test_ping_failure(self, redis_client):
        redis_client.ping.side_effect = redis.ConnectionError("gone")

        assert QueueService.is_available() is False

    def test_no_client(self, no_redis):
        assert QueueService.is_available() is False
        assert QueueService.queue_length("bot_messages") == 0

    def test_queue_length(self, redis_client):
        redis_client.llen.return_value = 3

        assert QueueService.queue_length("bot_messages") == 3
