"""
Queue Service
Redis list queues shared by the API, the worker and the chat relay.
Producers LPUSH JSON payloads; consumers RPOP them, so each queue is FIFO.
"""
import json
import logging
from typing import Any, Dict, Optional

import redis
from redis import ConnectionPool

from metaplatform.config import settings
from metaplatform.utils.errors import QueueUnavailableError
from metaplatform.utils.metrics import queue_events_published_total

logger = logging.getLogger(__name__)


class QueueService:
    """Redis-backed job queues"""

    _pool: Optional[ConnectionPool] = None
    _client: Optional[redis.Redis] = None

    @classmethod
    def get_pool(cls) -> ConnectionPool:
        """Redis connection pool"""
        if cls._pool is None:
            cls._pool = ConnectionPool.from_url(
                settings.redis_url,
                max_connections=settings.redis_max_connections,
                decode_responses=True,
            )
            logger.info("Redis connection pool created")
        return cls._pool

    @classmethod
    def get_client(cls) -> Optional[redis.Redis]:
        """Redis client, or None when Redis cannot be reached"""
        if cls._client is None:
            try:
                client = redis.Redis(connection_pool=cls.get_pool())
                client.ping()
                cls._client = client
                logger.info("Redis client connected")
            except redis.RedisError as e:
                logger.warning(f"Redis connection failed: {e}")
                cls._client = None
        return cls._client

    @classmethod
    def is_available(cls) -> bool:
        client = cls.get_client()
        if client is None:
            return False
        try:
            client.ping()
            return True
        except redis.RedisError:
            return False

    @classmethod
    def reset(cls):
        """Drop the cached client and pool"""
        if cls._pool is not None:
            cls._pool.disconnect()
        cls._pool = None
        cls._client = None

    @classmethod
    def publish_event(cls, queue: str, payload: Dict[str, Any]) -> None:
        """
        Push a job onto a queue

        Raises:
            QueueUnavailableError: Redis is not reachable
            redis.RedisError: the push failed
        """
        client = cls.get_client()
        if client is None:
            raise QueueUnavailableError(f"Queue unavailable: {queue}")

        client.lpush(queue, json.dumps(payload, default=str))
        queue_events_published_total.labels(queue=queue).inc()
        logger.debug(f"Published event to {queue}")

    @classmethod
    def consume_event(cls, queue: str) -> Optional[Dict[str, Any]]:
        """Pop the oldest job from a queue; None when empty or on error"""
        client = cls.get_client()
        if client is None:
            return None

        try:
            raw = client.rpop(queue)
        except redis.RedisError as e:
            logger.warning(f"Queue consume error on {queue}: {e}")
            return None
        if raw is None:
            return None

        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Dropping malformed event on {queue}: {e}")
            return None

    @classmethod
    def queue_length(cls, queue: str) -> int:
        client = cls.get_client()
        if client is None:
            return 0
        try:
            return client.llen(queue)
        except redis.RedisError:
            return 0
