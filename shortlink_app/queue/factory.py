"""
Factory for the click queue.
One queue per process, chosen by ``settings.queue_backend``.
"""

from enum import Enum

from redis import RedisError

from .strategies import QueueStrategy, RedisStreamQueue, InMemoryQueue
from shortlink_app.config import settings
from shortlink_app.logging_config import get_logger
from shortlink_app.redis_client import connect_redis

logger = get_logger(__name__)


class QueueBackend(Enum):
    """Available queue backends"""
    REDIS_STREAMS = "redis_streams"
    MEMORY = "memory"


def _redis_stream_queue() -> QueueStrategy:
    try:
        return RedisStreamQueue(connect_redis(), settings.queue_consumer_group)
    except RedisError as e:
        logger.warning("Redis unavailable for the click queue (%s); using in-memory queue", e)
        return _memory_queue()


def _memory_queue() -> QueueStrategy:
    return InMemoryQueue(max_length=settings.queue_max_length)


class QueueFactory:
    """Builds the queue once and hands out the same instance afterwards"""

    _builders = {
        QueueBackend.REDIS_STREAMS: _redis_stream_queue,
        QueueBackend.MEMORY: _memory_queue,
    }
    _instance: QueueStrategy = None

    @classmethod
    def create(cls, backend: QueueBackend) -> QueueStrategy:
        """
        Return the process queue, building it on first use.

        Raises:
            ValueError: unknown backend
        """
        if cls._instance is None:
            builder = cls._builders.get(backend)
            if builder is None:
                raise ValueError(f"Unknown queue backend: {backend}")
            cls._instance = builder()
            logger.info("Queue backend: %s", type(cls._instance).__name__)
        return cls._instance

    @classmethod
    def clear_instance(cls):
        """Forget the cached instance (tests)"""
        cls._instance = None
