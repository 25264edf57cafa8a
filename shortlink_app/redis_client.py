"""Shared Redis connection for the cache and the click queue."""

import redis

from shortlink_app.config import settings
from shortlink_app.logging_config import get_logger

logger = get_logger(__name__)


def connect_redis(url: str = None, timeout: float = 2) -> redis.Redis:
    """
    Open a client and ping it, so an unreachable server fails here and not
    on the first redirect.

    Raises:
        redis.RedisError: server unreachable or refusing the connection
    """
    client = redis.from_url(
        url or settings.redis_url,
        decode_responses=False,
        socket_connect_timeout=timeout,
        socket_timeout=timeout,
    )
    client.ping()
    logger.info("Connected to Redis at %s", client.connection_pool.connection_kwargs.get("host"))
    return client
