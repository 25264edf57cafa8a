"""
Factory for the redirect cache.
One cache per process, chosen by ``settings.cache_backend``.
"""

from enum import Enum

from redis import RedisError

from .strategies import CacheStrategy, RedisCache, InMemoryCache, NullCache
from shortlink_app.logging_config import get_logger
from shortlink_app.redis_client import connect_redis

logger = get_logger(__name__)


class CacheBackend(Enum):
    """Available cache backends"""
    REDIS = "redis"
    MEMORY = "memory"
    NULL = "null"


def _redis_cache() -> CacheStrategy:
    try:
        return RedisCache(connect_redis())
    except RedisError as e:
        # A per-process fallback would miss invalidations made by other
        # instances, so run uncached instead
        logger.warning("Redis unavailable for caching (%s); caching disabled", e)
        return NullCache()


class CacheFactory:
    """
    Builds the cache once and hands out the same instance afterwards.

    Settings are read inside the builders, callers only pick the backend.
    """

    _builders = {
        CacheBackend.REDIS: _redis_cache,
        CacheBackend.MEMORY: InMemoryCache,
        CacheBackend.NULL: NullCache,
    }
    _instance: CacheStrategy = None

    @classmethod
    def create(cls, backend: CacheBackend) -> CacheStrategy:
        """
        Return the process cache, building it on first use.

        Raises:
            ValueError: unknown backend
        """
        if cls._instance is None:
            builder = cls._builders.get(backend)
            if builder is None:
                raise ValueError(f"Unknown cache backend: {backend}")
            cls._instance = builder()
            logger.info("Cache backend: %s", type(cls._instance).__name__)
        return cls._instance

    @classmethod
    def clear_instance(cls):
        """Forget the cached instance (tests)"""
        cls._instance = None
