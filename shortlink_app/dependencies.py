"""
FastAPI dependencies for dependency injection.

Singletons for stores, cache, queue and services are built once from
settings and injected into routes. Tests replace them through
``app.dependency_overrides``.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Request

from shortlink_app.cache.factory import CacheFactory, CacheBackend
from shortlink_app.cache.strategies import CacheStrategy
from shortlink_app.clock import Clock, SystemClock
from shortlink_app.config import settings
from shortlink_app.logging_config import get_logger
from shortlink_app.queue.factory import QueueFactory, QueueBackend
from shortlink_app.queue.strategies import QueueStrategy
from shortlink_app.services.click_recorder import ClickRecorder
from shortlink_app.services.quota import PlanQuotaPolicy, QuotaPolicy
from shortlink_app.services.statistics_service import StatisticsService
from shortlink_app.services.url_service import URLService
from shortlink_app.storage.factory import Collection, DocumentStoreFactory, StorageBackend
from shortlink_app.storage.strategies import DocumentStore

logger = get_logger(__name__)


@lru_cache()
def get_clock() -> Clock:
    return SystemClock()


@lru_cache()
def get_url_store() -> DocumentStore:
    return DocumentStoreFactory.create(StorageBackend(settings.storage_backend), Collection.URLS)


@lru_cache()
def get_statistics_store() -> DocumentStore:
    return DocumentStoreFactory.create(StorageBackend(settings.storage_backend), Collection.STATISTICS)


@lru_cache()
def get_cache() -> CacheStrategy:
    """
    Get cache instance (singleton).

    Factory gets config from settings internally.
    """
    return CacheFactory.create(CacheBackend(settings.cache_backend))


@lru_cache()
def get_queue() -> QueueStrategy:
    """
    Get queue instance (singleton).

    Factory gets config from settings internally.
    """
    return QueueFactory.create(QueueBackend(settings.queue_backend))


@lru_cache()
def get_quota_policy() -> QuotaPolicy:
    return PlanQuotaPolicy(settings.plan_limits, default_plan=settings.default_plan)


@lru_cache()
def get_statistics_service() -> StatisticsService:
    return StatisticsService(
        statistics=get_statistics_store(),
        urls=get_url_store(),
        clock=get_clock(),
        cas_retries=settings.click_cas_retries,
    )


def build_click_recorder(queue: Optional[QueueStrategy] = None) -> ClickRecorder:
    """
    Recorder over the configured stores.

    With a queue, dispatched clicks are published for the click worker;
    without one they are recorded in-process.
    """
    return ClickRecorder(
        statistics_service=get_statistics_service(),
        urls=get_url_store(),
        queue=queue,
        queue_name=settings.queue_name,
    )


def dispatch_queue(click_dispatch: str, queue: Optional[QueueStrategy]) -> Optional[QueueStrategy]:
    """
    Queue the redirect side should publish to, or None to record in-process.

    A queue local to this process (the in-memory fallback) has no worker
    reading it, so clicks are recorded in-process instead.
    """
    if click_dispatch != "queue" or queue is None:
        return None
    if not queue.shared:
        logger.warning(
            "Click queue %s is local to this process; recording clicks in-process",
            type(queue).__name__,
        )
        return None
    return queue


@lru_cache()
def get_click_recorder() -> ClickRecorder:
    queue = get_queue() if settings.click_dispatch == "queue" else None
    return build_click_recorder(queue=dispatch_queue(settings.click_dispatch, queue))


@lru_cache()
def get_url_service() -> URLService:
    """
    Get URLService with all dependencies injected.

    Routes depend on the service; the service depends on infrastructure
    (stores, cache, recorder).
    """
    return URLService(
        urls=get_url_store(),
        statistics_service=get_statistics_service(),
        recorder=get_click_recorder(),
        cache=get_cache(),
        quota_policy=get_quota_policy(),
        clock=get_clock(),
    )


def get_caller_id(request: Request) -> Optional[str]:
    """
    Caller identity supplied by the upstream identity provider.

    Authentication happens before this service; the header value is an
    opaque principal id, absent for anonymous callers.
    """
    value = request.headers.get(settings.identity_header)
    return value.strip() if value and value.strip() else None
