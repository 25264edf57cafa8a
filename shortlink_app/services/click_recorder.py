"""
Click recorder: the failure boundary between the redirect and analytics.

The redirect never awaits a click. It either hands the click to a detached
asyncio task (``submit``), a FastAPI background task that runs after the
response is sent, or the click queue consumed by the click worker. Whatever
goes wrong while recording is logged here and goes no further.
"""

import asyncio
from typing import Optional, Set

from shortlink_app.exceptions import OrphanClick
from shortlink_app.logging_config import get_logger
from shortlink_app.queue.models import ClickEvent
from shortlink_app.queue.strategies import QueueStrategy
from shortlink_app.schemas.records import ClickInfo
from shortlink_app.services.statistics_service import StatisticsService
from shortlink_app.storage.strategies import DocumentStore

logger = get_logger(__name__)


class ClickRecorder:
    """
    Records clicks into URL click counts and statistics.

    Args:
        statistics_service: Aggregates clicks into statistics documents
        urls: URL record store (for the atomic click_count increment)
        queue: Optional click queue; when set, ``submit`` publishes instead
            of recording in-process
        queue_name: Queue/stream name for published clicks
    """

    def __init__(
        self,
        statistics_service: StatisticsService,
        urls: DocumentStore,
        queue: Optional[QueueStrategy] = None,
        queue_name: str = "url_clicks",
    ):
        self.statistics_service = statistics_service
        self.urls = urls
        self.queue = queue
        self.queue_name = queue_name
        self._tasks: Set[asyncio.Task] = set()

    async def record_click(self, short_code: str, click: Optional[ClickInfo] = None) -> bool:
        """
        Record one click. Never raises.

        Returns:
            True if the click was recorded, False if it was dropped
        """
        click = click or ClickInfo()
        try:
            await self.urls.increment({"short_code": short_code}, "click_count")
            await self.statistics_service.apply_click(short_code, click)
            return True
        except OrphanClick as e:
            logger.warning("Dropping click: %s", e)
        except Exception:
            logger.exception("Failed to record click for '%s'", short_code)
        return False

    async def dispatch(self, short_code: str, click: Optional[ClickInfo] = None) -> bool:
        """
        Record in-process, or publish to the queue when one is configured.
        Never raises.
        """
        if self.queue is None:
            return await self.record_click(short_code, click)

        click = click or ClickInfo()
        try:
            fields = click.model_dump(exclude={"occurred_at"})
            if click.occurred_at is not None:
                fields["timestamp"] = click.occurred_at
            event = ClickEvent(short_code=short_code, **fields)
            published = await self.queue.publish(self.queue_name, event)
        except Exception:
            logger.exception("Failed to publish click for '%s'", short_code)
            return False
        if not published:
            logger.warning("Click for '%s' was not published", short_code)
        return published

    def submit(self, short_code: str, click: Optional[ClickInfo] = None) -> asyncio.Task:
        """
        Fire-and-forget ``dispatch`` on the running loop.

        The task is referenced until it finishes so it cannot be garbage
        collected mid-flight; callers never need to await it.
        """
        task = asyncio.get_running_loop().create_task(self.dispatch(short_code, click))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for submitted clicks to finish (shutdown and tests)"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
