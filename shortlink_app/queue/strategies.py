"""
Click queue strategies.

The redirect path publishes ClickEvents; the click worker consumes and
records them. Backends: Redis Streams (shared, durable) or an in-process
deque (development and tests).
"""

import json
import socket
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional, Tuple

from redis.exceptions import RedisError, ResponseError

from .models import ClickEvent
from shortlink_app.logging_config import get_logger

logger = get_logger(__name__)


class QueueStrategy(ABC):
    """Publish/consume/ack contract shared by every click queue backend"""

    # True when other processes can consume what this process publishes
    shared: bool = False

    @abstractmethod
    async def publish(self, queue_name: str, message: ClickEvent) -> bool:
        """Append one event; False if the backend refused it"""
        pass

    @abstractmethod
    async def consume(
        self,
        queue_name: str,
        batch_size: int = 1,
        block_time: int = 1000
    ) -> List[ClickEvent]:
        """
        Up to ``batch_size`` events, waiting at most ``block_time`` ms.

        Backends that need acknowledgment set ``message_id`` on each event.
        """
        pass

    @abstractmethod
    async def ack(self, queue_name: str, message_ids: List[str]) -> bool:
        pass

    @abstractmethod
    async def get_queue_length(self, queue_name: str) -> int:
        pass


class RedisStreamQueue(QueueStrategy):
    """
    Click queue on a Redis Stream with one consumer group.

    Events are added with XADD and read with XREADGROUP. A worker that dies
    before XACK leaves its events pending; the next consumer claims any
    event idle longer than ``claim_idle_ms`` before reading new ones.
    The claim scan resumes from the cursor XAUTOCLAIM returned last time and
    wraps to the start of the pending list once it reaches the end.
    """

    shared = True

    def __init__(self, redis_client, consumer_group: str = "click_workers", claim_idle_ms: int = 60000):
        self.redis = redis_client
        self.consumer_group = consumer_group
        self.consumer_name = f"{socket.gethostname()}-{id(self)}"
        self.claim_idle_ms = claim_idle_ms
        self._groups_ready = set()
        self._claim_cursors: Dict[str, str] = {}

    def _ensure_group(self, queue_name: str) -> None:
        if queue_name in self._groups_ready:
            return
        try:
            self.redis.xgroup_create(queue_name, self.consumer_group, id="0", mkstream=True)
            logger.info("Created consumer group %s on stream %s", self.consumer_group, queue_name)
        except ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise
        self._groups_ready.add(queue_name)

    @staticmethod
    def _decode(entries: List[Tuple[bytes, Dict]]) -> Tuple[List[ClickEvent], List[str]]:
        """Events that parsed, plus ids of entries that never will"""
        events, unreadable = [], []
        for message_id, fields in entries or []:
            if not fields:
                # Claimed entry that was trimmed from the stream
                continue
            message_id = message_id.decode()
            try:
                event = ClickEvent(**json.loads(fields[b"data"]))
            except (KeyError, ValueError) as e:
                logger.warning("Discarding unreadable click message %s: %s", message_id, e)
                unreadable.append(message_id)
                continue
            event.message_id = message_id
            events.append(event)
        return events, unreadable

    def _read(self, queue_name: str, entries: List[Tuple[bytes, Dict]]) -> List[ClickEvent]:
        events, unreadable = self._decode(entries)
        if unreadable:
            # Acked so they leave the pending list
            self.redis.xack(queue_name, self.consumer_group, *unreadable)
        return events

    def _claim_stale(self, queue_name: str, count: int) -> List[ClickEvent]:
        result = self.redis.xautoclaim(
            queue_name,
            self.consumer_group,
            self.consumer_name,
            min_idle_time=self.claim_idle_ms,
            start_id=self._claim_cursors.get(queue_name, "0-0"),
            count=count,
        )
        cursor = result[0]
        self._claim_cursors[queue_name] = cursor.decode() if isinstance(cursor, bytes) else cursor
        claimed = self._read(queue_name, result[1])
        if claimed:
            logger.info("Reclaimed %d stale click messages from %s", len(claimed), queue_name)
        return claimed

    async def publish(self, queue_name: str, message: ClickEvent) -> bool:
        try:
            self._ensure_group(queue_name)
            self.redis.xadd(queue_name, {"data": message.model_dump_json()})
        except RedisError as e:
            logger.error("Failed to publish click to %s: %s", queue_name, e)
            return False
        return True

    async def consume(
        self,
        queue_name: str,
        batch_size: int = 1,
        block_time: int = 1000
    ) -> List[ClickEvent]:
        try:
            self._ensure_group(queue_name)
            events = self._claim_stale(queue_name, batch_size)
            if events:
                return events

            # ">" asks for entries never delivered to this group
            response = self.redis.xreadgroup(
                self.consumer_group,
                self.consumer_name,
                {queue_name: ">"},
                count=batch_size,
                block=block_time,
            )
            events = []
            for _stream, entries in response or []:
                events.extend(self._read(queue_name, entries))
        except RedisError as e:
            logger.error("Failed to read clicks from %s: %s", queue_name, e)
            return []
        return events

    async def ack(self, queue_name: str, message_ids: List[str]) -> bool:
        if not message_ids:
            return True
        try:
            self.redis.xack(queue_name, self.consumer_group, *message_ids)
        except RedisError as e:
            logger.error("Failed to ack %d clicks on %s: %s", len(message_ids), queue_name, e)
            return False
        return True

    async def get_queue_length(self, queue_name: str) -> int:
        try:
            return self.redis.xlen(queue_name)
        except RedisError:
            return 0


class InMemoryQueue(QueueStrategy):
    """
    Per-process deque per queue name.

    Events are removed when consumed, so there is nothing to acknowledge and
    nothing survives a restart. ``block_time`` is ignored. With ``max_length``
    set, a full queue drops its oldest event for each new one.
    """

    def __init__(self, max_length: Optional[int] = None):
        self._queues: Dict[str, Deque[ClickEvent]] = defaultdict(lambda: deque(maxlen=max_length))

    async def publish(self, queue_name: str, message: ClickEvent) -> bool:
        queue = self._queues[queue_name]
        if queue.maxlen is not None and len(queue) == queue.maxlen:
            logger.warning("Click queue %s is full; dropping its oldest click", queue_name)
        queue.append(message)
        return True

    async def consume(
        self,
        queue_name: str,
        batch_size: int = 1,
        block_time: int = 1000
    ) -> List[ClickEvent]:
        queue = self._queues[queue_name]
        return [queue.popleft() for _ in range(min(batch_size, len(queue)))]

    async def ack(self, queue_name: str, message_ids: List[str]) -> bool:
        return True

    async def get_queue_length(self, queue_name: str) -> int:
        return len(self._queues[queue_name])
