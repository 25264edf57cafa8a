"""
Click Worker

Consumes click events published by the redirect path (click_dispatch="queue")
and records them through the ClickRecorder.

Architecture:
- Consumes messages from the queue in batches
- Records each click (URL click_count + statistics)
- Acknowledges a batch once every click in it was handled; a click the
  recorder dropped (orphan, storage failure) is logged by the recorder and
  still acknowledged, it would fail the same way on redelivery
"""

import asyncio
import signal
import sys
from typing import List

from shortlink_app.config import settings
from shortlink_app.logging_config import get_logger, setup_logging
from shortlink_app.queue.models import ClickEvent
from shortlink_app.queue.strategies import QueueStrategy
from shortlink_app.services.click_recorder import ClickRecorder

logger = get_logger(__name__)


class ClickWorker:
    """
    Queue consumer for click events.

    Args:
        queue: Queue strategy to consume from
        recorder: Recorder that applies clicks (must not itself publish to the queue)
        queue_name: Queue/stream to read
        batch_size: Messages per read
        block_time: Milliseconds to block waiting for messages
    """

    def __init__(
        self,
        queue: QueueStrategy,
        recorder: ClickRecorder,
        queue_name: str = settings.queue_name,
        batch_size: int = settings.queue_batch_size,
        block_time: int = settings.queue_block_ms,
    ):
        self.queue = queue
        self.recorder = recorder
        self.queue_name = queue_name
        self.batch_size = batch_size
        self.block_time = block_time
        self.running = False
        self.processed_count = 0
        self.dropped_count = 0

    async def process_batch(self, messages: List[ClickEvent]) -> int:
        """
        Record a batch of clicks and acknowledge it.

        Returns:
            Number of clicks recorded
        """
        recorded = 0
        for event in messages:
            if await self.recorder.record_click(event.short_code, event.click):
                recorded += 1
            else:
                self.dropped_count += 1

        message_ids = [msg.message_id for msg in messages if msg.message_id]
        if message_ids:
            await self.queue.ack(self.queue_name, message_ids)

        self.processed_count += len(messages)
        return recorded

    async def run_once(self) -> int:
        """Consume and process a single batch; returns clicks recorded"""
        messages = await self.queue.consume(
            self.queue_name,
            batch_size=self.batch_size,
            block_time=self.block_time,
        )
        if not messages:
            return 0
        recorded = await self.process_batch(messages)
        logger.info("Processed %d clicks (%d recorded). Total: %d", len(messages), recorded, self.processed_count)
        return recorded

    async def start(self):
        """Run until stopped"""
        self.running = True
        logger.info("Click worker started (batch size %d)", self.batch_size)

        while self.running:
            try:
                if not await self.run_once():
                    # In-memory queues return immediately when empty
                    await asyncio.sleep(self.block_time / 1000)
            except asyncio.CancelledError:
                logger.info("Worker task cancelled")
                break
            except Exception:
                logger.exception("Error processing batch")
                await asyncio.sleep(1)

        logger.info("Click worker stopped")

    def _signal_handler(self, signum, frame):
        logger.info("Received signal %s. Shutting down gracefully...", signum)
        self.stop()

    def install_signal_handlers(self):
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def stop(self):
        self.running = False


async def main():
    """
    Main entry point for the click worker.

    Usage:
        python -m shortlink_app.hit_processor.click_worker
    """
    setup_logging(settings.log_level, settings.log_file, settings.log_json)
    logger.info(
        "Click worker: environment=%s queue=%s storage=%s",
        settings.environment, settings.queue_backend, settings.storage_backend,
    )

    from shortlink_app.dependencies import get_queue, build_click_recorder

    worker = ClickWorker(queue=get_queue(), recorder=build_click_recorder(queue=None))
    worker.install_signal_handlers()

    try:
        await worker.start()
    except Exception:
        logger.exception("Fatal error in click worker")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
