"""
Poll Loop - long-polls the primary queue until shutdown.

Every cycle receives up to one batch, processes it concurrently and deletes
the events that mapped successfully. Failed events are left on the queue; the
provider makes them visible again after the visibility timeout and routes them
to the DLQ once its maximum receive count is exceeded.
"""

import asyncio
import logging
from typing import Optional

from apps.consumer.processor import EventProcessor
from apps.consumer.worker import BatchResult, QueueWorker
from utils.queue import MAX_RECEIVE_BATCH, QueueClient

logger = logging.getLogger(__name__)


class PollLoop(QueueWorker):
    """Driver for the primary queue."""

    label = "primary"

    def __init__(
        self,
        queue: QueueClient,
        processor: EventProcessor,
        queue_url: str,
        *,
        max_messages: int = MAX_RECEIVE_BATCH,
        wait_seconds: int = 20,
        visibility_timeout: int = 30,
        idle_delay: float = 1.0,
        shutdown_event: Optional[asyncio.Event] = None,
    ) -> None:
        """
        Args:
            idle_delay: Seconds to wait after an empty batch before polling again
        """
        super().__init__(
            queue,
            processor,
            queue_url,
            max_messages=max_messages,
            wait_seconds=wait_seconds,
            visibility_timeout=visibility_timeout,
            shutdown_event=shutdown_event,
        )
        self.idle_delay = idle_delay

    async def poll_once(self) -> BatchResult:
        """Run a single receive and process cycle."""
        events = await self.receive_batch()
        if not events:
            logger.debug("No messages received")
            return BatchResult()

        logger.info("Received %d message(s) from primary queue", len(events))
        result = await self.process_batch(events)
        logger.info(
            "Batch complete: received=%d, succeeded=%d, failed=%d, deleted=%d",
            result.received,
            result.succeeded,
            result.failed,
            result.deleted,
        )
        return result

    async def run(self) -> None:
        """Poll until the shutdown event is set."""
        logger.info(
            "Poll loop started: queue_url=%s, max_messages=%d, wait_seconds=%d, visibility_timeout=%d",
            self.queue_url,
            self.max_messages,
            self.wait_seconds,
            self.visibility_timeout,
        )

        while not self.shutdown_event.is_set():
            result = await self.poll_once()
            if result.received == 0:
                await self._idle()

        logger.info(
            "Poll loop stopped: received=%d, succeeded=%d, failed=%d, deleted=%d",
            self.stats.received,
            self.stats.succeeded,
            self.stats.failed,
            self.stats.deleted,
        )

    async def _idle(self) -> None:
        """Sleep for the idle delay, waking early on shutdown."""
        try:
            await asyncio.wait_for(self.shutdown_event.wait(), timeout=self.idle_delay)
        except asyncio.TimeoutError:
            pass
