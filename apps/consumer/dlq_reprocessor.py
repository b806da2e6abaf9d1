"""
DLQ Reprocessor - retries dead-lettered events on a fixed interval.

Each run drains the dead-letter queue through the same validate and map
pipeline as the poll loop. Events that now succeed are deleted from the DLQ;
events that still fail are left in place for an operator to inspect (see
`python -m apps.dlq inspect`).
"""

import asyncio
import logging
from typing import Optional

from apps.consumer.processor import EventProcessor, Failure
from apps.consumer.worker import BatchResult, QueueWorker
from utils.queue import MAX_RECEIVE_BATCH, QueueClient
from utils.schemas import RawEvent

logger = logging.getLogger(__name__)


class DLQReprocessor(QueueWorker):
    """Driver for the dead-letter queue."""

    label = "dlq"

    def __init__(
        self,
        queue: QueueClient,
        processor: EventProcessor,
        queue_url: str,
        *,
        max_messages: int = MAX_RECEIVE_BATCH,
        wait_seconds: int = 5,
        visibility_timeout: int = 30,
        max_batches: int = 10,
        shutdown_event: Optional[asyncio.Event] = None,
    ) -> None:
        """
        Args:
            max_batches: Upper bound on receives per drain
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
        self.max_batches = max_batches

    async def drain_once(self) -> BatchResult:
        """
        Drain the DLQ until it returns an empty batch, max_batches receives
        have been made, or shutdown is requested.

        A message handled earlier in the same drain is not processed again; a
        batch made up only of such messages ends the drain.

        Returns:
            Counters for the whole drain
        """
        summary = BatchResult()
        seen: set[str] = set()

        for _ in range(self.max_batches):
            if self.shutdown_event.is_set():
                break

            events = [event for event in await self.receive_batch() if event.message_id not in seen]
            if not events:
                break
            seen.update(event.message_id for event in events)

            logger.info("Processing %d message(s) from DLQ", len(events))
            summary.merge(await self.process_batch(events))

        if summary.received:
            logger.info(
                "DLQ drain complete: received=%d, resolved=%d, still_failing=%d",
                summary.received,
                summary.deleted,
                summary.failed,
                extra={"queue_url": self.queue_url},
            )
        else:
            logger.debug("DLQ empty: queue_url=%s", self.queue_url)

        return summary

    def on_failure(self, event: RawEvent, outcome: Failure) -> None:
        logger.warning(
            "DLQ message still failing, left for manual investigation: message_id=%s, kind=%s, reason=%s, receive_count=%d",
            event.message_id,
            outcome.kind,
            outcome.reason,
            event.receive_count,
            extra={
                "message_id": event.message_id,
                "receipt_handle": event.receipt_handle,
                "queue_url": self.queue_url,
                "error_kind": outcome.kind,
                "receive_count": event.receive_count,
            },
        )
