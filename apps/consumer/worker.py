"""
Queue Worker - receive, process and acknowledge against a single queue.

Shared by the poll loop (primary queue) and the DLQ reprocessor. A worker is
bound to exactly one queue URL: it receives from that queue and deletes only
from that queue, so a DLQ message can never be acknowledged on the primary
queue or the other way round.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from apps.consumer.processor import EventProcessor, Failure, ProcessingOutcome, Success
from utils.queue import MAX_RECEIVE_BATCH, DeleteError, QueueClient, QueueError
from utils.schemas import RawEvent, ReportRecord

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """Counters for one or more processed batches."""

    received: int = 0
    succeeded: int = 0
    failed: int = 0
    deleted: int = 0

    def merge(self, other: "BatchResult") -> None:
        self.received += other.received
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.deleted += other.deleted


class QueueWorker:
    """
    Base worker for one queue.

    Handles:
    - Long-poll receive that yields to a shutdown request
    - Concurrent per-message processing with a task group
    - Delete-on-success against the worker's own queue only
    """

    label = "queue"

    def __init__(
        self,
        queue: QueueClient,
        processor: EventProcessor,
        queue_url: str,
        *,
        max_messages: int = MAX_RECEIVE_BATCH,
        wait_seconds: int = 20,
        visibility_timeout: int = 30,
        shutdown_event: Optional[asyncio.Event] = None,
    ) -> None:
        self.queue = queue
        self.processor = processor
        self.queue_url = queue_url
        self.max_messages = max_messages
        self.wait_seconds = wait_seconds
        self.visibility_timeout = visibility_timeout
        self.shutdown_event = shutdown_event or asyncio.Event()
        self.stats = BatchResult()

    async def receive_batch(self) -> list[RawEvent]:
        """
        Receive one batch from the worker's queue.

        Returns an empty list when the queue is empty, when the receive failed
        after the adapter's retries, or when shutdown was requested before the
        receive completed. Messages from an abandoned receive become visible
        again after their visibility timeout.
        """
        if self.shutdown_event.is_set():
            return []

        receive_task = asyncio.create_task(
            self.queue.receive(
                self.queue_url,
                max_messages=self.max_messages,
                wait_seconds=self.wait_seconds,
                visibility_timeout=self.visibility_timeout,
            )
        )
        stop_task = asyncio.create_task(self.shutdown_event.wait())

        try:
            done, _ = await asyncio.wait(
                [receive_task, stop_task],
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            receive_task.cancel()
            raise
        finally:
            stop_task.cancel()

        if receive_task not in done:
            receive_task.cancel()
            try:
                await receive_task
            except (asyncio.CancelledError, QueueError):
                pass
            logger.info("Shutdown requested, abandoning receive on %s queue", self.label)
            return []

        try:
            return receive_task.result()
        except QueueError as e:
            logger.error(
                "Receive failed on %s queue: %s",
                self.label,
                str(e),
                extra={"queue_url": self.queue_url, "error_kind": type(e).__name__},
            )
            return []

    async def process_batch(self, events: list[RawEvent]) -> BatchResult:
        """
        Process a batch concurrently and delete every successfully mapped event.

        Each event is handled in its own task; a failing event never affects
        the others.
        """
        result = BatchResult(received=len(events))
        if not events:
            return result

        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(self._handle_safely(event)) for event in events]

        for task in tasks:
            outcome, deleted = task.result()
            if isinstance(outcome, Success):
                result.succeeded += 1
            else:
                result.failed += 1
            if deleted:
                result.deleted += 1

        self.stats.merge(result)
        return result

    async def _handle_safely(self, event: RawEvent) -> tuple[ProcessingOutcome, bool]:
        try:
            return await self._handle(event)
        except Exception as e:
            logger.error(
                "Unexpected error handling message: message_id=%s, error=%s",
                event.message_id,
                str(e),
                extra={"message_id": event.message_id, "queue_url": self.queue_url},
                exc_info=True,
            )
            return Failure(reason=str(e), kind="UnexpectedError", retryable=True), False

    async def _handle(self, event: RawEvent) -> tuple[ProcessingOutcome, bool]:
        if event.queue_url != self.queue_url:
            logger.error(
                "Refusing message from another queue: message_id=%s, source=%s, worker=%s",
                event.message_id,
                event.queue_url,
                self.queue_url,
            )
            return Failure(reason="Message belongs to another queue", kind="QueueMismatch", retryable=False), False

        outcome = self.processor.process(event)

        if isinstance(outcome, Failure):
            self.on_failure(event, outcome)
            return outcome, False

        deleted = await self._acknowledge(event)
        self.on_success(event, outcome.record, deleted)
        return outcome, deleted

    async def _acknowledge(self, event: RawEvent) -> bool:
        """Delete the event from this worker's queue. Returns True if the delete landed."""
        context = {
            "message_id": event.message_id,
            "receipt_handle": event.receipt_handle,
            "queue_url": self.queue_url,
        }
        try:
            await self.queue.delete(self.queue_url, event.receipt_handle)
            return True
        except DeleteError as e:
            logger.warning(
                "Delete rejected, receipt handle no longer valid: message_id=%s, code=%s",
                event.message_id,
                e.code,
                extra={**context, "error_kind": "DeleteError"},
            )
        except QueueError as e:
            logger.error(
                "Delete failed: message_id=%s, error=%s",
                event.message_id,
                str(e),
                extra={**context, "error_kind": type(e).__name__},
            )
        return False

    def on_success(self, event: RawEvent, record: ReportRecord, deleted: bool) -> None:
        logger.info(
            "Report processed: report_id=%s, message_id=%s, queue=%s, deleted=%s",
            record.id,
            event.message_id,
            self.label,
            deleted,
            extra={
                "report_id": record.id,
                "message_id": event.message_id,
                "queue_url": self.queue_url,
            },
        )

    def on_failure(self, event: RawEvent, outcome: Failure) -> None:
        logger.warning(
            "Message processing failed, leaving for redelivery: message_id=%s, kind=%s, reason=%s",
            event.message_id,
            outcome.kind,
            outcome.reason,
            extra={
                "message_id": event.message_id,
                "receipt_handle": event.receipt_handle,
                "queue_url": self.queue_url,
                "error_kind": outcome.kind,
                "receive_count": event.receive_count,
            },
        )
