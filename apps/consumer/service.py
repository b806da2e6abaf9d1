"""
Report Consumer Service - process entry point

Wires the queue client, poll loop and DLQ reprocessor together and runs them
until SIGINT/SIGTERM.

Features:
- Long-polling consumer for the primary queue
- DLQ reprocessing on an APScheduler interval job
- Graceful shutdown: no new receives, in-flight batches get a grace period
- Structured logging

Usage:
    # Consumer mode (default)
    QUEUE_URL=https://sqs.us-east-1.amazonaws.com/123/appointments python -m apps.consumer

    # One poll cycle and one DLQ drain, then exit
    RUN_ONCE=true python -m apps.consumer
"""

import asyncio
import logging
import os
import signal
import sys
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from pydantic import ValidationError

from apps.consumer.dlq_reprocessor import DLQReprocessor
from apps.consumer.poll_loop import PollLoop
from apps.consumer.processor import EventProcessor
from utils.config import Settings, describe_config_error, get_settings
from utils.logging import setup_logging
from utils.mapper import ReportMapper
from utils.queue import QueueClient, SqsQueueClient

logger = logging.getLogger(__name__)

DLQ_JOB_ID = "dlq_reprocessor"


class ReportConsumerService:
    """
    Process-scoped owner of the queue client and both workers.

    Handles:
    - Queue client lifetime (created once, shared, closed on exit)
    - DLQ reprocessor scheduling
    - Signal handling for graceful shutdown
    """

    def __init__(
        self,
        settings: Settings,
        queue: Optional[QueueClient] = None,
        run_once: bool = False,
    ) -> None:
        """
        Initialize the service.

        Args:
            settings: Application settings
            queue: Queue client to use; built from settings when omitted
            run_once: If True, run one poll cycle and one DLQ drain, then exit
        """
        self.settings = settings
        self.run_once = run_once
        self._owns_queue = queue is None
        self.queue = queue if queue is not None else SqsQueueClient.from_settings(settings)
        self.shutdown_event = asyncio.Event()
        self.scheduler: AsyncIOScheduler | None = None
        self._dlq_runs: set[asyncio.Task] = set()

        processor = EventProcessor(ReportMapper(environment=settings.ENVIRONMENT_TAG))

        self.poll_loop = PollLoop(
            self.queue,
            processor,
            settings.QUEUE_URL,
            max_messages=settings.RECEIVE_MAX_MESSAGES,
            wait_seconds=settings.RECEIVE_WAIT_SECONDS,
            visibility_timeout=settings.VISIBILITY_TIMEOUT,
            idle_delay=settings.IDLE_DELAY_SECONDS,
            shutdown_event=self.shutdown_event,
        )
        self.dlq_reprocessor = DLQReprocessor(
            self.queue,
            processor,
            settings.DLQ_URL,
            max_messages=settings.RECEIVE_MAX_MESSAGES,
            wait_seconds=settings.DLQ_WAIT_SECONDS,
            visibility_timeout=settings.DLQ_VISIBILITY_TIMEOUT,
            max_batches=settings.DLQ_MAX_BATCHES,
            shutdown_event=self.shutdown_event,
        )

        logger.info(
            "ReportConsumerService initialized (run_once=%s, environment=%s)",
            run_once,
            settings.ENVIRONMENT_TAG,
        )

    async def run_dlq_job(self) -> None:
        """Run one DLQ drain; failures are logged and never stop the scheduler."""
        task = asyncio.current_task()
        if task is not None:
            self._dlq_runs.add(task)
        try:
            await self.dlq_reprocessor.drain_once()
        except Exception as e:
            logger.error("DLQ reprocessing run failed: %s", str(e), exc_info=True)
        finally:
            if task is not None:
                self._dlq_runs.discard(task)

    def request_shutdown(self, signum: Optional[int] = None) -> None:
        if not self.shutdown_event.is_set():
            logger.info("Received signal %s, initiating graceful shutdown", signum)
            self.shutdown_event.set()

    def setup_signal_handlers(self) -> None:
        """Setup handlers for graceful shutdown on SIGINT/SIGTERM."""
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, self.request_shutdown, signum)

    def start_scheduler(self) -> None:
        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self.run_dlq_job,
            trigger=IntervalTrigger(seconds=self.settings.DLQ_INTERVAL_SECONDS),
            id=DLQ_JOB_ID,
            name="DLQ Reprocessor",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()

        job = self.scheduler.get_job(DLQ_JOB_ID)
        logger.info(
            "Scheduled DLQ reprocessor: interval=%ss, next_run=%s",
            self.settings.DLQ_INTERVAL_SECONDS,
            getattr(job, "next_run_time", None),
        )

    async def start(self) -> None:
        """
        Run until a shutdown signal, or for a single cycle in RUN_ONCE mode.
        """
        self.setup_signal_handlers()

        logger.info("Starting report consumer for queue: %s", self.settings.QUEUE_URL)
        logger.info("DLQ configured at: %s", self.settings.DLQ_URL)

        try:
            if self.run_once:
                logger.info("RUN_ONCE mode: one poll cycle and one DLQ drain")
                await self.poll_loop.poll_once()
                await self.run_dlq_job()
                return

            self.start_scheduler()
            poll_task = asyncio.create_task(self.poll_loop.run(), name="poll-loop")
            stop_task = asyncio.create_task(self.shutdown_event.wait())

            await asyncio.wait([poll_task, stop_task], return_when=asyncio.FIRST_COMPLETED)
            stop_task.cancel()

            await self.drain(poll_task)

            if not poll_task.cancelled() and poll_task.exception() is not None:
                raise poll_task.exception()

        finally:
            self.close()

    async def drain(self, poll_task: asyncio.Task) -> None:
        """
        Stop scheduling new work and wait for in-flight work.

        Waits up to SHUTDOWN_GRACE_SECONDS for the poll loop and any DLQ run
        to finish, then cancels whatever is still running.
        """
        self.shutdown_event.set()

        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=False)

        in_flight = {poll_task, *self._dlq_runs}
        _, pending = await asyncio.wait(in_flight, timeout=self.settings.SHUTDOWN_GRACE_SECONDS)

        if pending:
            logger.warning(
                "Grace period of %ss elapsed, cancelling %d task(s)",
                self.settings.SHUTDOWN_GRACE_SECONDS,
                len(pending),
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        logger.info(
            "Consumer shutdown complete (primary: succeeded=%d failed=%d, dlq: resolved=%d still_failing=%d)",
            self.poll_loop.stats.succeeded,
            self.poll_loop.stats.failed,
            self.dlq_reprocessor.stats.deleted,
            self.dlq_reprocessor.stats.failed,
        )

    def close(self) -> None:
        """Release the queue client if this service created it."""
        if self._owns_queue and isinstance(self.queue, SqsQueueClient):
            self.queue.close()
            logger.info("Queue client closed")


async def main() -> None:
    """Main entry point for the report consumer."""
    try:
        settings = get_settings()
    except ValidationError as e:
        setup_logging(level=os.getenv("LOG_LEVEL", "INFO"), format_type=os.getenv("LOG_FORMAT", "json").lower())
        logger.error("Invalid configuration: %s", describe_config_error(e))
        sys.exit(1)

    setup_logging(level=settings.LOG_LEVEL, format_type=settings.LOG_FORMAT)

    try:
        service = ReportConsumerService(settings, run_once=settings.RUN_ONCE)
        await service.start()
    except Exception as e:
        logger.error("Consumer failed: %s", str(e), exc_info=True)
        sys.exit(1)


def cli() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    asyncio.run(main())
