"""DLQ Management CLI.

Operator tooling for messages the DLQ reprocessor could not resolve.

Commands:
    stats                      Approximate depth of the primary queue and the DLQ
    inspect [--max N]          Peek at DLQ messages and show why they fail validation
    replay [--max N] [--only-valid] [--dry-run]
                               Re-inject DLQ messages into the primary queue
    send FILE [--force]        Send a JSON payload file to the primary queue

Usage:
    python -m apps.dlq inspect --max 20
    python -m apps.dlq replay --only-valid
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import orjson
from pydantic import ValidationError

from utils.config import Settings, describe_config_error, get_settings
from utils.logging import setup_logging
from utils.queue import MAX_RECEIVE_BATCH, DeleteError, QueueClient, QueueError, SqsQueueClient
from utils.schemas import RawEvent
from utils.validator import MessageValidationError, validate

logger = logging.getLogger(__name__)


def check_payload(body: Any) -> dict[str, Any]:
    """Validation verdict for a message body."""
    try:
        event = validate(body)
    except MessageValidationError as e:
        verdict: dict[str, Any] = {"valid": False, "error_kind": e.kind, "reason": str(e)}
        if hasattr(e, "fields"):
            verdict["missing_fields"] = list(e.fields)
        return verdict
    return {"valid": True, "report_id": event.petId}


class DLQManager:
    """Manager for dead-letter queue operations."""

    def __init__(self, queue: QueueClient, settings: Settings) -> None:
        """
        Initialize DLQ manager.

        Args:
            queue: Queue client
            settings: Application settings (queue URLs, visibility timeout)
        """
        self.queue = queue
        self.queue_url = settings.QUEUE_URL
        self.dlq_url = settings.DLQ_URL
        self.visibility_timeout = settings.DLQ_VISIBILITY_TIMEOUT

    async def _collect(self, limit: int, visibility_timeout: int) -> list[RawEvent]:
        """Receive up to `limit` distinct DLQ messages."""
        collected: dict[str, RawEvent] = {}

        while len(collected) < limit:
            batch = await self.queue.receive(
                self.dlq_url,
                max_messages=min(MAX_RECEIVE_BATCH, limit - len(collected)),
                wait_seconds=1,
                visibility_timeout=visibility_timeout,
            )
            new = [event for event in batch if event.message_id not in collected]
            if not new:
                break
            for event in new:
                collected[event.message_id] = event

        return list(collected.values())

    async def stats(self) -> dict[str, Any]:
        """Approximate visible message counts for both queues."""
        return {
            "queue_url": self.queue_url,
            "queue_depth": await self.queue.approximate_depth(self.queue_url),
            "dlq_url": self.dlq_url,
            "dlq_depth": await self.queue.approximate_depth(self.dlq_url),
        }

    async def inspect(self, limit: int) -> list[dict[str, Any]]:
        """
        Peek at DLQ messages without deleting them.

        A zero visibility timeout leaves every message immediately visible to
        the reprocessor again.
        """
        events = await self._collect(limit, visibility_timeout=0)
        return [
            {
                "message_id": event.message_id,
                "receive_count": event.receive_count,
                "body": event.body,
                **check_payload(event.body),
            }
            for event in events
        ]

    async def replay(self, limit: int, only_valid: bool = False, dry_run: bool = False) -> dict[str, Any]:
        """
        Re-inject DLQ messages into the primary queue.

        A DLQ message is deleted only after its copy was sent to the primary
        queue. If that delete fails the message may be replayed again later;
        the consumer tolerates duplicates.
        """
        events = await self._collect(limit, visibility_timeout=0 if dry_run else self.visibility_timeout)
        summary: dict[str, Any] = {"received": len(events), "replayed": [], "skipped": [], "failed": []}

        for event in events:
            verdict = check_payload(event.body)
            if only_valid and not verdict["valid"]:
                summary["skipped"].append({"message_id": event.message_id, **verdict})
                continue

            if dry_run:
                summary["replayed"].append({"message_id": event.message_id, "dry_run": True})
                continue

            try:
                new_message_id = await self.queue.send(self.queue_url, event.body)
            except QueueError as e:
                logger.error("Replay send failed: message_id=%s, error=%s", event.message_id, str(e))
                summary["failed"].append({"message_id": event.message_id, "error": str(e)})
                continue

            entry = {"message_id": event.message_id, "new_message_id": new_message_id, "dlq_deleted": True}
            try:
                await self.queue.delete(self.dlq_url, event.receipt_handle)
            except (DeleteError, QueueError) as e:
                logger.warning(
                    "Replayed message not removed from DLQ: message_id=%s, error=%s",
                    event.message_id,
                    str(e),
                )
                entry["dlq_deleted"] = False
            summary["replayed"].append(entry)

        return summary

    async def send_payload(self, body: str, force: bool = False) -> dict[str, Any]:
        """Send a payload to the primary queue, refusing invalid ones unless forced."""
        verdict = check_payload(body)
        if not verdict["valid"] and not force:
            return {"sent": False, **verdict}

        message_id = await self.queue.send(self.queue_url, body)
        return {"sent": True, "message_id": message_id, **verdict}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m apps.dlq", description="Manage the appointment event DLQ")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("stats", help="Show approximate queue depths")

    inspect_parser = subparsers.add_parser("inspect", help="Peek at DLQ messages")
    inspect_parser.add_argument("--max", type=int, default=10, dest="limit", help="Maximum messages to show")

    replay_parser = subparsers.add_parser("replay", help="Re-inject DLQ messages into the primary queue")
    replay_parser.add_argument("--max", type=int, default=10, dest="limit", help="Maximum messages to replay")
    replay_parser.add_argument("--only-valid", action="store_true", help="Skip messages that fail validation")
    replay_parser.add_argument("--dry-run", action="store_true", help="Report what would be replayed")

    send_parser = subparsers.add_parser("send", help="Send a JSON payload file to the primary queue")
    send_parser.add_argument("file", type=Path, help="Path to a JSON payload")
    send_parser.add_argument("--force", action="store_true", help="Send even if validation fails")

    return parser


async def run_command(args: argparse.Namespace, manager: DLQManager) -> int:
    """Execute a parsed command, print its JSON result and return the exit code."""
    if args.command == "stats":
        result: Any = await manager.stats()
    elif args.command == "inspect":
        result = await manager.inspect(args.limit)
    elif args.command == "replay":
        result = await manager.replay(args.limit, only_valid=args.only_valid, dry_run=args.dry_run)
    elif args.command == "send":
        result = await manager.send_payload(args.file.read_text(encoding="utf-8"), force=args.force)
    else:
        raise ValueError(f"Unknown command: {args.command}")

    print(orjson.dumps(result, option=orjson.OPT_INDENT_2).decode("utf-8"))

    if args.command == "send" and not result["sent"]:
        return 1
    if args.command == "replay" and result["failed"]:
        return 1
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        settings = get_settings()
    except ValidationError as e:
        setup_logging(format_type="text", output="stderr")
        logger.error("Invalid configuration: %s", describe_config_error(e))
        return 1

    setup_logging(level=settings.LOG_LEVEL, format_type="text", output="stderr")

    queue = SqsQueueClient.from_settings(settings)
    try:
        return asyncio.run(run_command(args, DLQManager(queue, settings)))
    except QueueError as e:
        logger.error("Queue operation failed: %s", str(e))
        return 1
    except OSError as e:
        logger.error("Could not read payload: %s", str(e))
        return 1
    finally:
        queue.close()


if __name__ == "__main__":
    sys.exit(main())
