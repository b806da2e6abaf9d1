"""Test doubles and builders shared across the test suite."""

import itertools
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Union

import orjson

from utils.queue import MAX_RECEIVE_BATCH
from utils.schemas import RawEvent

PRIMARY_URL = "https://sqs.us-east-1.amazonaws.com/123456789012/appointments"
DLQ_URL = f"{PRIMARY_URL}-dlq"

FROZEN_NOW = datetime(2025, 3, 14, 9, 30, tzinfo=timezone.utc)

MISSING = object()


def make_payload(**overrides: Any) -> dict[str, Any]:
    """Valid appointment payload; pass MISSING to drop a field."""
    payload: dict[str, Any] = {
        "petId": "pet-101",
        "petName": "Rex",
        "petType": "dog",
        "ownerId": "owner-7",
        "ownerName": "Maria",
        "ownerSurname": "Lopez",
        "vetId": "vet-3",
        "vetName": "James",
        "vetSurname": "Carter",
        "appointmentDate": "2025-03-14",
        "appointmentTime": "09:30",
        "appointmentType": "checkup",
        "appointmentDescription": "Annual vaccination",
    }
    for key, value in overrides.items():
        if value is MISSING:
            payload.pop(key, None)
        else:
            payload[key] = value
    return payload


def make_body(**overrides: Any) -> str:
    return orjson.dumps(make_payload(**overrides)).decode("utf-8")


def make_event(
    body: Union[str, dict[str, Any], None] = None,
    queue_url: str = PRIMARY_URL,
    message_id: str = "msg-1",
    receipt_handle: str = "rh-1",
    receive_count: int = 1,
) -> RawEvent:
    if body is None:
        body = make_body()
    elif isinstance(body, dict):
        body = orjson.dumps(body).decode("utf-8")
    return RawEvent(
        message_id=message_id,
        receipt_handle=receipt_handle,
        body=body,
        queue_url=queue_url,
        receive_count=receive_count,
    )


class FakeQueue:
    """
    In-memory queue provider recording every call per queue URL.

    Received messages are hidden until they are put back explicitly, except
    with a zero visibility timeout, which leaves them visible.
    """

    def __init__(self) -> None:
        self.messages: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.receive_calls: list[dict[str, Any]] = []
        self.deletes: list[tuple[str, str]] = []
        self.sent: list[tuple[str, str]] = []
        self.receive_errors: dict[str, list[Exception]] = defaultdict(list)
        self.delete_errors: dict[str, Exception] = {}
        self.send_errors: list[Exception] = []
        self.on_receive: Optional[Callable[[str], Awaitable[None]]] = None
        self._ids = itertools.count(1)

    def put(
        self,
        queue_url: str,
        body: Union[str, dict[str, Any]],
        message_id: Optional[str] = None,
        receive_count: int = 1,
    ) -> str:
        if isinstance(body, dict):
            body = orjson.dumps(body).decode("utf-8")
        message_id = message_id or f"msg-{next(self._ids)}"
        self.messages[queue_url].append(
            {"message_id": message_id, "body": body, "receive_count": receive_count}
        )
        return message_id

    async def receive(
        self,
        queue_url: str,
        max_messages: int = MAX_RECEIVE_BATCH,
        wait_seconds: int = 20,
        visibility_timeout: int = 30,
    ) -> list[RawEvent]:
        self.receive_calls.append(
            {
                "queue_url": queue_url,
                "max_messages": max_messages,
                "wait_seconds": wait_seconds,
                "visibility_timeout": visibility_timeout,
            }
        )
        if self.on_receive is not None:
            await self.on_receive(queue_url)
        if self.receive_errors[queue_url]:
            raise self.receive_errors[queue_url].pop(0)

        pending = self.messages[queue_url]
        batch = pending[:max_messages]
        if visibility_timeout > 0:
            del pending[: len(batch)]

        return [
            RawEvent(
                message_id=message["message_id"],
                receipt_handle=f"{message['message_id']}-rh-{next(self._ids)}",
                body=message["body"],
                queue_url=queue_url,
                receive_count=message["receive_count"],
            )
            for message in batch
        ]

    async def delete(self, queue_url: str, receipt_handle: str) -> None:
        self.deletes.append((queue_url, receipt_handle))
        error = self.delete_errors.get(receipt_handle)
        if error is not None:
            raise error
        for message_list in self.messages.values():
            message_list[:] = [
                m for m in message_list if not receipt_handle.startswith(f"{m['message_id']}-rh-")
            ]

    async def send(self, queue_url: str, body: str, delay_seconds: int = 0) -> str:
        if self.send_errors:
            raise self.send_errors.pop(0)
        self.sent.append((queue_url, body))
        return self.put(queue_url, body)

    async def approximate_depth(self, queue_url: str) -> int:
        return len(self.messages[queue_url])

    def deletes_for(self, queue_url: str) -> list[str]:
        return [handle for url, handle in self.deletes if url == queue_url]

    def receives_for(self, queue_url: str) -> list[dict[str, Any]]:
        return [call for call in self.receive_calls if call["queue_url"] == queue_url]
