"""
SQS queue client with bounded retries for transient provider failures.

One SqsQueueClient is created at start-up and shared by the poll loop, the DLQ
reprocessor and the operator CLI. boto3 calls are blocking, so each call runs
in a worker thread; the underlying boto3 client is safe to share between them.
"""

import asyncio
import logging
from typing import Any, Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, HTTPClientError
from botocore.exceptions import ConnectionError as BotoConnectionError
from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_exponential

from utils.config import Settings
from utils.schemas import RawEvent

logger = logging.getLogger(__name__)

# Provider limit for a single ReceiveMessage call
MAX_RECEIVE_BATCH = 10

TRANSIENT_ERROR_CODES = frozenset(
    {
        "InternalError",
        "InternalFailure",
        "RequestThrottled",
        "RequestTimeout",
        "RequestTimeoutException",
        "ServiceUnavailable",
        "SlowDown",
        "Throttling",
        "ThrottlingException",
    }
)

STALE_RECEIPT_ERROR_CODES = frozenset(
    {
        "ReceiptHandleIsInvalid",
        "InvalidParameterValue",
        "MessageNotInflight",
        "AWS.SimpleQueueService.MessageNotInflight",
        "AWS.SimpleQueueService.ReceiptHandleIsInvalid",
    }
)


class QueueError(Exception):
    """Queue provider call failed."""

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        queue_url: Optional[str],
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.queue_url = queue_url
        self.code = code


class TransientQueueError(QueueError):
    """Transient provider failure that persisted after every retry attempt."""


class DeleteError(QueueError):
    """Receipt handle is stale, expired or already used."""

    def __init__(self, message: str, *, queue_url: str, receipt_handle: str, code: Optional[str] = None) -> None:
        super().__init__(message, operation="delete_message", queue_url=queue_url, code=code)
        self.receipt_handle = receipt_handle


class QueueClient(Protocol):
    """Operations the consumer needs from a queue provider."""

    async def receive(
        self,
        queue_url: str,
        max_messages: int = MAX_RECEIVE_BATCH,
        wait_seconds: int = 20,
        visibility_timeout: int = 30,
    ) -> list[RawEvent]: ...

    async def delete(self, queue_url: str, receipt_handle: str) -> None: ...

    async def send(self, queue_url: str, body: str, delay_seconds: int = 0) -> str: ...


def error_code(exc: BaseException) -> Optional[str]:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code")
    return None


def is_transient(exc: BaseException) -> bool:
    """Return True for network failures, throttling and provider 5xx responses."""
    if isinstance(exc, (BotoConnectionError, HTTPClientError)):
        return True
    if isinstance(exc, ClientError):
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0
        return error_code(exc) in TRANSIENT_ERROR_CODES or status >= 500
    return False


class SqsQueueClient:
    """Async adapter over a boto3 SQS client."""

    def __init__(
        self,
        client: Any,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
    ) -> None:
        """Initialize the adapter.

        Args:
            client: boto3 SQS client
            max_attempts: Attempts per call for transient failures (>= 1)
            backoff_seconds: Base of the exponential backoff between attempts
        """
        self.client = client
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "SqsQueueClient":
        """Build the adapter and its boto3 client from application settings."""
        client = boto3.client(
            "sqs",
            region_name=settings.REGION,
            endpoint_url=settings.SQS_ENDPOINT_URL,
            # Retries are handled by the adapter
            config=Config(retries={"total_max_attempts": 1}),
        )
        logger.info(
            "SQS client created: region=%s, endpoint=%s",
            settings.REGION,
            settings.SQS_ENDPOINT_URL or "default",
        )
        return cls(
            client,
            max_attempts=settings.QUEUE_MAX_ATTEMPTS,
            backoff_seconds=settings.QUEUE_RETRY_BACKOFF_SECONDS,
        )

    async def _call(self, operation: str, **params: Any) -> dict[str, Any]:
        """Invoke a boto3 operation in a worker thread, retrying transient failures.

        Raises:
            TransientQueueError: If every attempt failed transiently
            QueueError: For any other provider error
        """
        queue_url = params.get("QueueUrl")
        retrying = AsyncRetrying(
            retry=retry_if_exception(is_transient),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=self.backoff_seconds * 8),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

        try:
            return await retrying(asyncio.to_thread, getattr(self.client, operation), **params)
        except (BotoCoreError, ClientError) as e:
            code = error_code(e)
            if is_transient(e):
                raise TransientQueueError(
                    f"{operation} failed after {self.max_attempts} attempt(s): {e}",
                    operation=operation,
                    queue_url=queue_url,
                    code=code,
                ) from e
            raise QueueError(
                f"{operation} failed: {e}",
                operation=operation,
                queue_url=queue_url,
                code=code,
            ) from e

    async def receive(
        self,
        queue_url: str,
        max_messages: int = MAX_RECEIVE_BATCH,
        wait_seconds: int = 20,
        visibility_timeout: int = 30,
    ) -> list[RawEvent]:
        """Long-poll a queue for messages.

        Args:
            queue_url: Queue to receive from
            max_messages: Upper bound on returned messages, clamped to 1..10
            wait_seconds: Long-poll duration
            visibility_timeout: Seconds the received messages stay hidden

        Returns:
            Received events, empty if none arrived within wait_seconds
        """
        max_messages = max(1, min(max_messages, MAX_RECEIVE_BATCH))

        response = await self._call(
            "receive_message",
            QueueUrl=queue_url,
            MaxNumberOfMessages=max_messages,
            WaitTimeSeconds=wait_seconds,
            VisibilityTimeout=visibility_timeout,
            MessageSystemAttributeNames=["ApproximateReceiveCount"],
        )

        events = []
        for message in response.get("Messages", [])[:max_messages]:
            attributes = message.get("Attributes") or {}
            events.append(
                RawEvent(
                    message_id=message["MessageId"],
                    receipt_handle=message["ReceiptHandle"],
                    body=message.get("Body", ""),
                    queue_url=queue_url,
                    receive_count=int(attributes.get("ApproximateReceiveCount", 1)),
                )
            )
        return events

    async def delete(self, queue_url: str, receipt_handle: str) -> None:
        """Delete one delivery of a message.

        Raises:
            DeleteError: If the receipt handle is stale or invalid
            TransientQueueError: If the provider kept failing transiently
        """
        try:
            await self._call("delete_message", QueueUrl=queue_url, ReceiptHandle=receipt_handle)
        except TransientQueueError:
            raise
        except QueueError as e:
            if e.code in STALE_RECEIPT_ERROR_CODES:
                raise DeleteError(
                    f"Receipt handle rejected by {queue_url}: {e.code}",
                    queue_url=queue_url,
                    receipt_handle=receipt_handle,
                    code=e.code,
                ) from e
            raise

    async def send(self, queue_url: str, body: str, delay_seconds: int = 0) -> str:
        """Send a message body to a queue.

        Returns:
            Provider-assigned message ID
        """
        response = await self._call(
            "send_message",
            QueueUrl=queue_url,
            MessageBody=body,
            DelaySeconds=delay_seconds,
        )
        return response["MessageId"]

    async def approximate_depth(self, queue_url: str) -> int:
        """Approximate number of visible messages in a queue."""
        response = await self._call(
            "get_queue_attributes",
            QueueUrl=queue_url,
            AttributeNames=["ApproximateNumberOfMessages"],
        )
        return int(response.get("Attributes", {}).get("ApproximateNumberOfMessages", 0))

    def close(self) -> None:
        """Release the underlying HTTP connections."""
        close = getattr(self.client, "close", None)
        if close is not None:
            close()
