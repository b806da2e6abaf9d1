"""
Event Processor - Validate and map one raw event.

Produces a ProcessingOutcome that decides whether the originating message is
deleted. Processing never raises for bad input: validation and mapping
failures are returned as Failure outcomes.
"""

import logging
from dataclasses import dataclass
from typing import Union

from utils.mapper import ReportMapper
from utils.schemas import RawEvent, ReportRecord
from utils.validator import MessageValidationError, validate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Success:
    record: ReportRecord


@dataclass(frozen=True)
class Failure:
    reason: str
    kind: str
    retryable: bool


ProcessingOutcome = Union[Success, Failure]


class EventProcessor:
    """Runs the validator and mapper over a raw event."""

    def __init__(self, mapper: ReportMapper) -> None:
        self.mapper = mapper

    def process(self, event: RawEvent) -> ProcessingOutcome:
        """
        Validate and map a raw event.

        Args:
            event: Raw event as received from a queue

        Returns:
            Success with the report record, or Failure with reason and kind
        """
        try:
            validated = validate(event.body)
        except MessageValidationError as e:
            return Failure(reason=str(e), kind=e.kind, retryable=e.retryable)

        try:
            record = self.mapper.map(validated)
        except Exception as e:
            logger.error(
                "Mapping failed: message_id=%s, error=%s",
                event.message_id,
                str(e),
                extra={"message_id": event.message_id, "queue_url": event.queue_url},
                exc_info=True,
            )
            return Failure(reason=f"Mapping failed: {e}", kind="MappingError", retryable=True)

        return Success(record=record)
