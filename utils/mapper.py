"""
Report Mapper

Transforms a validated appointment event into a ReportRecord.

The mapper is a pure function of its input apart from the processedAt
timestamp, so processing a redelivered message twice yields equal records.
"""

from datetime import datetime, timezone
from typing import Callable

from utils.schemas import AppointmentEvent, AppointmentInfo, PersonInfo, PetInfo, ReportRecord

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def display_name(given: str, surname: str) -> str:
    """Join given name and surname with a single space."""
    return f"{given} {surname}"


class ReportMapper:
    """Maps appointment events to report records for one environment."""

    def __init__(self, environment: str, clock: Clock = utc_now) -> None:
        """
        Args:
            environment: Environment tag stamped on every record
            clock: Source of processedAt timestamps
        """
        self.environment = environment
        self._clock = clock

    def map(self, event: AppointmentEvent) -> ReportRecord:
        """
        Build the report record for a validated event.

        Args:
            event: Validated appointment event

        Returns:
            ReportRecord with id copied from petId
        """
        return ReportRecord(
            id=event.petId,
            petInfo=PetInfo(name=event.petName, type=event.petType),
            ownerInfo=PersonInfo(
                id=event.ownerId,
                name=display_name(event.ownerName, event.ownerSurname),
            ),
            vetInfo=PersonInfo(
                id=event.vetId,
                name=display_name(event.vetName, event.vetSurname),
            ),
            appointment=AppointmentInfo(
                date=event.appointmentDate,
                time=event.appointmentTime,
                type=event.appointmentType,
                description=event.appointmentDescription,
            ),
            processedAt=self._clock(),
            environment=self.environment,
        )
