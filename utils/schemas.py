"""
Pydantic Schemas - Data Validation Models

Defines the schemas that flow through the consumer pipeline:
- RawEvent: one delivery of a queue message
- AppointmentEvent: validated appointment payload (wire contract)
- ReportRecord: normalized report handed to downstream collaborators

Usage:
    from utils.schemas import AppointmentEvent, ReportRecord

    event = AppointmentEvent(**payload)
    record.model_dump(mode="json")
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

REQUIRED_FIELDS: tuple[str, ...] = (
    "petId",
    "petName",
    "petType",
    "ownerId",
    "ownerName",
    "ownerSurname",
    "vetId",
    "vetName",
    "vetSurname",
    "appointmentDate",
    "appointmentTime",
    "appointmentType",
    "appointmentDescription",
)


class RawEvent(BaseModel):
    """A single delivery of a queue message.

    The receipt handle is only valid for this delivery; a redelivery of the
    same message carries a new one.
    """

    model_config = ConfigDict(frozen=True)

    message_id: str = Field(..., description="Provider-assigned message ID")
    receipt_handle: str = Field(..., description="Token required to delete this delivery")
    body: str = Field(default="", description="Serialized message body")
    queue_url: str = Field(..., description="Queue the message was received from")
    receive_count: int = Field(default=1, ge=1, description="Approximate receive count")


class AppointmentEvent(BaseModel):
    """Appointment event payload with every required field present.

    Field names mirror the JSON wire contract. Numeric values are coerced to
    strings; unknown keys are ignored.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=True)

    petId: str = Field(..., min_length=1)
    petName: str = Field(..., min_length=1)
    petType: str = Field(..., min_length=1)
    ownerId: str = Field(..., min_length=1)
    ownerName: str = Field(..., min_length=1)
    ownerSurname: str = Field(..., min_length=1)
    vetId: str = Field(..., min_length=1)
    vetName: str = Field(..., min_length=1)
    vetSurname: str = Field(..., min_length=1)
    appointmentDate: str = Field(..., min_length=1)
    appointmentTime: str = Field(..., min_length=1)
    appointmentType: str = Field(..., min_length=1)
    appointmentDescription: str = Field(..., min_length=1)


class PetInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: str


class PersonInfo(BaseModel):
    """Owner or vet reference with a display name."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str


class AppointmentInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: str
    time: str
    type: str
    description: str


class ReportRecord(BaseModel):
    """Normalized report derived from one appointment event.

    Immutable. Downstream consumers deduplicate by ``id``.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Pet ID")
    petInfo: PetInfo
    ownerInfo: PersonInfo
    vetInfo: PersonInfo
    appointment: AppointmentInfo
    processedAt: datetime
    environment: str
