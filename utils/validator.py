"""
Message Validator

Checks a queue message body against the appointment event contract.

Usage:
    from utils.validator import validate, MessageValidationError

    try:
        event = validate(raw_event.body)
    except MessageValidationError as e:
        logger.warning("Rejected message: %s (kind=%s)", e, e.kind)

Deserialization runs first; a body that cannot be parsed into a JSON object is
a MalformedPayload error and no field checks are made. A parsed object missing
any required field is a MissingField error listing every missing field.
"""

from typing import Any, Mapping, Union

import orjson
from pydantic import ValidationError

from utils.schemas import REQUIRED_FIELDS, AppointmentEvent

RawBody = Union[str, bytes, bytearray, Mapping[str, Any]]


class MessageValidationError(Exception):
    """Base class for payloads rejected by the validator.

    Validation errors are never retryable: the same payload fails the same way
    until its producer changes it.
    """

    kind = "ValidationError"
    retryable = False


class MalformedPayloadError(MessageValidationError):
    """Body is not a JSON object, or a field has an unusable shape."""

    kind = "MalformedPayload"


class MissingFieldError(MessageValidationError):
    """Body is a JSON object but one or more required fields are absent or empty."""

    kind = "MissingField"

    def __init__(self, fields: list[str]) -> None:
        self.fields = tuple(fields)
        super().__init__(f"Missing required field(s): {', '.join(self.fields)}")

    @property
    def field_name(self) -> str:
        """First missing field, in contract order."""
        return self.fields[0]


def parse_body(body: RawBody) -> dict[str, Any]:
    """
    Deserialize a message body into a JSON object.

    Args:
        body: Serialized body, or an already deserialized mapping

    Returns:
        Decoded JSON object

    Raises:
        MalformedPayloadError: If the body is empty, not JSON, or not an object
    """
    if isinstance(body, Mapping):
        return dict(body)

    if body is None or (isinstance(body, (str, bytes, bytearray)) and not body.strip()):
        raise MalformedPayloadError("Message body is empty")

    try:
        payload = orjson.loads(body)
    except orjson.JSONDecodeError as e:
        raise MalformedPayloadError(f"Message body is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise MalformedPayloadError(
            f"Message body must be a JSON object, got {type(payload).__name__}"
        )

    return payload


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def find_missing_fields(payload: Mapping[str, Any]) -> list[str]:
    """Return required fields that are absent, null or the empty string, in contract order."""
    return [name for name in REQUIRED_FIELDS if _is_blank(payload.get(name))]


def validate(body: RawBody) -> AppointmentEvent:
    """
    Validate a message body against the appointment event contract.

    Args:
        body: Serialized message body or decoded mapping

    Returns:
        Validated AppointmentEvent

    Raises:
        MalformedPayloadError: If the body cannot be deserialized or a field
            has the wrong shape
        MissingFieldError: If any required field is absent, null or empty
    """
    payload = parse_body(body)

    missing = find_missing_fields(payload)
    if missing:
        raise MissingFieldError(missing)

    try:
        return AppointmentEvent.model_validate(payload)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise MalformedPayloadError(f"Invalid field value(s): {details}") from e
