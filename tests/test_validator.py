"""Tests for the message validator."""

import orjson
import pytest
from hypothesis import given, strategies as st

from tests.helpers import MISSING, make_body, make_payload
from utils.schemas import REQUIRED_FIELDS, AppointmentEvent
from utils.validator import (
    MalformedPayloadError,
    MessageValidationError,
    MissingFieldError,
    find_missing_fields,
    parse_body,
    validate,
)

non_empty_text = st.text(min_size=1, max_size=40)
blank_values = st.sampled_from([MISSING, None, ""])


@given(field=st.sampled_from(REQUIRED_FIELDS), blank=blank_values)
def test_any_missing_field_is_rejected(field, blank):
    payload = make_payload(**{field: blank})

    with pytest.raises(MissingFieldError) as exc_info:
        validate(payload)

    assert exc_info.value.fields == (field,)
    assert exc_info.value.field_name == field
    assert exc_info.value.kind == "MissingField"
    assert exc_info.value.retryable is False


@given(values=st.fixed_dictionaries({name: non_empty_text for name in REQUIRED_FIELDS}))
def test_complete_payload_validates(values):
    event = validate(values)

    assert isinstance(event, AppointmentEvent)
    for name in REQUIRED_FIELDS:
        assert getattr(event, name) == values[name]


def test_serialized_body_validates():
    event = validate(make_body())

    assert event.petId == "pet-101"
    assert event.vetSurname == "Carter"


def test_bytes_body_validates():
    event = validate(make_body().encode("utf-8"))

    assert event.ownerName == "Maria"


def test_all_missing_fields_are_listed_in_contract_order():
    body = make_body(vetName=MISSING, petId="", appointmentTime=None)

    with pytest.raises(MissingFieldError) as exc_info:
        validate(body)

    assert exc_info.value.fields == ("petId", "vetName", "appointmentTime")
    assert "petId, vetName, appointmentTime" in str(exc_info.value)


def test_empty_object_is_missing_every_field():
    with pytest.raises(MissingFieldError) as exc_info:
        validate("{}")

    assert exc_info.value.fields == REQUIRED_FIELDS


@pytest.mark.parametrize("value", [" ", "   ", "\t"])
def test_whitespace_only_field_is_present(value):
    payload = make_payload(vetName=value)

    assert find_missing_fields(payload) == []
    assert validate(payload).vetName == value


@pytest.mark.parametrize(
    "body",
    [
        "not json",
        '{"petId": "p1",',
        "",
        "   ",
        b"",
        "[1, 2, 3]",
        '"just a string"',
        "42",
        "null",
    ],
)
def test_malformed_body_is_rejected_before_field_checks(body):
    with pytest.raises(MalformedPayloadError) as exc_info:
        validate(body)

    assert exc_info.value.kind == "MalformedPayload"
    assert not isinstance(exc_info.value, MissingFieldError)


@pytest.mark.parametrize("bad_value", [{"nested": "object"}, ["a", "b"]])
def test_wrong_field_shape_is_malformed(bad_value):
    with pytest.raises(MalformedPayloadError) as exc_info:
        validate(make_payload(petName=bad_value))

    assert "petName" in str(exc_info.value)


def test_numeric_values_are_coerced_to_strings():
    event = validate(make_payload(petId=101, ownerId=7.5))

    assert event.petId == "101"
    assert event.ownerId == "7.5"


def test_unknown_fields_are_ignored():
    event = validate(make_payload(clinicName="Downtown", priority=3))

    assert not hasattr(event, "clinicName")


def test_validation_errors_share_a_base_class():
    assert issubclass(MalformedPayloadError, MessageValidationError)
    assert issubclass(MissingFieldError, MessageValidationError)


def test_parse_body_accepts_mappings_and_bytes():
    payload = make_payload()

    assert parse_body(payload) == payload
    assert parse_body(orjson.dumps(payload)) == payload


def test_find_missing_fields_on_complete_payload():
    assert find_missing_fields(make_payload()) == []


def test_validate_has_no_side_effects_on_input():
    payload = make_payload(petId=42)
    before = dict(payload)

    validate(payload)

    assert payload == before
