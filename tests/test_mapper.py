"""Tests for the report mapper."""

from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, strategies as st
from pydantic import ValidationError

from tests.helpers import FROZEN_NOW, make_payload
from utils.mapper import ReportMapper, display_name
from utils.schemas import REQUIRED_FIELDS, AppointmentEvent
from utils.validator import validate

non_blank_text = st.text(min_size=1, max_size=30).filter(lambda s: s.strip())


def test_maps_every_sub_record(mapper):
    record = mapper.map(validate(make_payload()))

    assert record.id == "pet-101"
    assert record.petInfo.name == "Rex"
    assert record.petInfo.type == "dog"
    assert record.ownerInfo.id == "owner-7"
    assert record.ownerInfo.name == "Maria Lopez"
    assert record.vetInfo.id == "vet-3"
    assert record.vetInfo.name == "James Carter"
    assert record.appointment.date == "2025-03-14"
    assert record.appointment.time == "09:30"
    assert record.appointment.type == "checkup"
    assert record.appointment.description == "Annual vaccination"
    assert record.processedAt == FROZEN_NOW
    assert record.environment == "test"


def test_hand_off_shape(mapper):
    data = mapper.map(validate(make_payload())).model_dump(mode="json")

    assert set(data) == {
        "id",
        "petInfo",
        "ownerInfo",
        "vetInfo",
        "appointment",
        "processedAt",
        "environment",
    }
    assert data["petInfo"] == {"name": "Rex", "type": "dog"}
    assert data["ownerInfo"] == {"id": "owner-7", "name": "Maria Lopez"}
    assert data["appointment"] == {
        "date": "2025-03-14",
        "time": "09:30",
        "type": "checkup",
        "description": "Annual vaccination",
    }
    assert data["processedAt"].startswith("2025-03-14T09:30:00")


@given(values=st.fixed_dictionaries({name: non_blank_text for name in REQUIRED_FIELDS}))
def test_mapping_is_deterministic_with_frozen_clock(values):
    mapper = ReportMapper(environment="staging", clock=lambda: FROZEN_NOW)
    event = AppointmentEvent(**values)

    first = mapper.map(event)
    second = mapper.map(event)

    assert first == second
    assert first.id == values["petId"]
    assert first.ownerInfo.name == f"{values['ownerName']} {values['ownerSurname']}"
    assert first.vetInfo.name == f"{values['vetName']} {values['vetSurname']}"


def test_records_differ_at_most_in_processed_at():
    ticks = iter([FROZEN_NOW, FROZEN_NOW + timedelta(seconds=5)])
    mapper = ReportMapper(environment="test", clock=lambda: next(ticks))
    event = validate(make_payload())

    first = mapper.map(event)
    second = mapper.map(event)

    assert first != second
    assert first.model_dump(exclude={"processedAt"}) == second.model_dump(exclude={"processedAt"})


def test_default_clock_is_utc():
    record = ReportMapper(environment="test").map(validate(make_payload()))

    assert record.processedAt.tzinfo is not None
    assert record.processedAt.utcoffset() == timedelta(0)
    assert abs(datetime.now(timezone.utc) - record.processedAt) < timedelta(minutes=1)


def test_environment_is_fixed_at_construction():
    mapper = ReportMapper(environment="production")

    assert mapper.map(validate(make_payload())).environment == "production"


def test_record_is_immutable(mapper):
    record = mapper.map(validate(make_payload()))

    with pytest.raises(ValidationError):
        record.id = "other"


def test_display_name_uses_single_space():
    assert display_name("Ana", "Silva") == "Ana Silva"
