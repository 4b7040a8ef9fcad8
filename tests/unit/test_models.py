from __future__ import annotations

import math

import pytest
from pydantic import ValidationError

from pinmap.domain.models import (
    Pin,
    PinCreate,
    PinUpdate,
    UpdateConflict,
    VisitCreate,
    VisitUpdate,
)


def test_pin_create_accepts_camel_case_payload() -> None:
    data = PinCreate.model_validate(
        {"title": "  Bench ", "lat": 52.1, "lng": 21.0, "category": "rest", "imageUrl": "u"}
    )

    assert data.title == "Bench"
    assert data.image_url == "u"


@pytest.mark.parametrize(
    "overrides",
    [
        {"title": ""},
        {"title": "   "},
        {"category": ""},
        {"lat": 91},
        {"lng": -181},
        {"lat": math.nan},
        {"lng": math.inf},
    ],
)
def test_pin_create_rejects_invalid_fields(overrides) -> None:
    payload = {"title": "Bench", "lat": 52.1, "lng": 21.0, "category": "rest"}
    payload.update(overrides)

    with pytest.raises(ValidationError):
        PinCreate(**payload)


def test_pin_create_requires_coordinates() -> None:
    with pytest.raises(ValidationError):
        PinCreate(title="Bench", category="rest")


def test_visit_create_requires_name() -> None:
    with pytest.raises(ValidationError):
        VisitCreate(name="")


def test_visit_update_reports_only_provided_fields() -> None:
    assert VisitUpdate().changes() == {}
    assert VisitUpdate(note="x").changes() == {"note": "x"}
    assert VisitUpdate.model_validate({"imageUrl": None}).changes() == {"image_url": None}


def test_visit_update_rejects_null_name() -> None:
    with pytest.raises(ValidationError):
        VisitUpdate(name=None)


def test_pin_update_carries_expected_updated_at() -> None:
    data = PinUpdate.model_validate(
        {"title": "t", "category": "c", "expectedUpdatedAt": "2025-03-01T09:15:02.123Z"}
    )
    assert data.expected_updated_at == "2025-03-01T09:15:02.123Z"


def test_pin_normalizes_timestamps_and_dumps_camel_case() -> None:
    pin = Pin(
        id=1,
        title="Bench",
        lat=1.0,
        lng=2.0,
        category="rest",
        created_at="2025-03-01 09:15:02",
        updated_at="2025-03-01T11:15:02.500+02:00",
    )

    dumped = pin.model_dump(by_alias=True)

    assert dumped["createdAt"] == "2025-03-01T09:15:02.000Z"
    assert dumped["updatedAt"] == "2025-03-01T09:15:02.500Z"
    assert dumped["visitsCount"] == 0
    assert dumped["version"] == 1


def test_records_are_immutable() -> None:
    conflict = UpdateConflict(server_updated_at="2025-03-01T09:15:02.123Z")
    with pytest.raises(ValidationError):
        conflict.server_updated_at = "x"
    assert conflict.model_dump(by_alias=True) == {
        "conflict": True,
        "serverUpdatedAt": "2025-03-01T09:15:02.123Z",
    }
