"""
Domain models for pinmap.

Persisted records (`Pin`, `Visit`, `Category`) and the result shapes of the
persistence facade are frozen pydantic models. Attribute names are snake_case;
camelCase aliases give the wire shape (`model_dump(by_alias=True)`).

The `*Create` / `*Update` / `CategoryUpsert` models are the validation
boundary: a payload with a missing title, category, coordinate or visit name
fails here with `pydantic.ValidationError`, before any backend call.
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from pinmap.utils.timestamps import format_timestamp

VISIT_PAGE_SIZE = 50


class _Record(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class _Payload(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
        extra="ignore",
    )


def _normalize_timestamp(value: Any) -> Any:
    if isinstance(value, (str, datetime)):
        return format_timestamp(value)
    return value


Timestamp = Annotated[str, BeforeValidator(_normalize_timestamp)]


class Pin(_Record):
    """
    A persisted point of interest.
    """

    id: int = Field(..., description="Backend-assigned identifier.")
    title: str = Field(..., description="Non-empty display title.")
    description: Optional[str] = Field(None, description="Free-form description.")
    lat: float = Field(..., description="Latitude in decimal degrees.")
    lng: float = Field(..., description="Longitude in decimal degrees.")
    category: str = Field(..., description="Category name.")
    image_url: Optional[str] = Field(None, description="Opaque image URL.")
    created_at: Timestamp = Field(..., description="Creation timestamp; immutable.")
    updated_at: Timestamp = Field(..., description="Last write to the pin or any of its visits.")
    version: int = Field(1, description="Incremented by one on every successful write.")
    visits_count: int = Field(0, description="Number of visits owned by the pin.")


class Visit(_Record):
    """
    A timestamped field report attached to exactly one pin.
    """

    id: int
    pin_id: int
    name: str
    note: Optional[str] = None
    image_url: Optional[str] = None
    visited_at: Timestamp


class Category(_Record):
    name: str
    color: str


class PinWithVisits(_Record):
    pin: Pin
    visits: List[Visit] = Field(default_factory=list)


class UpdateConflict(_Record):
    """
    Returned instead of a pin when the caller's `expected_updated_at` is stale.

    Carries the authoritative timestamp so the caller can re-fetch and retry.
    """

    conflict: Literal[True] = True
    server_updated_at: str


class PinCreate(_Payload):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    lat: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    lng: float = Field(..., ge=-180, le=180, allow_inf_nan=False)
    category: str = Field(..., min_length=1)
    image_url: Optional[str] = None


class PinUpdate(_Payload):
    """
    Replacement values for a pin's mutable fields.

    `expected_updated_at` is the `updatedAt` the caller last read; when given
    and no longer current, the update is refused with `UpdateConflict`.
    """

    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    category: str = Field(..., min_length=1)
    image_url: Optional[str] = None
    expected_updated_at: Optional[str] = None


class VisitCreate(_Payload):
    name: str = Field(..., min_length=1)
    note: Optional[str] = None
    image_url: Optional[str] = None


class VisitUpdate(_Payload):
    """
    Partial visit update: only fields explicitly provided are applied.
    """

    name: Optional[str] = Field(None, min_length=1)
    note: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_not_null(cls, value: Optional[str]) -> str:
        if value is None:
            raise ValueError("name cannot be null")
        return value

    def changes(self) -> Dict[str, Any]:
        """Provided fields keyed by column name."""
        return self.model_dump(include=self.model_fields_set)


class CategoryUpsert(_Payload):
    name: str = Field(..., min_length=1)
    color: str = Field(..., min_length=1)


class DailyPinStats(_Record):
    date: str
    count: int = 0
    cumulative: int = 0
    categories: Dict[str, int] = Field(default_factory=dict)
    updates: int = 0


class PinStats(_Record):
    daily: List[DailyPinStats] = Field(default_factory=list)
    total: int = 0
    categories: Dict[str, int] = Field(default_factory=dict)
    first_pin: Optional[str] = None
    last_pin: Optional[str] = None
    total_updates: int = 0


__all__ = [
    "VISIT_PAGE_SIZE",
    "Category",
    "CategoryUpsert",
    "DailyPinStats",
    "Pin",
    "PinCreate",
    "PinStats",
    "PinUpdate",
    "PinWithVisits",
    "UpdateConflict",
    "Visit",
    "VisitCreate",
    "VisitUpdate",
]
