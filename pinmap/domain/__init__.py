"""
Domain package for pinmap.

Exports the records, input payloads and error types shared by the backends and
the persistence facade. Keep this package focused on data definitions and
validation concerns.
"""

from pinmap.domain.errors import ConfigurationError, NotFoundError, PinMapError
from pinmap.domain.models import (
    VISIT_PAGE_SIZE,
    Category,
    CategoryUpsert,
    DailyPinStats,
    Pin,
    PinCreate,
    PinStats,
    PinUpdate,
    PinWithVisits,
    UpdateConflict,
    Visit,
    VisitCreate,
    VisitUpdate,
)

__all__ = [
    "VISIT_PAGE_SIZE",
    "Category",
    "CategoryUpsert",
    "ConfigurationError",
    "DailyPinStats",
    "NotFoundError",
    "Pin",
    "PinCreate",
    "PinMapError",
    "PinStats",
    "PinUpdate",
    "PinWithVisits",
    "UpdateConflict",
    "Visit",
    "VisitCreate",
    "VisitUpdate",
]
