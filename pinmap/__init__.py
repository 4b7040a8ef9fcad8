"""
Pinmap - persistence core for a collaborative map of points of interest.

Pins (geolocated markers with a category) accumulate timestamped visits from
field workers. This package provides:

- Validated domain models for pins, visits and categories
- Interchangeable SQLite and PostgreSQL storage backends
- Optimistic concurrency for pin edits, keyed on `updated_at`
- A persistence facade with schema bootstrapping and a short-TTL list cache
- Per-day activity statistics and an operator CLI
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from pinmap.backends import PinBackend, available_backends, create_backend, select_backend
from pinmap.config import Settings, get_settings
from pinmap.domain import (
    Category,
    CategoryUpsert,
    ConfigurationError,
    NotFoundError,
    Pin,
    PinCreate,
    PinMapError,
    PinStats,
    PinUpdate,
    PinWithVisits,
    UpdateConflict,
    Visit,
    VisitCreate,
    VisitUpdate,
)
from pinmap.store import PinStore, get_store, reset_store
from pinmap.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Backends
    "PinBackend",
    "available_backends",
    "create_backend",
    "select_backend",
    # Facade
    "PinStore",
    "get_store",
    "reset_store",
    # Models
    "Category",
    "CategoryUpsert",
    "Pin",
    "PinCreate",
    "PinStats",
    "PinUpdate",
    "PinWithVisits",
    "UpdateConflict",
    "Visit",
    "VisitCreate",
    "VisitUpdate",
    # Errors
    "ConfigurationError",
    "NotFoundError",
    "PinMapError",
    # Logging
    "configure_logging",
    "get_logger",
]
