"""
Storage backends for pinmap.

Re-exports the backend interfaces, the concrete SQLite and PostgreSQL
backends and the selection helpers so callers can import from
`pinmap.backends` directly.
"""

from pinmap.backends.abstract import AbstractPinBackend, PinBackend
from pinmap.backends.postgres import PostgresBackend
from pinmap.backends.registry import available_backends, create_backend, select_backend
from pinmap.backends.sqlite import SqliteBackend

__all__ = [
    # Interfaces
    "AbstractPinBackend",
    "PinBackend",
    # Concrete backends
    "PostgresBackend",
    "SqliteBackend",
    # Selection
    "available_backends",
    "create_backend",
    "select_backend",
]
