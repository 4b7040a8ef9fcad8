"""
Error types raised by the pinmap persistence layer.

Not-found is a distinct, recoverable condition callers map to a "missing
resource" response. Update conflicts are not errors: they come back as
`UpdateConflict` values. Driver-level failures are never wrapped.
"""

from __future__ import annotations


class PinMapError(Exception):
    """Base class for pinmap errors."""


class NotFoundError(PinMapError):
    """A pin or visit referenced by id does not exist."""

    def __init__(self, entity: str, entity_id: int) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ConfigurationError(PinMapError):
    """The configured storage backend cannot be built."""


__all__ = ["ConfigurationError", "NotFoundError", "PinMapError"]
