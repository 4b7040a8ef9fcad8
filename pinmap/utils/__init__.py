"""
Utilities package for pinmap.

Exports shared helpers for logging and timestamp handling. Keep this package
lightweight and free of domain-specific logic.
"""

from pinmap.utils.logging import configure_logging, get_logger
from pinmap.utils.timestamps import format_timestamp, next_update_time, parse_timestamp, utc_now

__all__ = [
    "configure_logging",
    "format_timestamp",
    "get_logger",
    "next_update_time",
    "parse_timestamp",
    "utc_now",
]
