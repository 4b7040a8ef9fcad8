"""
Timestamp helpers shared by both storage backends.

Every timestamp leaving the persistence layer uses one representation:
ISO-8601 in UTC, millisecond precision, `Z` suffix (`2025-03-01T09:15:02.123Z`).
Backends store either that string (SQLite) or a TIMESTAMPTZ truncated to the
millisecond (PostgreSQL), so a value read back always formats to the exact
string the caller saw earlier.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

_SECONDS_FORMAT = "%Y-%m-%dT%H:%M:%S"
ONE_MILLISECOND = timedelta(milliseconds=1)


def truncate_to_millis(value: datetime) -> datetime:
    """Drop sub-millisecond precision."""
    return value.replace(microsecond=value.microsecond - value.microsecond % 1000)


def utc_now() -> datetime:
    """Current UTC time at millisecond precision."""
    return truncate_to_millis(datetime.now(UTC))


def parse_timestamp(value: str | datetime) -> datetime:
    """
    Parse a stored timestamp into an aware UTC datetime.

    Accepts the canonical format as well as SQLite's legacy
    `YYYY-MM-DD HH:MM:SS` output; naive values are taken to be UTC.
    """
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(value.strip())
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return truncate_to_millis(parsed.astimezone(UTC))


def format_timestamp(value: str | datetime) -> str:
    """Render a timestamp in the canonical string form."""
    moment = parse_timestamp(value)
    return f"{moment.strftime(_SECONDS_FORMAT)}.{moment.microsecond // 1000:03d}Z"


def next_update_time(current: str | datetime) -> datetime:
    """
    Timestamp for the next write to a row last written at `current`.

    Normally the current time; never earlier than `current` plus one
    millisecond, so successive writes always carry distinct, increasing
    timestamps even within the same millisecond or under clock skew.
    """
    return max(utc_now(), parse_timestamp(current) + ONE_MILLISECOND)


__all__ = [
    "format_timestamp",
    "next_update_time",
    "parse_timestamp",
    "truncate_to_millis",
    "utc_now",
]
