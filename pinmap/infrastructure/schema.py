"""
Durable schema definitions and once-per-process schema initialization.

Both dialects describe the same logical layout:

- `pins` with a denormalized `visits_count`
- `visits` referencing `pins(id)` with ON DELETE CASCADE
- `categories` keyed by name
- indexes backing the category filter, the updated-at ordering of pin lists
  and the per-pin visit page
- insert/delete triggers on `visits` that keep `pins.visits_count` equal to
  the number of child rows, atomically with the row change

Statements are idempotent so they can run on every process start; the column
additions and the backfill upgrade databases created by older versions.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Protocol

from pinmap.utils.logging import get_logger

log = get_logger(__name__)

# Canonical timestamp expression, matching pinmap.utils.timestamps.format_timestamp.
SQLITE_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ', 'now')"

SQLITE_TABLES = (
    f"""
    CREATE TABLE IF NOT EXISTS pins (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        description TEXT,
        lat REAL NOT NULL,
        lng REAL NOT NULL,
        category TEXT NOT NULL,
        image_url TEXT,
        created_at TEXT NOT NULL DEFAULT ({SQLITE_NOW}),
        updated_at TEXT NOT NULL DEFAULT ({SQLITE_NOW}),
        version INTEGER NOT NULL DEFAULT 1,
        visits_count INTEGER NOT NULL DEFAULT 0
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS visits (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        pin_id INTEGER NOT NULL REFERENCES pins(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        note TEXT,
        image_url TEXT,
        visited_at TEXT NOT NULL DEFAULT ({SQLITE_NOW})
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS categories (
        name TEXT PRIMARY KEY,
        color TEXT NOT NULL
    )
    """,
)

# Columns added after the first release; SQLite has no ADD COLUMN IF NOT EXISTS.
SQLITE_ADDED_COLUMNS = {
    "pins": {
        "image_url": "TEXT",
        "visits_count": "INTEGER NOT NULL DEFAULT 0",
    },
    "visits": {
        "image_url": "TEXT",
    },
}

SQLITE_INDEXES_AND_TRIGGERS = (
    "CREATE INDEX IF NOT EXISTS idx_visits_pin_id ON visits(pin_id, visited_at DESC, id DESC)",
    "CREATE INDEX IF NOT EXISTS idx_pins_category ON pins(category)",
    "CREATE INDEX IF NOT EXISTS idx_pins_updated_at ON pins(updated_at DESC, id DESC)",
    """
    CREATE TRIGGER IF NOT EXISTS trg_visits_count_insert
    AFTER INSERT ON visits
    BEGIN
        UPDATE pins SET visits_count = visits_count + 1 WHERE id = NEW.pin_id;
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_visits_count_delete
    AFTER DELETE ON visits
    BEGIN
        UPDATE pins SET visits_count = MAX(visits_count - 1, 0) WHERE id = OLD.pin_id;
    END
    """,
    # Rows written by older versions used datetime('now') without milliseconds.
    """
    UPDATE pins
    SET created_at = strftime('%Y-%m-%dT%H:%M:%fZ', created_at),
        updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', updated_at)
    WHERE created_at NOT LIKE '%Z' OR updated_at NOT LIKE '%Z'
    """,
    """
    UPDATE visits
    SET visited_at = strftime('%Y-%m-%dT%H:%M:%fZ', visited_at)
    WHERE visited_at NOT LIKE '%Z'
    """,
    """
    UPDATE pins
    SET visits_count = (SELECT COUNT(*) FROM visits v WHERE v.pin_id = pins.id)
    WHERE visits_count <> (SELECT COUNT(*) FROM visits v WHERE v.pin_id = pins.id)
    """,
)

# Arbitrary key for pg_advisory_xact_lock; serializes migrations across processes.
POSTGRES_SCHEMA_LOCK_KEY = 0x70696E6D6170

POSTGRES_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS pins (
        id SERIAL PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT,
        lat DOUBLE PRECISION NOT NULL,
        lng DOUBLE PRECISION NOT NULL,
        category TEXT NOT NULL,
        image_url TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT date_trunc('milliseconds', now()),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT date_trunc('milliseconds', now()),
        version INTEGER NOT NULL DEFAULT 1,
        visits_count INTEGER NOT NULL DEFAULT 0
    )
    """,
    "ALTER TABLE pins ADD COLUMN IF NOT EXISTS image_url TEXT",
    "ALTER TABLE pins ADD COLUMN IF NOT EXISTS visits_count INTEGER NOT NULL DEFAULT 0",
    """
    CREATE TABLE IF NOT EXISTS visits (
        id SERIAL PRIMARY KEY,
        pin_id INTEGER NOT NULL REFERENCES pins(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        note TEXT,
        image_url TEXT,
        visited_at TIMESTAMPTZ NOT NULL DEFAULT date_trunc('milliseconds', now())
    )
    """,
    "ALTER TABLE visits ADD COLUMN IF NOT EXISTS image_url TEXT",
    """
    CREATE TABLE IF NOT EXISTS categories (
        name TEXT PRIMARY KEY,
        color TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_visits_pin_id ON visits(pin_id, visited_at DESC, id DESC)",
    "CREATE INDEX IF NOT EXISTS idx_pins_category ON pins(category)",
    "CREATE INDEX IF NOT EXISTS idx_pins_updated_at ON pins(updated_at DESC, id DESC)",
    """
    CREATE OR REPLACE FUNCTION pins_sync_visits_count() RETURNS trigger AS $$
    BEGIN
        IF TG_OP = 'INSERT' THEN
            UPDATE pins SET visits_count = visits_count + 1 WHERE id = NEW.pin_id;
            RETURN NEW;
        ELSIF TG_OP = 'DELETE' THEN
            UPDATE pins SET visits_count = GREATEST(visits_count - 1, 0) WHERE id = OLD.pin_id;
            RETURN OLD;
        END IF;
        RETURN NULL;
    END;
    $$ LANGUAGE plpgsql
    """,
    "DROP TRIGGER IF EXISTS trg_visits_count ON visits",
    """
    CREATE TRIGGER trg_visits_count
    AFTER INSERT OR DELETE ON visits
    FOR EACH ROW EXECUTE FUNCTION pins_sync_visits_count()
    """,
    """
    UPDATE pins p
    SET visits_count = c.cnt
    FROM (
        SELECT p2.id, COUNT(v.id)::int AS cnt
        FROM pins p2
        LEFT JOIN visits v ON v.pin_id = p2.id
        GROUP BY p2.id
    ) c
    WHERE c.id = p.id AND p.visits_count <> c.cnt
    """,
)


class SchemaTarget(Protocol):
    """Anything that can create its durable schema (i.e. a backend)."""

    name: str

    async def create_schema(self) -> None:
        ...


class SchemaManager:
    """
    Runs schema creation for one backend exactly once per process.

    The first caller starts initialization as a task; callers arriving while it
    runs await that same task, and once it succeeds every later call returns
    immediately. A failure is not remembered: the error reaches every waiter
    and the next call starts over, even if no caller was left waiting for it.

    The task is shielded from waiter cancellation, so one cancelled request
    cannot abort initialization that other requests are waiting on.
    """

    def __init__(self, target: SchemaTarget) -> None:
        self._target = target
        self._ready = False
        self._pending: Optional[asyncio.Future[None]] = None

    @property
    def ready(self) -> bool:
        return self._ready

    async def ensure_schema(self) -> None:
        if self._ready:
            return
        if self._pending is None:
            task = asyncio.ensure_future(self._initialize())
            task.add_done_callback(self._forget_failed)
            self._pending = task
        await asyncio.shield(self._pending)

    def _forget_failed(self, task: asyncio.Future[None]) -> None:
        # Also runs when no waiter is left; retrieving the error marks it handled.
        if task.cancelled() or task.exception() is not None:
            if self._pending is task:
                self._pending = None

    async def _initialize(self) -> None:
        log.info("Ensuring schema", extra={"backend": self._target.name})
        try:
            await self._target.create_schema()
        except Exception:
            log.exception("Schema initialization failed", extra={"backend": self._target.name})
            raise
        self._ready = True
        log.info("Schema ready", extra={"backend": self._target.name})

    def reset(self) -> None:
        """Forget completed initialization (used after the backend is replaced)."""
        self._ready = False
        self._pending = None


__all__ = [
    "POSTGRES_SCHEMA",
    "POSTGRES_SCHEMA_LOCK_KEY",
    "SQLITE_ADDED_COLUMNS",
    "SQLITE_INDEXES_AND_TRIGGERS",
    "SQLITE_TABLES",
    "SchemaManager",
    "SchemaTarget",
]
