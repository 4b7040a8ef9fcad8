"""
Embedded single-file backend built on aiosqlite.

One connection serves the whole process. SQLite allows a single writer at a
time anyway, so every operation runs under one asyncio lock; write operations
additionally open a `BEGIN IMMEDIATE` transaction, which takes the database
write lock up front and makes each check-then-write sequence atomic.

Timestamps are stored as canonical ISO-8601 strings, which sort correctly as
text, so ordering by `updated_at` needs no date functions.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

import aiosqlite

from pinmap.backends.abstract import AbstractPinBackend
from pinmap.domain.models import (
    VISIT_PAGE_SIZE,
    Category,
    CategoryUpsert,
    Pin,
    PinCreate,
    PinUpdate,
    PinWithVisits,
    Visit,
    VisitCreate,
)
from pinmap.infrastructure.db_factory import open_sqlite
from pinmap.infrastructure.schema import (
    SQLITE_ADDED_COLUMNS,
    SQLITE_INDEXES_AND_TRIGGERS,
    SQLITE_TABLES,
)
from pinmap.utils.logging import get_logger
from pinmap.utils.timestamps import format_timestamp, utc_now

log = get_logger(__name__)

PIN_COLUMNS = (
    "id, title, description, lat, lng, category, image_url, "
    "created_at, updated_at, version, visits_count"
)
VISIT_COLUMNS = "id, pin_id, name, note, image_url, visited_at"
PATCHABLE_VISIT_COLUMNS = ("name", "note", "image_url")


class SqliteBackend(AbstractPinBackend):
    """
    Pin storage in a local SQLite file.

    Parameters
    ----------
    path : str
        Database file path (":memory:" for a throwaway database).
    """

    name: str = "sqlite"

    def __init__(self, path: str) -> None:
        self.path = path
        self._conn: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            self._conn = await open_sqlite(self.path)
        return self._conn

    @asynccontextmanager
    async def _locked(self) -> AsyncIterator[aiosqlite.Connection]:
        async with self._lock:
            yield await self._connection()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        async with self._locked() as conn:
            await conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                await conn.rollback()
                raise
            else:
                await conn.commit()

    @staticmethod
    async def _fetchall(conn: aiosqlite.Connection, sql: str, params: tuple = ()) -> List[Dict]:
        async with conn.execute(sql, params) as cursor:
            return [dict(row) for row in await cursor.fetchall()]

    @staticmethod
    async def _fetchone(
        conn: aiosqlite.Connection, sql: str, params: tuple = ()
    ) -> Optional[Dict]:
        async with conn.execute(sql, params) as cursor:
            row = await cursor.fetchone()
        return dict(row) if row is not None else None

    # -- schema -----------------------------------------------------------

    async def create_schema(self) -> None:
        async with self._transaction() as conn:
            for statement in SQLITE_TABLES:
                await conn.execute(statement)
            for table, columns in SQLITE_ADDED_COLUMNS.items():
                existing = {
                    row["name"] for row in await self._fetchall(conn, f"PRAGMA table_info({table})")
                }
                for column, ddl in columns.items():
                    if column not in existing:
                        log.info("Adding column", extra={"table": table, "column": column})
                        await conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}")
            for statement in SQLITE_INDEXES_AND_TRIGGERS:
                await conn.execute(statement)

    # -- reads ------------------------------------------------------------

    async def list_pins(self, category: Optional[str] = None) -> List[Pin]:
        where = "WHERE category = ?" if category else ""
        params = (category,) if category else ()
        async with self._locked() as conn:
            rows = await self._fetchall(
                conn,
                f"SELECT {PIN_COLUMNS} FROM pins {where} ORDER BY updated_at DESC, id DESC",
                params,
            )
        return [Pin.model_validate(row) for row in rows]

    async def get_pin_with_visits(
        self, pin_id: int, visit_limit: int = VISIT_PAGE_SIZE
    ) -> Optional[PinWithVisits]:
        async with self._locked() as conn:
            pin = await self._fetchone(
                conn, f"SELECT {PIN_COLUMNS} FROM pins WHERE id = ?", (pin_id,)
            )
            if pin is None:
                return None
            visits = await self._fetchall(
                conn,
                f"SELECT {VISIT_COLUMNS} FROM visits WHERE pin_id = ? "
                "ORDER BY visited_at DESC, id DESC LIMIT ?",
                (pin_id, visit_limit),
            )
        return PinWithVisits(
            pin=Pin.model_validate(pin),
            visits=[Visit.model_validate(v) for v in visits],
        )

    async def _all_visits(self) -> List[Visit]:
        async with self._locked() as conn:
            rows = await self._fetchall(
                conn,
                f"SELECT {VISIT_COLUMNS} FROM visits ORDER BY pin_id, visited_at DESC, id DESC",
            )
        return [Visit.model_validate(row) for row in rows]

    async def list_categories(self) -> List[Category]:
        async with self._locked() as conn:
            rows = await self._fetchall(conn, "SELECT name, color FROM categories ORDER BY name ASC")
        return [Category.model_validate(row) for row in rows]

    async def daily_visit_counts(self) -> Dict[str, int]:
        async with self._locked() as conn:
            rows = await self._fetchall(
                conn,
                "SELECT substr(visited_at, 1, 10) AS day, COUNT(*) AS n "
                "FROM visits GROUP BY day ORDER BY day ASC",
            )
        return {row["day"]: int(row["n"]) for row in rows}

    # -- writes -----------------------------------------------------------

    async def create_pin(self, data: PinCreate) -> Pin:
        now = format_timestamp(utc_now())
        async with self._transaction() as conn:
            row = await self._fetchone(
                conn,
                "INSERT INTO pins (title, description, lat, lng, category, image_url, "
                "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
                f"RETURNING {PIN_COLUMNS}",
                (
                    data.title,
                    data.description,
                    data.lat,
                    data.lng,
                    data.category,
                    data.image_url,
                    now,
                    now,
                ),
            )
        return Pin.model_validate(row)

    async def delete_pin(self, pin_id: int) -> bool:
        async with self._transaction() as conn:
            cursor = await conn.execute("DELETE FROM pins WHERE id = ?", (pin_id,))
            deleted = cursor.rowcount > 0
            await cursor.close()
        return deleted

    async def upsert_category(self, data: CategoryUpsert) -> Category:
        async with self._transaction() as conn:
            row = await self._fetchone(
                conn,
                "INSERT INTO categories (name, color) VALUES (?, ?) "
                "ON CONFLICT(name) DO UPDATE SET color = excluded.color "
                "RETURNING name, color",
                (data.name, data.color),
            )
        return Category.model_validate(row)

    # -- primitives for the shared write algorithms ------------------------

    async def _lock_pin(self, tx: aiosqlite.Connection, pin_id: int) -> Optional[str]:
        # BEGIN IMMEDIATE already holds the database write lock.
        row = await self._fetchone(tx, "SELECT updated_at FROM pins WHERE id = ?", (pin_id,))
        return row["updated_at"] if row else None

    async def _write_pin(
        self, tx: aiosqlite.Connection, pin_id: int, data: PinUpdate, stamp: datetime
    ) -> Pin:
        row = await self._fetchone(
            tx,
            "UPDATE pins SET title = ?, description = ?, category = ?, image_url = ?, "
            "updated_at = ?, version = version + 1 "
            f"WHERE id = ? RETURNING {PIN_COLUMNS}",
            (
                data.title,
                data.description,
                data.category,
                data.image_url,
                format_timestamp(stamp),
                pin_id,
            ),
        )
        return Pin.model_validate(row)

    async def _bump_pin(self, tx: aiosqlite.Connection, pin_id: int, stamp: datetime) -> None:
        await tx.execute(
            "UPDATE pins SET updated_at = ?, version = version + 1 WHERE id = ?",
            (format_timestamp(stamp), pin_id),
        )

    async def _insert_visit(
        self, tx: aiosqlite.Connection, pin_id: int, data: VisitCreate, stamp: datetime
    ) -> Visit:
        row = await self._fetchone(
            tx,
            "INSERT INTO visits (pin_id, name, note, image_url, visited_at) "
            f"VALUES (?, ?, ?, ?, ?) RETURNING {VISIT_COLUMNS}",
            (pin_id, data.name, data.note, data.image_url, format_timestamp(stamp)),
        )
        return Visit.model_validate(row)

    async def _visit_owner(self, tx: aiosqlite.Connection, visit_id: int) -> Optional[int]:
        row = await self._fetchone(tx, "SELECT pin_id FROM visits WHERE id = ?", (visit_id,))
        return int(row["pin_id"]) if row else None

    async def _patch_visit(
        self, tx: aiosqlite.Connection, visit_id: int, changes: Dict[str, Any]
    ) -> Optional[Visit]:
        columns = [c for c in PATCHABLE_VISIT_COLUMNS if c in changes]
        if columns:
            assignments = ", ".join(f"{c} = ?" for c in columns)
            params = tuple(changes[c] for c in columns) + (visit_id,)
            row = await self._fetchone(
                tx,
                f"UPDATE visits SET {assignments} WHERE id = ? RETURNING {VISIT_COLUMNS}",
                params,
            )
        else:
            row = await self._fetchone(
                tx, f"SELECT {VISIT_COLUMNS} FROM visits WHERE id = ?", (visit_id,)
            )
        return Visit.model_validate(row) if row else None

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None


__all__ = ["SqliteBackend"]
