"""
Networked backend built on psycopg 3 and its asynchronous connection pool.

The pool is created on first use and shared by every operation of the backend
for the life of the process. Pool connections run in autocommit mode; the
writes that check and then modify a pin open an explicit transaction and lock
the pin row with `SELECT ... FOR UPDATE`.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from psycopg import AsyncConnection, sql
from psycopg_pool import AsyncConnectionPool

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
from pinmap.infrastructure.db_factory import build_postgres_pool
from pinmap.infrastructure.schema import POSTGRES_SCHEMA, POSTGRES_SCHEMA_LOCK_KEY
from pinmap.utils.logging import get_logger
from pinmap.utils.timestamps import utc_now

log = get_logger(__name__)

PIN_COLUMNS = (
    "id, title, description, lat, lng, category, image_url, "
    "created_at, updated_at, version, visits_count"
)
VISIT_COLUMNS = "id, pin_id, name, note, image_url, visited_at"
PATCHABLE_VISIT_COLUMNS = ("name", "note", "image_url")


class PostgresBackend(AbstractPinBackend):
    """
    Pin storage in PostgreSQL.

    Parameters
    ----------
    dsn : str
        PostgreSQL connection string.
    pool_size : int
        Maximum number of pooled connections.
    connect_timeout : float
        Seconds allowed to open a connection or to wait for a free one.
    idle_timeout : float
        Seconds before an idle connection above the minimum is closed.
    """

    name: str = "postgres"

    def __init__(
        self,
        dsn: str,
        pool_size: int = 10,
        connect_timeout: float = 10.0,
        idle_timeout: float = 20.0,
    ) -> None:
        self.dsn = dsn
        self.pool_size = pool_size
        self.connect_timeout = connect_timeout
        self.idle_timeout = idle_timeout
        self._pool: Optional[AsyncConnectionPool] = None
        self._pool_lock = asyncio.Lock()

    async def _get_pool(self) -> AsyncConnectionPool:
        if self._pool is not None:
            return self._pool
        async with self._pool_lock:
            if self._pool is None:
                pool = build_postgres_pool(
                    self.dsn,
                    max_size=self.pool_size,
                    connect_timeout=self.connect_timeout,
                    idle_timeout=self.idle_timeout,
                )
                await pool.open(wait=True, timeout=self.connect_timeout)
                log.info("PostgreSQL pool opened", extra={"max_size": self.pool_size})
                self._pool = pool
        return self._pool

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[AsyncConnection]:
        pool = await self._get_pool()
        async with pool.connection() as conn:
            yield conn

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncConnection]:
        async with self._connection() as conn:
            async with conn.transaction():
                yield conn

    @staticmethod
    async def _fetchall(conn: AsyncConnection, query: Any, params: tuple = ()) -> List[Dict]:
        cur = await conn.execute(query, params)
        return await cur.fetchall()

    @staticmethod
    async def _fetchone(conn: AsyncConnection, query: Any, params: tuple = ()) -> Optional[Dict]:
        cur = await conn.execute(query, params)
        return await cur.fetchone()

    # -- schema -----------------------------------------------------------

    async def create_schema(self) -> None:
        async with self._transaction() as conn:
            # Concurrent processes starting together would otherwise race on DDL.
            await conn.execute("SELECT pg_advisory_xact_lock(%s)", (POSTGRES_SCHEMA_LOCK_KEY,))
            for statement in POSTGRES_SCHEMA:
                await conn.execute(statement)

    # -- reads ------------------------------------------------------------

    async def list_pins(self, category: Optional[str] = None) -> List[Pin]:
        query = f"SELECT {PIN_COLUMNS} FROM pins"
        params: tuple = ()
        if category:
            query += " WHERE category = %s"
            params = (category,)
        query += " ORDER BY updated_at DESC, id DESC"
        async with self._connection() as conn:
            rows = await self._fetchall(conn, query, params)
        return [Pin.model_validate(row) for row in rows]

    async def get_pin_with_visits(
        self, pin_id: int, visit_limit: int = VISIT_PAGE_SIZE
    ) -> Optional[PinWithVisits]:
        async with self._connection() as conn:
            pin = await self._fetchone(
                conn, f"SELECT {PIN_COLUMNS} FROM pins WHERE id = %s", (pin_id,)
            )
            if pin is None:
                return None
            visits = await self._fetchall(
                conn,
                f"SELECT {VISIT_COLUMNS} FROM visits WHERE pin_id = %s "
                "ORDER BY visited_at DESC, id DESC LIMIT %s",
                (pin_id, visit_limit),
            )
        return PinWithVisits(
            pin=Pin.model_validate(pin),
            visits=[Visit.model_validate(v) for v in visits],
        )

    async def _all_visits(self) -> List[Visit]:
        async with self._connection() as conn:
            rows = await self._fetchall(
                conn,
                f"SELECT {VISIT_COLUMNS} FROM visits ORDER BY pin_id, visited_at DESC, id DESC",
            )
        return [Visit.model_validate(row) for row in rows]

    async def list_categories(self) -> List[Category]:
        async with self._connection() as conn:
            rows = await self._fetchall(conn, "SELECT name, color FROM categories ORDER BY name ASC")
        return [Category.model_validate(row) for row in rows]

    async def daily_visit_counts(self) -> Dict[str, int]:
        async with self._connection() as conn:
            rows = await self._fetchall(
                conn,
                "SELECT to_char(visited_at AT TIME ZONE 'UTC', 'YYYY-MM-DD') AS day, "
                "COUNT(*) AS n FROM visits GROUP BY day ORDER BY day ASC",
            )
        return {row["day"]: int(row["n"]) for row in rows}

    # -- writes -----------------------------------------------------------

    async def create_pin(self, data: PinCreate) -> Pin:
        now = utc_now()
        async with self._connection() as conn:
            row = await self._fetchone(
                conn,
                "INSERT INTO pins (title, description, lat, lng, category, image_url, "
                "created_at, updated_at) VALUES (%s, %s, %s, %s, %s, %s, %s, %s) "
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
        async with self._connection() as conn:
            cur = await conn.execute("DELETE FROM pins WHERE id = %s", (pin_id,))
            return cur.rowcount > 0

    async def upsert_category(self, data: CategoryUpsert) -> Category:
        async with self._connection() as conn:
            row = await self._fetchone(
                conn,
                "INSERT INTO categories (name, color) VALUES (%s, %s) "
                "ON CONFLICT (name) DO UPDATE SET color = EXCLUDED.color "
                "RETURNING name, color",
                (data.name, data.color),
            )
        return Category.model_validate(row)

    # -- primitives for the shared write algorithms ------------------------

    async def _lock_pin(self, tx: AsyncConnection, pin_id: int) -> Optional[datetime]:
        row = await self._fetchone(
            tx, "SELECT updated_at FROM pins WHERE id = %s FOR UPDATE", (pin_id,)
        )
        return row["updated_at"] if row else None

    async def _write_pin(
        self, tx: AsyncConnection, pin_id: int, data: PinUpdate, stamp: datetime
    ) -> Pin:
        row = await self._fetchone(
            tx,
            "UPDATE pins SET title = %s, description = %s, category = %s, image_url = %s, "
            "updated_at = %s, version = version + 1 "
            f"WHERE id = %s RETURNING {PIN_COLUMNS}",
            (data.title, data.description, data.category, data.image_url, stamp, pin_id),
        )
        return Pin.model_validate(row)

    async def _bump_pin(self, tx: AsyncConnection, pin_id: int, stamp: datetime) -> None:
        await tx.execute(
            "UPDATE pins SET updated_at = %s, version = version + 1 WHERE id = %s",
            (stamp, pin_id),
        )

    async def _insert_visit(
        self, tx: AsyncConnection, pin_id: int, data: VisitCreate, stamp: datetime
    ) -> Visit:
        row = await self._fetchone(
            tx,
            "INSERT INTO visits (pin_id, name, note, image_url, visited_at) "
            f"VALUES (%s, %s, %s, %s, %s) RETURNING {VISIT_COLUMNS}",
            (pin_id, data.name, data.note, data.image_url, stamp),
        )
        return Visit.model_validate(row)

    async def _visit_owner(self, tx: AsyncConnection, visit_id: int) -> Optional[int]:
        row = await self._fetchone(tx, "SELECT pin_id FROM visits WHERE id = %s", (visit_id,))
        return int(row["pin_id"]) if row else None

    async def _patch_visit(
        self, tx: AsyncConnection, visit_id: int, changes: Dict[str, Any]
    ) -> Optional[Visit]:
        columns = [c for c in PATCHABLE_VISIT_COLUMNS if c in changes]
        if columns:
            query = sql.SQL("UPDATE visits SET {} WHERE id = %s RETURNING {}").format(
                sql.SQL(", ").join(
                    sql.SQL("{} = %s").format(sql.Identifier(c)) for c in columns
                ),
                sql.SQL(VISIT_COLUMNS),
            )
            params = tuple(changes[c] for c in columns) + (visit_id,)
            row = await self._fetchone(tx, query, params)
        else:
            row = await self._fetchone(
                tx, f"SELECT {VISIT_COLUMNS} FROM visits WHERE id = %s", (visit_id,)
            )
        return Visit.model_validate(row) if row else None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            log.info("PostgreSQL pool closed")


__all__ = ["PostgresBackend"]
