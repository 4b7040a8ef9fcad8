"""
Database connection factory utilities for pinmap.

Builds the long-lived connection resources each backend owns for the lifetime
of the process: a bounded psycopg async pool for PostgreSQL and a single
aiosqlite connection for the embedded SQLite file. Connections are configured
here (row factories, timeouts, pragmas) so backends only issue SQL.

Also provides a readiness probe for PostgreSQL with retry logic for transient
connection failures using tenacity. The probe is for operator tooling
(`pinmap init-db --wait`); persistence operations never retry on their own.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import aiosqlite
import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from pinmap.config import Settings, get_settings
from pinmap.domain.errors import ConfigurationError
from pinmap.utils.logging import get_logger

log = get_logger(__name__)

POOL_NAME = "pinmap"


def build_dsn(settings: Optional[Settings] = None) -> str:
    """
    Resolve the PostgreSQL connection string from settings.

    Raises
    ------
    ConfigurationError
        If neither POSTGRES_URL nor POSTGRES_PRISMA_URL is set.
    """
    settings = settings or get_settings()
    dsn = settings.postgres_dsn
    if not dsn:
        raise ConfigurationError(
            "PostgreSQL backend selected but neither POSTGRES_URL nor POSTGRES_PRISMA_URL is set"
        )
    return dsn


def build_postgres_pool(
    dsn: str,
    max_size: int = 10,
    connect_timeout: float = 10.0,
    idle_timeout: float = 20.0,
) -> AsyncConnectionPool:
    """
    Create (but do not open) the asynchronous PostgreSQL connection pool.

    Parameters
    ----------
    dsn : str
        PostgreSQL connection string.
    max_size : int
        Maximum total connections in the pool.
    connect_timeout : float
        Seconds allowed for establishing a connection or waiting for a free one.
    idle_timeout : float
        Seconds after which an idle connection above the minimum is closed.

    Returns
    -------
    AsyncConnectionPool
        Pool handing out autocommit connections that return rows as dicts.
        Callers open it with `await pool.open(wait=True)`.
    """
    return AsyncConnectionPool(
        conninfo=dsn,
        min_size=1,
        max_size=max_size,
        timeout=connect_timeout,
        max_idle=idle_timeout,
        name=POOL_NAME,
        open=False,
        kwargs={
            "autocommit": True,
            "row_factory": dict_row,
            "connect_timeout": max(1, int(connect_timeout)),
        },
    )


async def open_sqlite(path: str) -> aiosqlite.Connection:
    """
    Open the embedded database file, creating parent directories as needed.

    The connection runs in autocommit mode (transactions are explicit
    `BEGIN IMMEDIATE` blocks), enforces foreign keys so cascading deletes
    apply, and returns rows that support access by column name.
    """
    if path != ":memory:":
        Path(path).expanduser().parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(path, isolation_level=None)
    conn.row_factory = aiosqlite.Row
    try:
        await conn.execute("PRAGMA foreign_keys = ON")
        await conn.execute("PRAGMA busy_timeout = 5000")
        if path != ":memory:":
            await conn.execute("PRAGMA journal_mode = WAL")
    except Exception:
        await conn.close()
        raise
    log.debug("SQLite connection opened", extra={"path": path})
    return conn


@retry(
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError, OSError)),
    reraise=True,
)
async def wait_for_postgres(dsn: str, connect_timeout: float = 10.0) -> None:
    """
    Block until PostgreSQL accepts connections.

    Retries up to 5 times with exponential backoff for transient connection errors.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    conn = await psycopg.AsyncConnection.connect(dsn, connect_timeout=max(1, int(connect_timeout)))
    try:
        await conn.execute("SELECT 1")
    finally:
        await conn.close()


__all__ = [
    "build_dsn",
    "build_postgres_pool",
    "open_sqlite",
    "wait_for_postgres",
]
