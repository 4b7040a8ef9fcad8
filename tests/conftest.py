"""
Pytest configuration for pinmap.

Provides fixtures for:
- A clean settings environment (no leaking DB_* / POSTGRES_* variables)
- Facade instances over a temporary SQLite file and, when available, PostgreSQL

PostgreSQL-backed tests run only with RUN_INTEGRATION_TESTS=1 and a reachable
TEST_POSTGRES_URL; otherwise they are skipped and SQLite still runs.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncIterator, Iterator, Optional

import psycopg
import pytest
import pytest_asyncio

from pinmap.backends.postgres import PostgresBackend
from pinmap.backends.sqlite import SqliteBackend
from pinmap.config import get_settings
from pinmap.infrastructure.cache import TTLCache
from pinmap.store import PinStore

SETTINGS_ENV_VARS = (
    "DB_PROVIDER",
    "USE_SQLITE",
    "POSTGRES_URL",
    "POSTGRES_PRISMA_URL",
    "SQLITE_PATH",
    "DB_POOL_SIZE",
    "DB_CONNECT_TIMEOUT",
    "DB_IDLE_TIMEOUT",
    "PIN_CACHE_TTL_MS",
    "APP_ENV",
    "LOG_LEVEL",
    "JSON_LOGS",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[pytest.MonkeyPatch]:
    """
    Remove configuration variables and run from an empty directory (no `.env`).

    The cached settings are cleared before and after so each test sees the
    environment it sets up.
    """
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


@pytest.fixture(scope="session")
def postgres_dsn() -> Optional[str]:
    """
    Connection string of the test PostgreSQL server, or None if unavailable.
    """
    if os.getenv("RUN_INTEGRATION_TESTS", "0") != "1":
        return None
    dsn = os.getenv("TEST_POSTGRES_URL")
    if not dsn:
        return None
    try:
        with psycopg.connect(dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return dsn
    except psycopg.Error:
        return None


def _truncate_postgres(dsn: str) -> None:
    with psycopg.connect(dsn, autocommit=True) as conn:
        conn.execute("TRUNCATE TABLE visits, pins, categories RESTART IDENTITY CASCADE;")


@pytest_asyncio.fixture(params=["sqlite", "postgres"])
async def store(request: pytest.FixtureRequest, tmp_path: Path) -> AsyncIterator[PinStore]:
    """
    Facade over each available backend, starting from empty tables.
    """
    if request.param == "sqlite":
        backend = SqliteBackend(str(tmp_path / "pins.sqlite"))
    else:
        dsn = request.getfixturevalue("postgres_dsn")
        if dsn is None:
            pytest.skip("PostgreSQL requires RUN_INTEGRATION_TESTS=1 and a reachable TEST_POSTGRES_URL")
        backend = PostgresBackend(dsn, pool_size=5)

    pin_store = PinStore(backend, cache=TTLCache())
    await pin_store.ensure_schema()
    if request.param == "postgres":
        _truncate_postgres(dsn)
    try:
        yield pin_store
    finally:
        await pin_store.close()
