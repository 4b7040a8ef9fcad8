from __future__ import annotations

import asyncio
import sys
from typing import Optional

import typer

from pinmap.backends.registry import select_backend
from pinmap.config import get_settings
from pinmap.infrastructure.db_factory import build_dsn, wait_for_postgres
from pinmap.reporter import print_pins, print_stats
from pinmap.store import get_store, reset_store
from pinmap.utils.logging import configure_logging

app = typer.Typer(help="Pinmap persistence CLI.")


def _configure() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.json_logs)


@app.command()
def info() -> None:
    """
    Show effective configuration values and the selected backend.
    """
    settings = get_settings()
    backend = select_backend(settings)
    if backend == "postgres":
        if settings.postgres_url:
            source = "POSTGRES_URL"
        elif settings.postgres_prisma_url:
            source = "POSTGRES_PRISMA_URL"
        else:
            source = "unset"
        location = f"dsn={source}"
    else:
        location = f"path={settings.sqlite_path}"
    typer.echo(
        f"backend={backend} {location} | env={settings.app_env} "
        f"pool={settings.db_pool_size} cache_ttl_ms={settings.pin_cache_ttl_ms}"
    )


@app.command("init-db")
def init_db(
    wait: bool = typer.Option(
        False,
        "--wait",
        "-w",
        help="Wait for PostgreSQL to accept connections before creating the schema.",
    ),
) -> None:
    """
    Create tables, indexes and triggers for the selected backend.
    """
    _configure()
    settings = get_settings()

    async def _run() -> str:
        if wait and select_backend(settings) == "postgres":
            typer.echo("Waiting for PostgreSQL...")
            await wait_for_postgres(build_dsn(settings), settings.db_connect_timeout)
        store = get_store()
        try:
            await store.ensure_schema()
            return store.backend_name
        finally:
            await reset_store()

    backend = asyncio.run(_run())
    typer.echo(f"Schema ready ({backend}).")


@app.command()
def pins(
    category: Optional[str] = typer.Option(
        None,
        "--category",
        "-c",
        help="Only show pins of this category.",
    ),
) -> None:
    """
    List pins, most recently updated first.
    """
    _configure()

    async def _run():
        try:
            return await get_store().list_pins(category)
        finally:
            await reset_store()

    print_pins(asyncio.run(_run()))


@app.command()
def stats() -> None:
    """
    Show per-day pin creation and visit statistics.
    """
    _configure()

    async def _run():
        try:
            return await get_store().pin_stats()
        finally:
            await reset_store()

    print_stats(asyncio.run(_run()))


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
