"""
Backend registry and selection.

Backends are registered as name -> factory callables taking the settings, so
adding a backend is one entry here. `select_backend` is a pure function of the
settings; `create_backend` builds the selected backend without connecting.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional

from pinmap.backends.abstract import PinBackend
from pinmap.backends.postgres import PostgresBackend
from pinmap.backends.sqlite import SqliteBackend
from pinmap.config import Settings, get_settings
from pinmap.infrastructure.db_factory import build_dsn
from pinmap.utils.logging import get_logger

log = get_logger(__name__)


def _build_postgres(settings: Settings) -> PinBackend:
    return PostgresBackend(
        dsn=build_dsn(settings),
        pool_size=settings.db_pool_size,
        connect_timeout=settings.db_connect_timeout,
        idle_timeout=settings.db_idle_timeout,
    )


def _build_sqlite(settings: Settings) -> PinBackend:
    return SqliteBackend(path=settings.sqlite_path)


def _backend_factories() -> Dict[str, Callable[[Settings], PinBackend]]:
    """Registry of available backends."""
    return {
        "postgres": _build_postgres,
        "sqlite": _build_sqlite,
    }


def available_backends() -> List[str]:
    """List available backend names."""
    return sorted(_backend_factories().keys())


def select_backend(settings: Optional[Settings] = None) -> str:
    """
    Decide which backend the settings call for.

    Precedence: USE_SQLITE forces SQLite; an explicit DB_PROVIDER wins next;
    otherwise a configured PostgreSQL URL implies PostgreSQL, and SQLite is
    the fallback.
    """
    settings = settings or get_settings()
    if settings.use_sqlite:
        return "sqlite"
    if settings.db_provider:
        return settings.db_provider
    if settings.postgres_dsn:
        return "postgres"
    return "sqlite"


def create_backend(settings: Optional[Settings] = None, name: Optional[str] = None) -> PinBackend:
    """
    Build the backend named `name`, or the one `select_backend` picks.

    Raises
    ------
    ValueError
        If `name` is not a registered backend.
    ConfigurationError
        If PostgreSQL is selected without a connection string.
    """
    settings = settings or get_settings()
    name = name or select_backend(settings)
    factories = _backend_factories()
    if name not in factories:
        raise ValueError(f"Unknown backend '{name}'. Available: {', '.join(factories)}")
    backend = factories[name](settings)
    log.info("Backend selected", extra={"backend": name, "app_env": settings.app_env})
    return backend


__all__ = ["available_backends", "create_backend", "select_backend"]
