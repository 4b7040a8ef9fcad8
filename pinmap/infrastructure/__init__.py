"""
Infrastructure package for pinmap.

Centralizes storage-adjacent concerns: connection factories, the read-through
cache and schema initialization. Keep this layer focused on I/O and resource
management, decoupled from pin/visit semantics.
"""

from pinmap.infrastructure.cache import (
    TTLCache,
    clear_cache,
    default_cache,
    get_cached,
    invalidate_cache_prefix,
    set_cached,
)
from pinmap.infrastructure.db_factory import (
    build_dsn,
    build_postgres_pool,
    open_sqlite,
    wait_for_postgres,
)
from pinmap.infrastructure.schema import SchemaManager

__all__ = [
    "SchemaManager",
    "TTLCache",
    "build_dsn",
    "build_postgres_pool",
    "clear_cache",
    "default_cache",
    "get_cached",
    "invalidate_cache_prefix",
    "open_sqlite",
    "set_cached",
    "wait_for_postgres",
]
