"""
Persistence facade for pinmap.

`PinStore` is the single entry point callers use. It wraps one backend,
makes sure the schema exists before any operation touches it, serves pin
lists and statistics through a short-TTL read-through cache, and invalidates
that cache after every write to pins or visits.

Usage:
    from pinmap.store import get_store

    store = get_store()
    pin = await store.create_pin(PinCreate(title="Bench", lat=52.2, lng=21.0, category="rest"))
    detail = await store.get_pin_with_visits(pin.id)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pinmap.backends.abstract import PinBackend
from pinmap.backends.registry import create_backend
from pinmap.config import Settings, get_settings
from pinmap.domain.models import (
    VISIT_PAGE_SIZE,
    Category,
    CategoryUpsert,
    Pin,
    PinCreate,
    PinStats,
    PinUpdate,
    PinWithVisits,
    UpdateConflict,
    Visit,
    VisitCreate,
    VisitUpdate,
)
from pinmap.infrastructure.cache import TTLCache, default_cache
from pinmap.infrastructure.schema import SchemaManager
from pinmap.stats import build_pin_stats
from pinmap.utils.logging import get_logger

log = get_logger(__name__)

CACHE_PREFIX = "pins:"
STATS_CACHE_KEY = "pins:stats"


def list_cache_key(category: Optional[str]) -> str:
    return f"{CACHE_PREFIX}list:{category or '*'}"


class PinStore:
    """
    Backend-agnostic pin and visit operations.

    Parameters
    ----------
    backend : PinBackend
        Storage backend; the store owns it and closes it in `close()`.
    cache : TTLCache, optional
        Cache for list and stats reads. Defaults to the process-wide cache.
    list_ttl_ms : int
        Maximum age of a cached read, in milliseconds. 0 disables cache hits.
    """

    def __init__(
        self,
        backend: PinBackend,
        cache: Optional[TTLCache] = None,
        list_ttl_ms: int = 5_000,
    ) -> None:
        self.backend = backend
        self.cache = cache if cache is not None else default_cache()
        self.list_ttl_ms = list_ttl_ms
        self._schema = SchemaManager(backend)

    @property
    def backend_name(self) -> str:
        return self.backend.name

    async def ensure_schema(self) -> None:
        await self._schema.ensure_schema()

    def _invalidate(self) -> None:
        removed = self.cache.invalidate_prefix(CACHE_PREFIX)
        log.debug("Cache invalidated", extra={"prefix": CACHE_PREFIX, "removed": removed})

    def _store_read(self, key: str, value: object, generation: int) -> None:
        # A write that finished while the read was in flight owns the cache now.
        if not self.cache.set(key, value, generation):
            log.debug("Stale read not cached", extra={"key": key})

    # -- pins ---------------------------------------------------------------

    async def list_pins(self, category: Optional[str] = None) -> List[Pin]:
        """Pins most recently updated first, optionally limited to one category."""
        await self.ensure_schema()
        key = list_cache_key(category)
        cached = self.cache.get(key, self.list_ttl_ms)
        if cached is not None:
            log.debug("Cache hit", extra={"key": key})
            return list(cached)
        generation = self.cache.generation
        pins = await self.backend.list_pins(category)
        self._store_read(key, pins, generation)
        return list(pins)

    async def list_pins_with_visits(self) -> List[PinWithVisits]:
        await self.ensure_schema()
        return await self.backend.list_pins_with_visits()

    async def create_pin(self, data: PinCreate) -> Pin:
        await self.ensure_schema()
        pin = await self.backend.create_pin(data)
        self._invalidate()
        log.info("Pin created", extra={"pin_id": pin.id, "category": pin.category})
        return pin

    async def get_pin_with_visits(
        self, pin_id: int, visit_limit: int = VISIT_PAGE_SIZE
    ) -> Optional[PinWithVisits]:
        await self.ensure_schema()
        return await self.backend.get_pin_with_visits(pin_id, visit_limit)

    async def update_pin(self, pin_id: int, data: PinUpdate) -> Pin | UpdateConflict:
        """
        Replace a pin's mutable fields under optimistic concurrency.

        Returns the updated pin, or `UpdateConflict` when `data.expected_updated_at`
        no longer matches the stored value. Raises `NotFoundError` for an unknown pin.
        """
        await self.ensure_schema()
        result = await self.backend.update_pin(pin_id, data)
        if isinstance(result, UpdateConflict):
            log.info(
                "Pin update conflict",
                extra={
                    "pin_id": pin_id,
                    "expected_updated_at": data.expected_updated_at,
                    "server_updated_at": result.server_updated_at,
                },
            )
            return result
        self._invalidate()
        log.info("Pin updated", extra={"pin_id": pin_id, "version": result.version})
        return result

    async def delete_pin(self, pin_id: int) -> bool:
        await self.ensure_schema()
        deleted = await self.backend.delete_pin(pin_id)
        if deleted:
            self._invalidate()
            log.info("Pin deleted", extra={"pin_id": pin_id})
        return deleted

    # -- visits -------------------------------------------------------------

    async def add_visit(self, pin_id: int, data: VisitCreate) -> Visit:
        await self.ensure_schema()
        visit = await self.backend.add_visit(pin_id, data)
        self._invalidate()
        log.info("Visit added", extra={"pin_id": pin_id, "visit_id": visit.id})
        return visit

    async def update_visit(self, visit_id: int, data: VisitUpdate) -> Visit:
        """Apply only the fields explicitly set on `data`."""
        await self.ensure_schema()
        visit = await self.backend.update_visit(visit_id, data.changes())
        self._invalidate()
        log.info("Visit updated", extra={"pin_id": visit.pin_id, "visit_id": visit_id})
        return visit

    # -- categories ---------------------------------------------------------

    async def list_categories(self) -> List[Category]:
        await self.ensure_schema()
        return await self.backend.list_categories()

    async def upsert_category(self, data: CategoryUpsert) -> Category:
        await self.ensure_schema()
        category = await self.backend.upsert_category(data)
        log.info("Category saved", extra={"category": category.name})
        return category

    # -- statistics ---------------------------------------------------------

    async def pin_stats(self) -> PinStats:
        await self.ensure_schema()
        cached = self.cache.get(STATS_CACHE_KEY, self.list_ttl_ms)
        if cached is not None:
            log.debug("Cache hit", extra={"key": STATS_CACHE_KEY})
            return cached
        generation = self.cache.generation
        pins = await self.backend.list_pins()
        daily_visits = await self.backend.daily_visit_counts()
        stats = build_pin_stats(pins, daily_visits)
        self._store_read(STATS_CACHE_KEY, stats, generation)
        return stats

    async def close(self) -> None:
        await self.backend.close()
        self._schema.reset()


def build_store(settings: Optional[Settings] = None) -> PinStore:
    """Build a store over the backend the settings select."""
    settings = settings or get_settings()
    return PinStore(create_backend(settings), list_ttl_ms=settings.pin_cache_ttl_ms)


@lru_cache(maxsize=1)
def get_store() -> PinStore:
    """The process-wide store, built once from the environment."""
    return build_store()


async def reset_store() -> None:
    """Close the process-wide store (if built) and forget it."""
    if get_store.cache_info().currsize:
        await get_store().close()
    get_store.cache_clear()
    default_cache().clear()


__all__ = [
    "CACHE_PREFIX",
    "STATS_CACHE_KEY",
    "PinStore",
    "build_store",
    "get_store",
    "list_cache_key",
    "reset_store",
]
