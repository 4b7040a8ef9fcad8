"""
Storage backend interfaces for pinmap.

`PinBackend` is the contract the persistence facade programs against; the
embedded (SQLite) and networked (PostgreSQL) backends both implement it over the
same logical schema and return identical record shapes.

`AbstractPinBackend` implements the writes that must read and then modify a
pin atomically (the optimistic-concurrency update and the visit writes that
bump their pin) once, as template methods over a handful of dialect-specific
primitives. Each primitive runs inside the transaction opened by
`_transaction()`, which must hold the pin row locked from `_lock_pin` until
commit so no other writer can interleave between the check and the write.
"""

from __future__ import annotations

import abc
from collections import defaultdict
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from pinmap.domain.errors import NotFoundError
from pinmap.domain.models import (
    VISIT_PAGE_SIZE,
    Category,
    CategoryUpsert,
    Pin,
    PinCreate,
    PinUpdate,
    PinWithVisits,
    UpdateConflict,
    Visit,
    VisitCreate,
)
from pinmap.utils.timestamps import format_timestamp, next_update_time


@runtime_checkable
class PinBackend(Protocol):
    """
    Common interface both storage backends implement.

    Attributes
    ----------
    name : str
        A short machine-friendly identifier ("sqlite", "postgres").
    """

    name: str

    async def create_schema(self) -> None:
        """Create tables, indexes and triggers if absent (idempotent)."""
        ...

    async def list_pins(self, category: Optional[str] = None) -> List[Pin]:
        """Pins ordered by updated_at DESC, id DESC, optionally of one category."""
        ...

    async def list_pins_with_visits(self) -> List[PinWithVisits]:
        """Every pin together with all of its visits."""
        ...

    async def create_pin(self, data: PinCreate) -> Pin:
        ...

    async def get_pin_with_visits(
        self, pin_id: int, visit_limit: int = VISIT_PAGE_SIZE
    ) -> Optional[PinWithVisits]:
        """The pin and its most recent visits, or None if the pin does not exist."""
        ...

    async def update_pin(self, pin_id: int, data: PinUpdate) -> Pin | UpdateConflict:
        """
        Replace the pin's mutable fields unless `data.expected_updated_at` is stale.

        Raises
        ------
        NotFoundError
            If the pin does not exist.
        """
        ...

    async def delete_pin(self, pin_id: int) -> bool:
        """Delete the pin and, by cascade, its visits. False if it did not exist."""
        ...

    async def add_visit(self, pin_id: int, data: VisitCreate) -> Visit:
        ...

    async def update_visit(self, visit_id: int, changes: Dict[str, Any]) -> Visit:
        ...

    async def list_categories(self) -> List[Category]:
        ...

    async def upsert_category(self, data: CategoryUpsert) -> Category:
        ...

    async def daily_visit_counts(self) -> Dict[str, int]:
        """Number of visits per UTC calendar day (YYYY-MM-DD)."""
        ...

    async def close(self) -> None:
        ...


class AbstractPinBackend(abc.ABC):
    """
    ABC helper carrying the backend-independent write algorithms.

    Subclasses set `name`, implement the read/insert operations directly and
    supply the locking primitives used by `update_pin`, `add_visit` and
    `update_visit`.
    """

    name: str

    # -- template methods -------------------------------------------------

    async def update_pin(self, pin_id: int, data: PinUpdate) -> Pin | UpdateConflict:
        async with self._transaction() as tx:
            current = await self._lock_pin(tx, pin_id)
            if current is None:
                raise NotFoundError("pin", pin_id)
            server_updated_at = format_timestamp(current)
            if data.expected_updated_at and data.expected_updated_at != server_updated_at:
                return UpdateConflict(server_updated_at=server_updated_at)
            return await self._write_pin(tx, pin_id, data, next_update_time(current))

    async def add_visit(self, pin_id: int, data: VisitCreate) -> Visit:
        async with self._transaction() as tx:
            current = await self._lock_pin(tx, pin_id)
            if current is None:
                raise NotFoundError("pin", pin_id)
            stamp = next_update_time(current)
            visit = await self._insert_visit(tx, pin_id, data, stamp)
            await self._bump_pin(tx, pin_id, stamp)
            return visit

    async def update_visit(self, visit_id: int, changes: Dict[str, Any]) -> Visit:
        async with self._transaction() as tx:
            pin_id = await self._visit_owner(tx, visit_id)
            if pin_id is None:
                raise NotFoundError("visit", visit_id)
            current = await self._lock_pin(tx, pin_id)
            if current is None:
                raise NotFoundError("pin", pin_id)
            visit = await self._patch_visit(tx, visit_id, changes)
            if visit is None:
                raise NotFoundError("visit", visit_id)
            await self._bump_pin(tx, pin_id, next_update_time(current))
            return visit

    async def list_pins_with_visits(self) -> List[PinWithVisits]:
        pins = await self.list_pins()
        by_pin: Dict[int, List[Visit]] = defaultdict(list)
        for visit in await self._all_visits():
            by_pin[visit.pin_id].append(visit)
        return [PinWithVisits(pin=pin, visits=by_pin.get(pin.id, [])) for pin in pins]

    # -- dialect primitives -----------------------------------------------

    @abc.abstractmethod
    def _transaction(self) -> AbstractAsyncContextManager[Any]:
        """Open a write transaction; yields the handle passed to the primitives."""
        raise NotImplementedError

    @abc.abstractmethod
    async def _lock_pin(self, tx: Any, pin_id: int) -> Optional[datetime | str]:
        """Lock the pin row for the rest of the transaction and return its updated_at."""
        raise NotImplementedError

    @abc.abstractmethod
    async def _write_pin(self, tx: Any, pin_id: int, data: PinUpdate, stamp: datetime) -> Pin:
        """Apply field changes, set updated_at=stamp and increment version."""
        raise NotImplementedError

    @abc.abstractmethod
    async def _bump_pin(self, tx: Any, pin_id: int, stamp: datetime) -> None:
        """Set updated_at=stamp and increment version without touching fields."""
        raise NotImplementedError

    @abc.abstractmethod
    async def _insert_visit(
        self, tx: Any, pin_id: int, data: VisitCreate, stamp: datetime
    ) -> Visit:
        raise NotImplementedError

    @abc.abstractmethod
    async def _visit_owner(self, tx: Any, visit_id: int) -> Optional[int]:
        """Owning pin id of the visit, or None if the visit does not exist."""
        raise NotImplementedError

    @abc.abstractmethod
    async def _patch_visit(
        self, tx: Any, visit_id: int, changes: Dict[str, Any]
    ) -> Optional[Visit]:
        """Apply the provided columns; None if the visit vanished meanwhile."""
        raise NotImplementedError

    @abc.abstractmethod
    async def _all_visits(self) -> List[Visit]:
        """Every visit, ordered by pin_id then visited_at DESC, id DESC."""
        raise NotImplementedError

    # -- operations each dialect implements directly ----------------------

    @abc.abstractmethod
    async def create_schema(self) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def list_pins(self, category: Optional[str] = None) -> List[Pin]:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    async def create_pin(self, data: PinCreate) -> Pin:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def get_pin_with_visits(
        self, pin_id: int, visit_limit: int = VISIT_PAGE_SIZE
    ) -> Optional[PinWithVisits]:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def delete_pin(self, pin_id: int) -> bool:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def list_categories(self) -> List[Category]:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def upsert_category(self, data: CategoryUpsert) -> Category:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    async def daily_visit_counts(self) -> Dict[str, int]:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def close(self) -> None:  # pragma: no cover - interface only
        raise NotImplementedError


__all__ = ["AbstractPinBackend", "PinBackend"]
