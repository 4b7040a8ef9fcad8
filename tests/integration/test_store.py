"""
Integration tests for the persistence facade.

Every test runs against SQLite on a temporary file, and against PostgreSQL as
well when one is configured:

Run with: RUN_INTEGRATION_TESTS=1 TEST_POSTGRES_URL=postgresql://... pytest tests/integration/
"""

from __future__ import annotations

import asyncio

import pytest

from pinmap.domain.errors import NotFoundError
from pinmap.domain.models import (
    CategoryUpsert,
    PinCreate,
    PinUpdate,
    UpdateConflict,
    VisitCreate,
    VisitUpdate,
)
from pinmap.store import PinStore

CONCURRENT_VISITS = 5


def _pin(title: str = "Bench", category: str = "rest", **overrides) -> PinCreate:
    fields = {"title": title, "lat": 52.2297, "lng": 21.0122, "category": category}
    fields.update(overrides)
    return PinCreate(**fields)


def _update_from(pin, **overrides) -> PinUpdate:
    fields = {
        "title": pin.title,
        "description": pin.description,
        "category": pin.category,
        "image_url": pin.image_url,
        "expected_updated_at": pin.updated_at,
    }
    fields.update(overrides)
    return PinUpdate(**fields)


@pytest.mark.asyncio
async def test_create_list_and_filter_by_category(store: PinStore):
    a = await store.create_pin(_pin("A", "x"))
    b = await store.create_pin(_pin("B", "y"))

    assert a.version == 1
    assert a.visits_count == 0
    assert a.created_at == a.updated_at

    everything = await store.list_pins()
    assert {p.id for p in everything} == {a.id, b.id}
    assert [p.id for p in everything][0] == b.id

    only_x = await store.list_pins("x")
    assert [p.id for p in only_x] == [a.id]
    assert await store.list_pins("missing") == []


@pytest.mark.asyncio
async def test_add_visit_then_get_pin_with_visits(store: PinStore):
    pin = await store.create_pin(_pin())

    visit = await store.add_visit(pin.id, VisitCreate(name="Ann", note="ok"))
    detail = await store.get_pin_with_visits(pin.id)

    assert detail is not None
    assert detail.pin.visits_count == 1
    assert detail.pin.version == 2
    assert detail.pin.updated_at > pin.updated_at
    assert [v.id for v in detail.visits] == [visit.id]
    assert detail.visits[0].name == "Ann"
    assert detail.visits[0].note == "ok"
    assert detail.visits[0].pin_id == pin.id


@pytest.mark.asyncio
async def test_update_increments_version_and_updated_at(store: PinStore):
    pin = await store.create_pin(_pin())

    first = await store.update_pin(pin.id, _update_from(pin, title="Renamed"))
    assert not isinstance(first, UpdateConflict)
    second = await store.update_pin(first.id, _update_from(first, description="Shady spot"))
    assert not isinstance(second, UpdateConflict)

    assert (first.version, second.version) == (2, 3)
    assert pin.updated_at < first.updated_at < second.updated_at
    assert second.title == "Renamed"
    assert second.description == "Shady spot"
    assert second.created_at == pin.created_at


@pytest.mark.asyncio
async def test_stale_expected_updated_at_returns_conflict(store: PinStore):
    pin = await store.create_pin(_pin())
    fresh = await store.update_pin(pin.id, _update_from(pin, title="Winner"))
    assert not isinstance(fresh, UpdateConflict)

    stale = await store.update_pin(pin.id, _update_from(pin, title="Loser"))

    assert isinstance(stale, UpdateConflict)
    assert stale.conflict is True
    assert stale.server_updated_at == fresh.updated_at
    current = await store.get_pin_with_visits(pin.id)
    assert current is not None
    assert current.pin.title == "Winner"
    assert current.pin.version == fresh.version


@pytest.mark.asyncio
async def test_update_without_expected_updated_at_always_applies(store: PinStore):
    pin = await store.create_pin(_pin())
    await store.add_visit(pin.id, VisitCreate(name="Ann"))

    result = await store.update_pin(pin.id, _update_from(pin, title="Forced", expected_updated_at=None))

    assert not isinstance(result, UpdateConflict)
    assert result.title == "Forced"
    assert result.version == 3


@pytest.mark.asyncio
async def test_visit_after_read_makes_pin_edit_conflict(store: PinStore):
    pin = await store.create_pin(_pin())
    await store.add_visit(pin.id, VisitCreate(name="Ann"))

    result = await store.update_pin(pin.id, _update_from(pin, title="Edited"))

    assert isinstance(result, UpdateConflict)


@pytest.mark.asyncio
async def test_update_missing_pin_raises_not_found(store: PinStore):
    pin = await store.create_pin(_pin())

    with pytest.raises(NotFoundError) as excinfo:
        await store.update_pin(999_999, _update_from(pin))

    assert excinfo.value.entity == "pin"
    assert excinfo.value.entity_id == 999_999


@pytest.mark.asyncio
async def test_concurrent_visits_keep_count_exact(store: PinStore):
    pin = await store.create_pin(_pin())

    visits = await asyncio.gather(
        *(store.add_visit(pin.id, VisitCreate(name=f"worker-{i}")) for i in range(CONCURRENT_VISITS))
    )

    detail = await store.get_pin_with_visits(pin.id)
    assert detail is not None
    assert len({v.id for v in visits}) == CONCURRENT_VISITS
    assert detail.pin.visits_count == CONCURRENT_VISITS
    assert len(detail.visits) == CONCURRENT_VISITS
    assert detail.pin.version == 1 + CONCURRENT_VISITS


@pytest.mark.asyncio
async def test_delete_cascades_to_visits(store: PinStore):
    pin = await store.create_pin(_pin())
    visit = await store.add_visit(pin.id, VisitCreate(name="Ann"))

    assert await store.delete_pin(pin.id) is True

    assert await store.get_pin_with_visits(pin.id) is None
    assert await store.list_pins() == []
    with pytest.raises(NotFoundError):
        await store.update_visit(visit.id, VisitUpdate(note="gone"))
    assert await store.delete_pin(pin.id) is False


@pytest.mark.asyncio
async def test_list_reflects_create_despite_cache(store: PinStore):
    first = await store.list_pins()
    assert first == []

    pin = await store.create_pin(_pin())

    assert [p.id for p in await store.list_pins()] == [pin.id]


@pytest.mark.asyncio
async def test_add_visit_to_missing_pin_raises_and_get_returns_none(store: PinStore):
    with pytest.raises(NotFoundError):
        await store.add_visit(999_999, VisitCreate(name="x"))

    assert await store.get_pin_with_visits(999_999) is None


@pytest.mark.asyncio
async def test_partial_visit_update_changes_only_given_fields(store: PinStore):
    pin = await store.create_pin(_pin())
    visit = await store.add_visit(
        pin.id, VisitCreate(name="Ann", note="first", image_url="https://img.example/a.jpg")
    )

    updated = await store.update_visit(visit.id, VisitUpdate(note="second"))

    assert updated.name == "Ann"
    assert updated.note == "second"
    assert updated.image_url == "https://img.example/a.jpg"
    assert updated.visited_at == visit.visited_at

    cleared = await store.update_visit(visit.id, VisitUpdate(image_url=None))
    assert cleared.image_url is None
    assert cleared.note == "second"

    detail = await store.get_pin_with_visits(pin.id)
    assert detail is not None
    assert detail.pin.version == 4


@pytest.mark.asyncio
async def test_visit_update_moves_pin_to_top_of_list(store: PinStore):
    older = await store.create_pin(_pin("older"))
    newer = await store.create_pin(_pin("newer"))
    # Distinct milliseconds keep the ordering independent of id tie-breaks.
    await asyncio.sleep(0.01)
    visit = await store.add_visit(older.id, VisitCreate(name="Ann"))
    assert [p.id for p in await store.list_pins()] == [older.id, newer.id]

    await asyncio.sleep(0.01)
    await store.update_pin(newer.id, _update_from(newer, title="newest"))
    assert [p.id for p in await store.list_pins()] == [newer.id, older.id]

    await asyncio.sleep(0.01)
    await store.update_visit(visit.id, VisitUpdate(name="Bob"))
    assert [p.id for p in await store.list_pins()] == [older.id, newer.id]


@pytest.mark.asyncio
async def test_visits_are_newest_first(store: PinStore):
    pin = await store.create_pin(_pin())
    ids = [(await store.add_visit(pin.id, VisitCreate(name=f"v{i}"))).id for i in range(3)]

    detail = await store.get_pin_with_visits(pin.id)

    assert detail is not None
    assert [v.id for v in detail.visits] == list(reversed(ids))


@pytest.mark.asyncio
async def test_image_urls_round_trip(store: PinStore):
    pin = await store.create_pin(_pin(image_url="https://img.example/pin.png"))
    visit = await store.add_visit(pin.id, VisitCreate(name="Ann", image_url="https://img.example/v.png"))

    detail = await store.get_pin_with_visits(pin.id)

    assert detail is not None
    assert detail.pin.image_url == "https://img.example/pin.png"
    assert detail.visits[0].image_url == visit.image_url == "https://img.example/v.png"


@pytest.mark.asyncio
async def test_categories_upsert_and_order(store: PinStore):
    await store.upsert_category(CategoryUpsert(name="water", color="#3b82f6"))
    await store.upsert_category(CategoryUpsert(name="food", color="#22c55e"))
    changed = await store.upsert_category(CategoryUpsert(name="water", color="#06b6d4"))

    categories = await store.list_categories()

    assert changed.color == "#06b6d4"
    assert [(c.name, c.color) for c in categories] == [("food", "#22c55e"), ("water", "#06b6d4")]


@pytest.mark.asyncio
async def test_list_pins_with_visits_groups_every_visit(store: PinStore):
    a = await store.create_pin(_pin("A"))
    b = await store.create_pin(_pin("B"))
    for name in ("one", "two"):
        await store.add_visit(a.id, VisitCreate(name=name))

    exported = {item.pin.id: item for item in await store.list_pins_with_visits()}

    assert set(exported) == {a.id, b.id}
    assert [v.name for v in exported[a.id].visits] == ["two", "one"]
    assert exported[b.id].visits == []


@pytest.mark.asyncio
async def test_pin_stats_counts_pins_and_visits(store: PinStore):
    a = await store.create_pin(_pin("A", "x"))
    await store.create_pin(_pin("B", "y"))
    await store.add_visit(a.id, VisitCreate(name="Ann"))

    stats = await store.pin_stats()

    assert stats.total == 2
    assert stats.categories == {"x": 1, "y": 1}
    assert stats.total_updates == 1
    assert stats.daily[-1].cumulative == 2
    assert stats.first_pin == a.created_at


@pytest.mark.asyncio
async def test_pin_stats_refresh_after_write(store: PinStore):
    assert (await store.pin_stats()).total == 0

    await store.create_pin(_pin())

    assert (await store.pin_stats()).total == 1
