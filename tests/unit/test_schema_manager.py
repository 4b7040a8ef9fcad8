"""Test once-per-process schema initialization."""

from __future__ import annotations

import asyncio

import pytest

from pinmap.infrastructure.schema import SchemaManager


class _SlowTarget:
    name = "fake"

    def __init__(self, failures: int = 0) -> None:
        self.calls = 0
        self.failures = failures
        self.release = asyncio.Event()

    async def create_schema(self) -> None:
        self.calls += 1
        await self.release.wait()
        if self.calls <= self.failures:
            raise RuntimeError("boom")


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_initialization():
    target = _SlowTarget()
    manager = SchemaManager(target)

    waiters = [asyncio.create_task(manager.ensure_schema()) for _ in range(5)]
    await asyncio.sleep(0)
    target.release.set()
    await asyncio.gather(*waiters)

    assert target.calls == 1
    assert manager.ready

    await manager.ensure_schema()
    assert target.calls == 1


@pytest.mark.asyncio
async def test_failure_reaches_every_waiter_and_next_call_retries():
    target = _SlowTarget(failures=1)
    manager = SchemaManager(target)

    waiters = [asyncio.create_task(manager.ensure_schema()) for _ in range(3)]
    await asyncio.sleep(0)
    target.release.set()
    results = await asyncio.gather(*waiters, return_exceptions=True)

    assert all(isinstance(r, RuntimeError) for r in results)
    assert not manager.ready
    assert target.calls == 1

    await manager.ensure_schema()
    assert manager.ready
    assert target.calls == 2


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_abort_initialization():
    target = _SlowTarget()
    manager = SchemaManager(target)

    cancelled = asyncio.create_task(manager.ensure_schema())
    survivor = asyncio.create_task(manager.ensure_schema())
    await asyncio.sleep(0)
    cancelled.cancel()
    await asyncio.sleep(0)
    target.release.set()

    await survivor
    with pytest.raises(asyncio.CancelledError):
        await cancelled
    assert manager.ready
    assert target.calls == 1


@pytest.mark.asyncio
async def test_failure_with_no_waiter_left_is_cleared_for_retry():
    target = _SlowTarget(failures=1)
    manager = SchemaManager(target)

    only_waiter = asyncio.create_task(manager.ensure_schema())
    await asyncio.sleep(0)
    initialization = manager._pending
    assert initialization is not None
    only_waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await only_waiter

    target.release.set()
    await asyncio.wait([initialization])

    assert isinstance(initialization.exception(), RuntimeError)
    assert manager._pending is None
    assert not manager.ready

    await manager.ensure_schema()
    assert manager.ready
    assert target.calls == 2


@pytest.mark.asyncio
async def test_reset_forces_reinitialization():
    target = _SlowTarget()
    target.release.set()
    manager = SchemaManager(target)

    await manager.ensure_schema()
    manager.reset()
    await manager.ensure_schema()

    assert target.calls == 2
