import asyncio

import pytest

from roi_ledger.utils.keyed_lock import KeyedLock


@pytest.mark.asyncio
async def test_same_key_is_serialized():
    lock = KeyedLock()
    events = []

    async def worker(name):
        async with lock.hold("return-1"):
            events.append(f"{name}-in")
            await asyncio.sleep(0.01)
            events.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))
    assert events in (
        ["a-in", "a-out", "b-in", "b-out"],
        ["b-in", "b-out", "a-in", "a-out"],
    )


@pytest.mark.asyncio
async def test_different_keys_run_concurrently():
    lock = KeyedLock()
    inside = []

    async def worker(key):
        async with lock.hold(key):
            inside.append(key)
            await asyncio.sleep(0.01)
            assert len(inside) == 2

    await asyncio.gather(worker(1), worker(2))


@pytest.mark.asyncio
async def test_entries_are_released():
    lock = KeyedLock()
    async with lock.hold("x"):
        assert len(lock) == 1
    assert len(lock) == 0

    with pytest.raises(RuntimeError):
        async with lock.hold("y"):
            raise RuntimeError("boom")
    assert len(lock) == 0
