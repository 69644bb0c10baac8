import asyncio

import pytest

from utils.keyed_lock import KeyedLock


@pytest.mark.asyncio
async def test_same_key_is_serialized():
    locks = KeyedLock()
    active = 0
    max_active = 0

    async def work():
        nonlocal active, max_active
        async with locks.acquire("flour"):
            active += 1
            max_active = max(max_active, active)
            await asyncio.sleep(0.01)
            active -= 1

    await asyncio.gather(*(work() for _ in range(4)))
    assert max_active == 1


@pytest.mark.asyncio
async def test_different_keys_run_concurrently():
    locks = KeyedLock()
    both_inside = asyncio.Event()
    inside = set()

    async def work(key):
        async with locks.acquire(key):
            inside.add(key)
            if len(inside) == 2:
                both_inside.set()
            await asyncio.wait_for(both_inside.wait(), timeout=1)

    await asyncio.gather(work("flour"), work("sugar"))
    assert inside == {"flour", "sugar"}


@pytest.mark.asyncio
async def test_locks_released_and_dropped():
    locks = KeyedLock()
    async with locks.acquire("flour"):
        assert locks.locked("flour")
        assert len(locks) == 1
    assert not locks.locked("flour")
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_lock_released_on_error():
    locks = KeyedLock()
    with pytest.raises(RuntimeError):
        async with locks.acquire("flour"):
            raise RuntimeError("boom")
    assert len(locks) == 0
    async with locks.acquire("flour"):
        pass
