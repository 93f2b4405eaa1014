"""Keyed lock: same key serialises, different keys run concurrently."""
import asyncio

import pytest

from forum.locks import KeyedLock


@pytest.mark.asyncio
async def test_same_key_is_serialised():
    locks = KeyedLock()
    events: list[str] = []

    async def worker(name: str):
        async with locks.hold("post:1"):
            events.append(f"{name}-in")
            await asyncio.sleep(0.01)
            events.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"), worker("c"))

    # No interleaving: every "in" is immediately followed by its own "out".
    for i in range(0, len(events), 2):
        assert events[i].split("-")[0] == events[i + 1].split("-")[0]
        assert events[i].endswith("-in") and events[i + 1].endswith("-out")


@pytest.mark.asyncio
async def test_different_keys_do_not_block_each_other():
    locks = KeyedLock()
    release = asyncio.Event()
    entered = asyncio.Event()

    async def holder():
        async with locks.hold(1):
            await release.wait()

    async def other():
        async with locks.hold(2):
            entered.set()

    task = asyncio.create_task(holder())
    await asyncio.sleep(0)
    # Key 2 must be acquirable while key 1 is held.
    await asyncio.wait_for(other(), timeout=1)
    assert entered.is_set()

    release.set()
    await task


@pytest.mark.asyncio
async def test_locks_are_dropped_when_idle():
    locks = KeyedLock()
    assert len(locks) == 0

    async with locks.hold("a"):
        assert len(locks) == 1
        async with locks.hold("b"):
            assert len(locks) == 2

    assert len(locks) == 0


@pytest.mark.asyncio
async def test_lock_released_when_body_raises():
    locks = KeyedLock()

    with pytest.raises(RuntimeError):
        async with locks.hold("k"):
            raise RuntimeError("boom")

    assert len(locks) == 0
    async with locks.hold("k"):
        pass
