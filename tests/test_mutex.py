"""Tests for the FIFO mutex."""
import asyncio

import pytest

from token_relay.services.mutex import Mutex


@pytest.mark.asyncio
async def test_uncontended_acquire_is_immediate():
    mutex = Mutex()
    release = await mutex.acquire()
    assert mutex.locked() is True
    assert mutex.waiters == 0
    release()
    assert mutex.locked() is False


@pytest.mark.asyncio
async def test_waiters_granted_in_arrival_order():
    """Three queued callers get the lock in the order they asked, not the order their other work finishes."""
    mutex = Mutex()
    order: list[str] = []
    release = await mutex.acquire()

    async def worker(name: str, busy_for: float):
        got = await mutex.acquire()
        order.append(name)
        # Unrelated suspended work of varying length while holding
        await asyncio.sleep(busy_for)
        got()

    tasks = []
    for name, busy_for in (("first", 0.03), ("second", 0.0), ("third", 0.01)):
        tasks.append(asyncio.create_task(worker(name, busy_for)))
        await asyncio.sleep(0)

    assert mutex.waiters == 3
    release()
    await asyncio.gather(*tasks)
    assert order == ["first", "second", "third"]
    assert mutex.locked() is False


@pytest.mark.asyncio
async def test_release_hands_over_without_freeing():
    mutex = Mutex()
    release = await mutex.acquire()
    waiter = asyncio.create_task(mutex.acquire())
    await asyncio.sleep(0)

    release()
    # Still locked: ownership moved straight to the waiter
    assert mutex.locked() is True
    next_release = await waiter
    assert mutex.waiters == 0
    next_release()
    assert mutex.locked() is False


@pytest.mark.asyncio
async def test_double_release_raises():
    mutex = Mutex()
    release = await mutex.acquire()
    release()
    with pytest.raises(RuntimeError):
        release()


@pytest.mark.asyncio
async def test_cancelled_waiter_is_skipped():
    mutex = Mutex()
    release = await mutex.acquire()
    cancelled = asyncio.create_task(mutex.acquire())
    survivor = asyncio.create_task(mutex.acquire())
    await asyncio.sleep(0)
    assert mutex.waiters == 2

    cancelled.cancel()
    with pytest.raises(asyncio.CancelledError):
        await cancelled
    assert mutex.waiters == 1

    release()
    survivor_release = await survivor
    assert mutex.locked() is True
    survivor_release()
    assert mutex.locked() is False


@pytest.mark.asyncio
async def test_waiter_cancelled_after_handover_passes_lock_on():
    mutex = Mutex()
    release = await mutex.acquire()
    first = asyncio.create_task(mutex.acquire())
    second = asyncio.create_task(mutex.acquire())
    await asyncio.sleep(0)

    release()  # hands to `first`, which has not resumed yet
    first.cancel()
    with pytest.raises(asyncio.CancelledError):
        await first

    second_release = await second
    assert mutex.locked() is True
    second_release()
    assert mutex.locked() is False


@pytest.mark.asyncio
async def test_async_context_manager():
    mutex = Mutex()
    async with mutex:
        assert mutex.locked() is True
    assert mutex.locked() is False
