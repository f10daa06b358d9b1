import asyncio

import pytest

from services.raffle_locks import RaffleLocks
from utils.exceptions import ConcurrencyConflictError

async def hold_until(locks, raffle_id, entered, release):
    async with locks.hold(raffle_id):
        entered.set()
        await release.wait()

async def test_idle_locks_are_dropped():
    locks = RaffleLocks(max_wait=1.0)

    async with locks.hold(1):
        assert locks.is_locked(1)
        assert len(locks) == 1

    assert not locks.is_locked(1)
    assert len(locks) == 0

async def test_different_raffles_do_not_wait_for_each_other():
    locks = RaffleLocks(max_wait=0.05)

    async with locks.hold(1):
        async with locks.hold(2):
            assert len(locks) == 2

async def test_timed_out_waiter_leaves_lock_usable():
    locks = RaffleLocks(max_wait=0.05)
    entered, release = asyncio.Event(), asyncio.Event()
    holder = asyncio.ensure_future(hold_until(locks, 7, entered, release))
    await entered.wait()

    with pytest.raises(ConcurrencyConflictError):
        async with locks.hold(7, "draw"):
            pass

    release.set()
    await holder
    assert len(locks) == 0
    async with locks.hold(7):
        assert locks.is_locked(7)

async def test_cancelled_waiter_does_not_keep_lock():
    locks = RaffleLocks(max_wait=5.0)
    entered, release = asyncio.Event(), asyncio.Event()
    holder = asyncio.ensure_future(hold_until(locks, 3, entered, release))
    await entered.wait()

    async def wait_for_lock():
        async with locks.hold(3):
            pass

    waiter = asyncio.ensure_future(wait_for_lock())
    await asyncio.sleep(0.01)
    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter

    release.set()
    await holder
    assert len(locks) == 0
    locks.max_wait = 0.05
    async with locks.hold(3):
        pass

async def test_waiters_run_one_at_a_time():
    locks = RaffleLocks(max_wait=1.0)
    inside = []
    overlaps = []

    async def work(n):
        async with locks.hold(5):
            if inside:
                overlaps.append(n)
            inside.append(n)
            await asyncio.sleep(0.01)
            inside.remove(n)

    await asyncio.gather(*(work(n) for n in range(4)))

    assert overlaps == []
    assert len(locks) == 0
