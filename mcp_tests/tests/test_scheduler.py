import asyncio

import pytest

from core.scheduler import RequestScheduler


async def _settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_scheduler_caps_concurrency_and_starts_in_fifo_order():
    scheduler = RequestScheduler(max_concurrent=3)
    gates = {i: asyncio.Event() for i in range(5)}
    started = []

    def job(i):
        async def _run():
            started.append(i)
            await gates[i].wait()
            return i
        return _run

    tasks = [asyncio.ensure_future(scheduler.enqueue(job(i))) for i in range(5)]
    await _settle()

    assert started == [0, 1, 2]
    assert scheduler.in_flight == 3
    assert scheduler.queued == 2

    # Finishing the last admitted job frees a slot for the oldest waiter
    gates[2].set()
    await _settle()
    assert started == [0, 1, 2, 3]
    assert scheduler.in_flight == 3

    gates[0].set()
    await _settle()
    assert started == [0, 1, 2, 3, 4]
    assert scheduler.queued == 0

    for g in gates.values():
        g.set()
    assert await asyncio.gather(*tasks) == [0, 1, 2, 3, 4]
    assert scheduler.in_flight == 0


@pytest.mark.asyncio
async def test_scheduler_failure_releases_slot():
    scheduler = RequestScheduler(max_concurrent=1)

    async def boom():
        raise ValueError("nope")

    async def ok():
        return "ok"

    with pytest.raises(ValueError):
        await scheduler.enqueue(boom)

    assert scheduler.in_flight == 0
    assert await scheduler.enqueue(ok) == "ok"


@pytest.mark.asyncio
async def test_scheduler_cancelled_waiter_is_skipped():
    scheduler = RequestScheduler(max_concurrent=1)
    gate = asyncio.Event()
    started = []

    def job(name):
        async def _run():
            started.append(name)
            await gate.wait()
            return name
        return _run

    first = asyncio.ensure_future(scheduler.enqueue(job("first")))
    second = asyncio.ensure_future(scheduler.enqueue(job("second")))
    third = asyncio.ensure_future(scheduler.enqueue(job("third")))
    await _settle()
    assert scheduler.queued == 2

    second.cancel()
    await _settle()
    assert scheduler.queued == 1

    gate.set()
    assert await first == "first"
    assert await third == "third"
    assert started == ["first", "third"]
    assert second.cancelled()
    assert scheduler.in_flight == 0


def test_scheduler_minimum_one_slot():
    assert RequestScheduler(max_concurrent=0).max_concurrent == 1


@pytest.mark.asyncio
async def test_scheduler_waiter_cancelled_after_slot_was_released():
    scheduler = RequestScheduler(max_concurrent=1)
    gate = asyncio.Event()

    async def hold():
        await gate.wait()
        return "held"

    async def never_started():
        raise AssertionError("cancelled waiter must not run")

    first = asyncio.ensure_future(scheduler.enqueue(hold))
    second = asyncio.ensure_future(scheduler.enqueue(never_started))
    await _settle()
    assert scheduler.queued == 1

    # first releases its slot before second sees its cancellation
    gate.set()
    second.cancel()

    assert await first == "held"
    with pytest.raises(asyncio.CancelledError):
        await second
    assert scheduler.queued == 0
    assert scheduler.in_flight == 0
