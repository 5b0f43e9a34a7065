"""Unit tests for deckcheck.worker.scheduler: overlap guard and interval timers."""
from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from deckcheck.worker.scheduler import (
    OverlapGuard,
    Scheduler,
    prevent_overlap,
    seconds_until_next_tick,
)


# ---------------------------------------------------------------------------
# OverlapGuard
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_second_call_skipped_while_first_pending():
    calls = 0
    release = asyncio.Event()

    async def job():
        nonlocal calls
        calls += 1
        await release.wait()

    guard = OverlapGuard()
    guarded = guard.wrap("Extract PDF Pages", job)

    first = asyncio.create_task(guarded())
    await asyncio.sleep(0)
    assert guard.is_running("Extract PDF Pages")

    await guarded()  # skipped, returns immediately
    assert calls == 1

    release.set()
    await first
    assert not guard.is_running("Extract PDF Pages")

    await guarded()
    assert calls == 2


@pytest.mark.asyncio
async def test_guard_clears_after_exception():
    calls = 0

    async def job():
        nonlocal calls
        calls += 1
        raise RuntimeError("boom")

    guard = OverlapGuard()
    guarded = guard.wrap("Critique Problem Statements", job)

    await guarded()  # exception is logged, not raised
    assert not guard.is_running("Critique Problem Statements")
    await guarded()
    assert calls == 2


@pytest.mark.asyncio
async def test_different_jobs_do_not_block_each_other():
    release = asyncio.Event()
    ran = []

    async def slow():
        ran.append("slow")
        await release.wait()

    async def fast():
        ran.append("fast")

    guard = OverlapGuard()
    slow_task = asyncio.create_task(guard.wrap("A", slow)())
    await asyncio.sleep(0)
    await guard.wrap("B", fast)()
    assert ran == ["slow", "fast"]
    release.set()
    await slow_task


@pytest.mark.asyncio
async def test_prevent_overlap_uses_shared_guard():
    release = asyncio.Event()
    calls = 0

    async def job():
        nonlocal calls
        calls += 1
        await release.wait()

    first = asyncio.create_task(prevent_overlap("shared-job", job)())
    await asyncio.sleep(0)
    # A separately wrapped function under the same name is still guarded.
    await prevent_overlap("shared-job", job)()
    assert calls == 1
    release.set()
    await first


# ---------------------------------------------------------------------------
# Tick alignment
# ---------------------------------------------------------------------------

def test_seconds_until_next_tick_mid_interval():
    assert seconds_until_next_tick(30, now=1000.0) == pytest.approx(20.0)


def test_seconds_until_next_tick_on_boundary_waits_full_interval():
    assert seconds_until_next_tick(30, now=990.0) == pytest.approx(30.0)


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

def test_schedule_rejects_non_positive_interval():
    scheduler = Scheduler()
    with pytest.raises(ValueError):
        scheduler.schedule("bad", 0, lambda: asyncio.sleep(0))


@pytest.mark.asyncio
async def test_fire_runs_guarded_job():
    calls = []

    async def job():
        calls.append(1)

    scheduler = Scheduler()
    job_entry = scheduler.schedule("Extract PDF Pages", 30, job)
    await scheduler.fire(job_entry)
    assert calls == [1]


@pytest.mark.asyncio
async def test_fire_skips_while_previous_run_in_flight():
    release = asyncio.Event()
    calls = 0

    async def job():
        nonlocal calls
        calls += 1
        await release.wait()

    scheduler = Scheduler()
    entry = scheduler.schedule("Critique Problem Statements", 20, job)
    first = scheduler.fire(entry)
    await asyncio.sleep(0)
    await scheduler.fire(entry)
    assert calls == 1
    release.set()
    await first


@pytest.mark.asyncio
async def test_run_forever_fires_jobs_on_ticks():
    calls = 0

    async def job():
        nonlocal calls
        calls += 1

    scheduler = Scheduler()
    scheduler.schedule("tick", 30, job)
    with patch("deckcheck.worker.scheduler.seconds_until_next_tick", return_value=0.01):
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(scheduler.run_forever(), timeout=0.2)
    assert calls >= 1
