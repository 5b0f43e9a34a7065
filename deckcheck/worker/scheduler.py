"""
Actor scheduler.

Each named job fires on its own fixed interval, aligned to wall-clock multiples
of that interval (cron ``*/N`` seconds). A tick launches the job as its own
task, and the overlap guard skips it while the previous run of the same job is
still in flight. Different jobs never block each other.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

JobFn = Callable[[], Awaitable[Any]]


class OverlapGuard:
    """At most one in-flight run per job name."""

    def __init__(self) -> None:
        self._running: dict[str, bool] = {}

    def is_running(self, job_name: str) -> bool:
        return self._running.get(job_name, False)

    def wrap(self, job_name: str, job_fn: JobFn) -> Callable[[], Awaitable[None]]:
        """Guarded version of *job_fn*; exceptions are logged, never raised."""
        async def _guarded() -> None:
            if self._running.get(job_name):
                logger.info("Skipping %s (previous run still active)", job_name)
                return

            self._running[job_name] = True
            try:
                await job_fn()
            except Exception as e:
                logger.error("%s error: %s", job_name, e, exc_info=True)
            finally:
                self._running[job_name] = False

        _guarded.__name__ = f"guarded_{getattr(job_fn, '__name__', 'job')}"
        return _guarded


_default_guard = OverlapGuard()


def prevent_overlap(job_name: str, job_fn: JobFn) -> Callable[[], Awaitable[None]]:
    """Wrap *job_fn* with the process-wide default guard."""
    return _default_guard.wrap(job_name, job_fn)


def seconds_until_next_tick(interval_seconds: float, now: float | None = None) -> float:
    """Seconds from *now* to the next wall-clock multiple of *interval_seconds*."""
    if now is None:
        now = time.time()
    remainder = now % interval_seconds
    return interval_seconds - remainder


@dataclass
class ScheduledJob:
    name: str
    interval_seconds: float
    run: Callable[[], Awaitable[None]]


class Scheduler:
    def __init__(self, guard: OverlapGuard | None = None) -> None:
        self.guard = guard or OverlapGuard()
        self.jobs: list[ScheduledJob] = []
        self._inflight: set[asyncio.Task] = set()

    def schedule(self, name: str, interval_seconds: float, job_fn: JobFn) -> ScheduledJob:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive for {name!r}")
        job = ScheduledJob(name=name, interval_seconds=interval_seconds, run=self.guard.wrap(name, job_fn))
        self.jobs.append(job)
        logger.info("   Scheduled %s (every %ss)", name, f"{interval_seconds:g}")
        return job

    def fire(self, job: ScheduledJob) -> asyncio.Task:
        """Launch one guarded run of *job* without waiting for it."""
        task = asyncio.create_task(job.run(), name=job.name)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _timer(self, job: ScheduledJob) -> None:
        while True:
            await asyncio.sleep(seconds_until_next_tick(job.interval_seconds))
            self.fire(job)

    async def run_forever(self) -> None:
        """Start every job's timer; runs until the process is stopped."""
        if not self.jobs:
            logger.warning("Scheduler started with no jobs")
        timers = [asyncio.create_task(self._timer(job), name=f"timer:{job.name}") for job in self.jobs]
        logger.info("Scheduler is now running (%s jobs)", len(timers))
        await asyncio.gather(*timers)
