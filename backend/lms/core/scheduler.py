"""
Periodic background jobs on the event loop.

Each registered job runs in its own asyncio task: run, sleep ``interval``,
repeat. ``stop()`` cancels the tasks and waits for them, so shutdown never
leaves a job half way through a commit it has not started awaiting.

Usage:
    scheduler = PeriodicScheduler()
    scheduler.add_job("overdue-sweep", run_overdue_sweep, interval=3600)
    await scheduler.start()
    ...
    await scheduler.stop()
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Awaitable[object]]


@dataclass
class Job:
    name: str
    func: JobFunc
    interval: float
    run_immediately: bool = True
    runs: int = 0
    failures: int = 0


class PeriodicScheduler:
    """Runs named coroutine functions on fixed intervals."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks.values())

    @property
    def jobs(self) -> list[Job]:
        return list(self._jobs.values())

    def add_job(
        self,
        name: str,
        func: JobFunc,
        interval: float,
        run_immediately: bool = True,
    ) -> None:
        """
        Register a job. Must be called before start().

        Raises:
            ValueError: Duplicate name or non-positive interval
        """
        if name in self._jobs:
            raise ValueError(f"Job '{name}' is already registered")
        if interval <= 0:
            raise ValueError("Job interval must be positive")
        self._jobs[name] = Job(
            name=name,
            func=func,
            interval=interval,
            run_immediately=run_immediately,
        )

    async def start(self) -> None:
        """Start one task per registered job."""
        if self.running:
            return
        for job in self._jobs.values():
            self._tasks[job.name] = asyncio.create_task(
                self._run_forever(job),
                name=f"scheduler:{job.name}",
            )
        logger.info(f"Scheduler started with {len(self._tasks)} job(s)")

    async def stop(self) -> None:
        """Cancel all job tasks and wait until they have finished."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Scheduler stopped")

    async def run_job(self, job: Job) -> None:
        """Run a job once. Errors are logged and counted, never raised."""
        try:
            await job.func()
            job.runs += 1
        except asyncio.CancelledError:
            raise
        except Exception:
            job.failures += 1
            logger.exception(f"Scheduled job '{job.name}' failed")

    async def _run_forever(self, job: Job) -> None:
        if not job.run_immediately:
            await asyncio.sleep(job.interval)
        while True:
            await self.run_job(job)
            await asyncio.sleep(job.interval)
