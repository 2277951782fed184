from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Dict, Union

JobFunc = Callable[[], Union[Awaitable[None], None]]


class Job:
    def __init__(self, name: str, interval: float, func: JobFunc) -> None:
        self.name = name
        self.interval = interval
        self.func = func
        self.task: asyncio.Task | None = None


class Scheduler:
    """
    Runs jobs on fixed intervals. Plain functions run in a worker thread so
    blocking pymongo calls never stall the event loop.
    """

    def __init__(self) -> None:
        self.jobs: Dict[str, Job] = {}
        self._running = False

    def add_job(self, name: str, interval: float, func: JobFunc) -> None:
        if name in self.jobs:
            raise RuntimeError(f"Job {name} already exists.")
        if interval <= 0:
            raise ValueError(f"Job {name} needs a positive interval.")
        self.jobs[name] = Job(name, interval, func)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        for job in self.jobs.values():
            job.task = asyncio.create_task(self._run_job(job))

    async def stop(self) -> None:
        self._running = False
        for job in self.jobs.values():
            if job.task:
                job.task.cancel()
        await asyncio.gather(
            *(job.task for job in self.jobs.values() if job.task), return_exceptions=True
        )

    async def _call(self, job: Job) -> None:
        if inspect.iscoroutinefunction(job.func):
            await job.func()
        else:
            await asyncio.to_thread(job.func)

    async def _run_job(self, job: Job) -> None:
        while self._running:
            try:
                await self._call(job)
            except Exception:
                logging.exception("Scheduler job %s failed", job.name)
            await asyncio.sleep(job.interval)
