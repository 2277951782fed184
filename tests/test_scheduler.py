from __future__ import annotations

import asyncio

import pytest

from services.scheduler import Scheduler


def test_runs_sync_and_async_jobs_until_stopped() -> None:
    calls = {"sync": 0, "async": 0}

    def sync_job() -> None:
        calls["sync"] += 1

    async def async_job() -> None:
        calls["async"] += 1

    async def scenario() -> None:
        scheduler = Scheduler()
        scheduler.add_job("sync", 0.01, sync_job)
        scheduler.add_job("async", 0.01, async_job)
        await scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()
        assert all(job.task.done() for job in scheduler.jobs.values())

    asyncio.run(scenario())
    assert calls["sync"] >= 1
    assert calls["async"] >= 1


def test_failing_job_keeps_running(caplog) -> None:
    attempts = []

    def flaky() -> None:
        attempts.append(1)
        raise RuntimeError("boom")

    async def scenario() -> None:
        scheduler = Scheduler()
        scheduler.add_job("flaky", 0.01, flaky)
        await scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()

    asyncio.run(scenario())
    assert len(attempts) >= 2
    assert any("Scheduler job flaky failed" in rec.getMessage() for rec in caplog.records)


def test_add_job_validation() -> None:
    scheduler = Scheduler()
    scheduler.add_job("a", 1.0, lambda: None)
    with pytest.raises(RuntimeError):
        scheduler.add_job("a", 1.0, lambda: None)
    with pytest.raises(ValueError):
        scheduler.add_job("b", 0, lambda: None)
