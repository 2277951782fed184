from __future__ import annotations

import asyncio
import threading

import mongomock

import database
from config.settings import Settings
from leaderboard_worker import __main__ as worker_main


def _settings(**overrides) -> Settings:
    values = {"mongodb_uri": "mongodb://localhost", "mongodb_db_name": "testdb", "worker_name": "w1"}
    values.update(overrides)
    return Settings(**values)


class IdleStream:
    def __init__(self) -> None:
        self.last_event_at = None
        self.events_handled = 0
        self.stopped = False

    def run(self, stop: threading.Event) -> None:
        stop.wait(5)
        self.stopped = stop.is_set()


class BrokenStream(IdleStream):
    def run(self, stop: threading.Event) -> None:
        raise RuntimeError("stream gave up")


def test_register_jobs_adds_reconcile_only_when_enabled() -> None:
    worker = worker_main.LeaderboardWorker(_settings(), stream=IdleStream())
    worker.register_jobs()
    assert set(worker.scheduler.jobs) == {"heartbeat"}

    worker = worker_main.LeaderboardWorker(_settings(reconcile_interval_seconds=60), stream=IdleStream())
    worker.register_jobs()
    assert set(worker.scheduler.jobs) == {"heartbeat", "reconcile"}


def test_shutdown_stops_stream_and_scheduler(monkeypatch) -> None:
    monkeypatch.setattr(database, "MongoClient", mongomock.MongoClient)
    monkeypatch.setattr(database, "_CLIENT", None)
    stream = IdleStream()
    worker = worker_main.LeaderboardWorker(_settings(), stream=stream)

    async def scenario() -> None:
        shutdown = asyncio.Event()
        asyncio.get_running_loop().call_later(0.1, shutdown.set)
        await worker.run(shutdown)

    asyncio.run(scenario())
    assert stream.stopped is True
    assert worker.stop_event.is_set()
    assert all(job.task.done() for job in worker.scheduler.jobs.values())
    doc = database.get_collection(_settings(), record_type="worker_heartbeat").find_one({"_id": "w1"})
    assert doc is not None
    database.close_client()


def test_stream_failure_propagates(monkeypatch) -> None:
    monkeypatch.setattr(database, "MongoClient", mongomock.MongoClient)
    monkeypatch.setattr(database, "_CLIENT", None)
    worker = worker_main.LeaderboardWorker(_settings(), stream=BrokenStream())

    async def scenario() -> None:
        await worker.run(asyncio.Event())

    try:
        asyncio.run(scenario())
    except RuntimeError as exc:
        assert "gave up" in str(exc)
    else:
        raise AssertionError("stream failure was swallowed")
    assert worker.stop_event.is_set()
    database.close_client()
