from __future__ import annotations

import logging

from utils import metrics
from utils.errors import log_event_error, new_error_id
from utils.logging import log_match_event


def test_metrics_counts_and_buckets() -> None:
    metrics.reset()
    metrics.record_event("update", status="processed", duration_ms=250.0)
    metrics.record_event("update", status="processed", duration_ms=20.0)
    metrics.record_event("update", status="duplicate")
    counters, timings = metrics.snapshot()
    assert counters == {
        "match_events.total.processed.update": 2,
        "match_events.total.duplicate.update": 1,
    }
    assert timings == {
        "match_events.latency.bucket.update.200ms": 1,
        "match_events.latency.bucket.update.0ms": 1,
    }
    metrics.reset()
    assert metrics.snapshot() == ({}, {})


def test_log_match_event_includes_context(caplog) -> None:
    caplog.set_level(logging.INFO)
    log_match_event(event_id="create:m1", operation="create", status="processed", game_ids=["g1"], duration_ms=3.14159)
    record = caplog.records[-1]
    assert "event=create:m1" in record.getMessage()
    assert "games=g1" in record.getMessage()
    assert record.duration_ms == 3.1
    assert record.game_ids == ["g1"]


def test_log_event_error_tags_error_id(caplog) -> None:
    error_id = new_error_id()
    assert len(error_id) == 8
    log_event_error(ValueError("bad"), source="test", event_id="e1", error_id=error_id)
    record = caplog.records[-1]
    assert record.levelno == logging.ERROR
    assert f"[error_id={error_id}]" in record.getMessage()
    assert "type=ValueError" in record.getMessage()


def test_metrics_counts_from_several_threads() -> None:
    import threading

    metrics.reset()

    def burst() -> None:
        for _ in range(500):
            metrics.record_event("create", status="processed", duration_ms=5.0)

    threads = [threading.Thread(target=burst) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    counters, timings = metrics.snapshot()
    assert counters["match_events.total.processed.create"] == 2000
    assert timings["match_events.latency.bucket.create.0ms"] == 2000
