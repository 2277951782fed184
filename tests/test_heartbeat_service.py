from __future__ import annotations

from datetime import datetime, timezone

import mongomock

from config.settings import Settings
from services import heartbeat_service
from utils import metrics


def _settings() -> Settings:
    return Settings(mongodb_uri="mongodb://localhost", mongodb_db_name="testdb", worker_name="worker-a")


def test_heartbeat_upsert_and_read() -> None:
    collection = mongomock.MongoClient()["testdb"]["worker_heartbeats"]
    metrics.reset()
    metrics.record_event("create", status="processed", duration_ms=12.0)
    last = datetime(2024, 1, 1, tzinfo=timezone.utc)

    heartbeat_service.upsert_worker_heartbeat(
        _settings(), last_event_at=last, events_handled=3, collection=collection
    )
    heartbeat_service.upsert_worker_heartbeat(_settings(), events_handled=4, collection=collection)

    doc = heartbeat_service.get_worker_heartbeat(_settings(), collection=collection)
    assert doc["worker"] == "worker-a"
    assert doc["events_handled"] == 4
    assert doc["counters"] == {"match_events:total:processed:create": 1}
    assert collection.count_documents({}) == 1
    assert heartbeat_service.get_worker_heartbeat(_settings(), worker="other", collection=collection) is None
