from __future__ import annotations

import os
import socket
from datetime import datetime, timezone
from typing import Any

from pymongo.collection import Collection

from config import Settings, load_settings
from database import get_collection
from utils.metrics import snapshot


def _settings_or_default(settings: Settings | None) -> Settings:
    return settings or load_settings()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def get_heartbeat_collection(settings: Settings | None = None) -> Collection:
    settings = _settings_or_default(settings)
    return get_collection(settings, record_type="worker_heartbeat")


def upsert_worker_heartbeat(
    settings: Settings | None,
    *,
    worker: str | None = None,
    last_event_at: datetime | None = None,
    events_handled: int | None = None,
    collection: Collection | None = None,
) -> None:
    settings = _settings_or_default(settings)
    worker = worker or settings.worker_name
    counters, _ = snapshot()
    doc: dict[str, Any] = {
        "_id": worker,
        "worker": worker,
        "host": socket.gethostname(),
        "pid": os.getpid(),
        "updated_at": _now(),
        "last_event_at": last_event_at,
        "events_handled": events_handled,
        # Mongo field names may not contain dots.
        "counters": {key.replace(".", ":"): value for key, value in counters.items()},
    }
    if collection is None:
        collection = get_heartbeat_collection(settings)
    collection.update_one({"_id": worker}, {"$set": doc}, upsert=True)


def get_worker_heartbeat(
    settings: Settings | None,
    *,
    worker: str | None = None,
    collection: Collection | None = None,
) -> dict[str, Any] | None:
    settings = _settings_or_default(settings)
    if collection is None:
        collection = get_heartbeat_collection(settings)
    doc = collection.find_one({"_id": worker or settings.worker_name})
    return doc if isinstance(doc, dict) else None
