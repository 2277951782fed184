from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Final

from pymongo import ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from config import Settings
from database import get_collection
from services import leaderboard_service
from services.leaderboard_models import MalformedMatchError
from utils.logging import log_match_event
from utils.metrics import now_ms, record_event

OPERATION_CREATE: Final[str] = "create"
OPERATION_UPDATE: Final[str] = "update"
OPERATION_DELETE: Final[str] = "delete"
MATCH_EVENT_OPERATIONS: Final[frozenset[str]] = frozenset(
    {OPERATION_CREATE, OPERATION_UPDATE, OPERATION_DELETE}
)

EVENT_STATUS_PROCESSED: Final[str] = "processed"
EVENT_STATUS_DUPLICATE: Final[str] = "duplicate"
EVENT_STATUS_IN_PROGRESS: Final[str] = "in_progress"

MATCH_EVENT_PROCESSING_STALE_SECONDS: Final[int] = 600


@dataclass(frozen=True)
class MatchEventResult:
    event_id: str
    operation: str
    status: str
    updates: tuple[leaderboard_service.UpdateResult, ...] = ()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def creation_event_id(match_id: Any) -> str:
    """A match is created exactly once, so its id names the creation event."""
    return f"{OPERATION_CREATE}:{match_id}"


def _dead_letter(
    col: Collection,
    *,
    event_id: str,
    operation: str,
    reason: str,
    payload: dict[str, Any],
) -> None:
    now = _utc_now()
    col.update_one(
        {"_id": event_id},
        {
            "$setOnInsert": {
                "_id": event_id,
                "received_at": now,
                "operation": operation,
                "reason": reason,
                "payload": payload,
            }
        },
        upsert=True,
    )


def _claim(events: Collection, *, event_id: str, operation: str) -> dict[str, Any] | None:
    now = _utc_now()
    stale_before = now - timedelta(seconds=MATCH_EVENT_PROCESSING_STALE_SECONDS)
    try:
        return events.find_one_and_update(
            {
                "_id": event_id,
                "$or": [
                    {"status": {"$nin": ["processing", EVENT_STATUS_PROCESSED]}},
                    {"status": "processing", "processing_started_at": {"$lt": stale_before}},
                ],
            },
            {
                "$set": {
                    "status": "processing",
                    "operation": operation,
                    "processing_started_at": now,
                    "last_seen_at": now,
                },
                "$setOnInsert": {"received_at": now},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        # The event exists but is not claimable: fresh claim elsewhere, or already processed.
        return None


def _dispatch(
    settings: Settings | None,
    *,
    operation: str,
    before: dict[str, Any] | None,
    after: dict[str, Any] | None,
    games: Collection | None,
    matches: Collection | None,
) -> tuple[leaderboard_service.UpdateResult, ...]:
    if operation == OPERATION_CREATE:
        return (leaderboard_service.on_match_created(after, settings=settings, games=games, matches=matches),)
    if operation == OPERATION_UPDATE:
        return tuple(
            leaderboard_service.on_match_updated(
                before, after, settings=settings, games=games, matches=matches
            )
        )
    return (
        leaderboard_service.on_match_deleted(before, settings=settings, games=games, matches=matches),
    )


def handle_match_event(
    settings: Settings | None,
    *,
    operation: str,
    event_id: str | None = None,
    before: dict[str, Any] | None = None,
    after: dict[str, Any] | None = None,
    events: Collection | None = None,
    dead_letters: Collection | None = None,
    games: Collection | None = None,
    matches: Collection | None = None,
) -> MatchEventResult:
    """
    Apply one match lifecycle event at most once.

    `after` is the match as it now stands (create/update), `before` the prior
    snapshot (update/delete). Creation events default to creation_event_id().
    """
    log = logging.getLogger(__name__)
    if operation not in MATCH_EVENT_OPERATIONS:
        raise ValueError(f"Unknown match event operation {operation!r}.")
    if operation in {OPERATION_CREATE, OPERATION_UPDATE} and after is None:
        raise ValueError(f"A {operation} event needs the new match document.")
    if operation == OPERATION_DELETE and before is None:
        raise ValueError("A delete event needs the removed match document.")
    if operation == OPERATION_CREATE and not event_id:
        event_id = creation_event_id(after.get("_id"))
    if not event_id:
        raise ValueError("Match event is missing an event id.")

    if events is None:
        events = get_collection(settings, record_type="match_event")
    if dead_letters is None:
        dead_letters = get_collection(settings, record_type="match_event_dead_letter")

    existing = events.find_one({"_id": event_id}) or {}
    if existing.get("status") == EVENT_STATUS_PROCESSED:
        log.info(
            "match_event_duplicate",
            extra={"event_id": event_id, "operation": operation, "outcome": existing.get("outcome")},
        )
        record_event(operation, status=EVENT_STATUS_DUPLICATE)
        return MatchEventResult(event_id=event_id, operation=operation, status=EVENT_STATUS_DUPLICATE)

    if _claim(events, event_id=event_id, operation=operation) is None:
        current = events.find_one({"_id": event_id}) or {}
        if current.get("status") == EVENT_STATUS_PROCESSED:
            # Finished by another worker between the lookup above and the claim.
            log.info("match_event_duplicate", extra={"event_id": event_id, "operation": operation})
            record_event(operation, status=EVENT_STATUS_DUPLICATE)
            return MatchEventResult(event_id=event_id, operation=operation, status=EVENT_STATUS_DUPLICATE)
        log.info("match_event_in_progress", extra={"event_id": event_id, "operation": operation})
        record_event(operation, status=EVENT_STATUS_IN_PROGRESS)
        return MatchEventResult(event_id=event_id, operation=operation, status=EVENT_STATUS_IN_PROGRESS)

    started = now_ms()
    try:
        updates = _dispatch(
            settings,
            operation=operation,
            before=before,
            after=after,
            games=games,
            matches=matches,
        )
    except Exception as exc:
        events.update_one(
            {"_id": event_id},
            {"$set": {"status": "failed", "failed_at": _utc_now(), "error": str(exc)}},
        )
        if isinstance(exc, MalformedMatchError):
            _dead_letter(
                dead_letters,
                event_id=event_id,
                operation=operation,
                reason="malformed_match",
                payload={"before": before, "after": after, "error": str(exc)},
            )
        record_event(operation, status="failed", duration_ms=now_ms() - started)
        log.exception("match_event_failed", extra={"event_id": event_id, "operation": operation})
        raise

    duration = now_ms() - started
    events.update_one(
        {"_id": event_id},
        {
            "$set": {
                "status": EVENT_STATUS_PROCESSED,
                "processed_at": _utc_now(),
                "outcome": [
                    {"game_id": update.game_id, "status": update.status, "reason": update.reason}
                    for update in updates
                ],
            }
        },
    )
    record_event(operation, status=EVENT_STATUS_PROCESSED, duration_ms=duration)
    log_match_event(
        event_id=event_id,
        operation=operation,
        status=EVENT_STATUS_PROCESSED,
        game_ids=[update.game_id for update in updates],
        duration_ms=duration,
    )
    return MatchEventResult(
        event_id=event_id,
        operation=operation,
        status=EVENT_STATUS_PROCESSED,
        updates=updates,
    )
