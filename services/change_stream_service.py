from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Mapping

from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import OperationFailure, PyMongoError

from config import Settings
from database import get_database, get_matches_collection, get_meta_collection
from services.leaderboard_models import MalformedMatchError
from services.match_event_service import (
    OPERATION_CREATE,
    OPERATION_DELETE,
    OPERATION_UPDATE,
    MatchEventResult,
    handle_match_event,
)
from services.recovery_service import ReconcileResult, reconcile_leaderboards
from utils.errors import log_event_error, new_error_id

# Change stream operation types mapped onto match lifecycle operations.
OPERATION_BY_CHANGE_TYPE: dict[str, str] = {
    "insert": OPERATION_CREATE,
    "update": OPERATION_UPDATE,
    "replace": OPERATION_UPDATE,
    "delete": OPERATION_DELETE,
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def resume_token_key(settings: Settings) -> str:
    return f"resume_token:{settings.worker_name}:{settings.matches_collection}"


def enable_pre_images(settings: Settings, *, database: Database | None = None) -> bool:
    """
    Turn on change stream pre-images for the matches collection.

    Needs MongoDB 6.0+ and collMod privileges; returns False (and logs) when the
    server refuses, in which case update/delete events fall back to reconciling.
    """
    if database is None:
        database = get_database(settings)
    try:
        database.command(
            "collMod",
            settings.matches_collection,
            changeStreamPreAndPostImages={"enabled": True},
        )
    except OperationFailure as exc:
        logging.getLogger(__name__).warning(
            "Could not enable change stream pre-images collection=%s code=%s error=%s",
            settings.matches_collection,
            exc.code,
            exc,
        )
        return False
    return True


def event_id_for_change(change: Mapping[str, Any]) -> str | None:
    operation = OPERATION_BY_CHANGE_TYPE.get(change.get("operationType", ""))
    if operation == OPERATION_CREATE:
        # Creation events are keyed by match id so a replayed insert is still a duplicate.
        return None
    token = change.get("_id") or {}
    data = token.get("_data") if isinstance(token, Mapping) else token
    if not data:
        return None
    return f"{operation}:{data}"


class MatchChangeStream:
    """
    Feeds match lifecycle events from a MongoDB change stream into the event ledger.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        matches: Collection | None = None,
        meta: Collection | None = None,
        games: Collection | None = None,
        events: Collection | None = None,
        dead_letters: Collection | None = None,
    ) -> None:
        self.settings = settings
        self.matches = matches if matches is not None else get_matches_collection(settings)
        self.meta = meta if meta is not None else get_meta_collection(settings)
        self.games = games
        self.events = events
        self.dead_letters = dead_letters
        self.failures = 0
        self.events_handled = 0
        self.last_event_at: datetime | None = None
        self._log = logging.getLogger(__name__)

    def load_resume_token(self) -> Any:
        doc = self.meta.find_one({"_id": resume_token_key(self.settings)})
        return doc.get("token") if doc else None

    def save_resume_token(self, token: Any) -> None:
        if token is None:
            return
        self.meta.update_one(
            {"_id": resume_token_key(self.settings)},
            {"$set": {"token": token, "updated_at": _now()}},
            upsert=True,
        )

    def clear_resume_token(self) -> None:
        self.meta.delete_one({"_id": resume_token_key(self.settings)})

    def _reconcile(self, reason: str) -> ReconcileResult:
        self._log.warning("Reconciling all leaderboards reason=%s", reason)
        return reconcile_leaderboards(
            self.settings,
            games=self.games,
            matches=self.matches,
        )

    def handle_change(self, change: Mapping[str, Any]) -> MatchEventResult | ReconcileResult | None:
        change_type = change.get("operationType")
        operation = OPERATION_BY_CHANGE_TYPE.get(change_type or "")
        if operation is None:
            self._log.info("Ignoring change stream event type=%s", change_type)
            return None

        after = change.get("fullDocument")
        before = change.get("fullDocumentBeforeChange")
        event_id = event_id_for_change(change)
        common = {
            "events": self.events,
            "dead_letters": self.dead_letters,
            "games": self.games,
            "matches": self.matches,
        }

        if operation == OPERATION_CREATE:
            if after is None:
                self._log.warning("Insert event without a document key=%s", change.get("documentKey"))
                return None
            return handle_match_event(self.settings, operation=operation, after=after, **common)

        if operation == OPERATION_UPDATE:
            if after is None:
                # Removed before the lookup ran; the delete event that follows covers it.
                self._log.info("Updated match no longer exists key=%s", change.get("documentKey"))
                return None
            if before is None:
                return self._reconcile("update_without_pre_image")
            return handle_match_event(
                self.settings, operation=operation, event_id=event_id, before=before, after=after, **common
            )

        if before is None:
            return self._reconcile("delete_without_pre_image")
        return handle_match_event(
            self.settings, operation=operation, event_id=event_id, before=before, **common
        )

    def _watch_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {
            "full_document": "updateLookup",
            "max_await_time_ms": self.settings.change_stream_max_await_ms,
        }
        if self.settings.change_stream_pre_images:
            options["full_document_before_change"] = "whenAvailable"
        token = self.load_resume_token()
        if token is not None:
            options["resume_after"] = token
        return options

    def consume(self, stop: threading.Event) -> None:
        """
        Read the stream until `stop` is set or the server closes it.
        """
        with self.matches.watch(**self._watch_options()) as stream:
            self._log.info("Watching collection=%s", self.settings.matches_collection)
            while stream.alive and not stop.is_set():
                change = stream.try_next()
                if change is None:
                    continue
                if change.get("operationType") == "invalidate":
                    self._log.warning("Change stream invalidated; restarting from now.")
                    self.clear_resume_token()
                    return
                try:
                    self.handle_change(change)
                except MalformedMatchError as exc:
                    log_event_error(
                        exc,
                        source="change_stream",
                        event_id=event_id_for_change(change) or str(exc.match_id),
                        error_id=new_error_id(),
                    )
                self.save_resume_token(stream.resume_token)
                self.events_handled += 1
                self.last_event_at = _now()
                self.failures = 0

    def run(self, stop: threading.Event) -> None:
        """
        Consume with reconnects. Gives up after `max_retries` consecutive store failures.
        """
        while not stop.is_set():
            try:
                self.consume(stop)
            except PyMongoError as exc:
                self.failures += 1
                if self.failures > self.settings.max_retries:
                    self._log.error(
                        "Change stream giving up after %s consecutive failures.", self.failures - 1
                    )
                    raise
                delay = self.settings.retry_delay_seconds * self.failures
                self._log.warning(
                    "Change stream error attempt=%s retry_in=%ss error=%s",
                    self.failures,
                    delay,
                    exc,
                )
                stop.wait(delay)
        self._log.info("Change stream stopped handled=%s", self.events_handled)
