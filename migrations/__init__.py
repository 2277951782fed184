from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from database import ensure_leaderboard_indexes, get_database, get_games_collection, get_matches_collection
from services.recovery_service import reconcile_leaderboards

MigrationFunc = Callable[[dict], None]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _meta_collection(db):
    return db["_meta"]


def _get_current_version(db) -> int:
    meta = _meta_collection(db).find_one({"_id": "schema_version"})
    return int(meta["version"]) if meta and "version" in meta else 0


def _set_version(db, version: int, description: str | None = None) -> None:
    _meta_collection(db).update_one(
        {"_id": "schema_version"},
        {"$set": {"version": version, "description": description, "updated_at": _now()}},
        upsert=True,
    )


def _migration_1(context: dict) -> None:
    """
    Ensure indexes for match lookups by game and for the event ledger TTLs.
    """
    ensure_leaderboard_indexes(context["settings"])


def _migration_2(context: dict) -> None:
    """
    Rebuild every leaderboard with per-entry streaks and drop the old game-level streak.
    """
    games = context["games"]
    reconcile_leaderboards(context["settings"], games=games, matches=context["matches"])
    games.update_many({"winning_streak": {"$exists": True}}, {"$unset": {"winning_streak": ""}})


MIGRATIONS: list[tuple[int, str, MigrationFunc]] = [
    (1, "Ensure leaderboard indexes", _migration_1),
    (2, "Recompute leaderboards with per-entry streaks", _migration_2),
]


def apply_migrations(*, settings=None, logger: logging.Logger | None = None) -> int:
    """
    Apply pending migrations in order. Returns the latest version after migration.
    """
    log = logger or logging.getLogger(__name__)
    db = get_database(settings)
    current = _get_current_version(db)
    log.info("Current schema version: %s", current)
    for version, description, func in MIGRATIONS:
        if version <= current:
            continue
        log.info("Applying migration %s: %s", version, description)
        func(
            {
                "db": db,
                "games": get_games_collection(settings),
                "matches": get_matches_collection(settings),
                "settings": settings,
            }
        )
        _set_version(db, version, description)
        log.info("Migration %s applied.", version)
    return _get_current_version(db)
