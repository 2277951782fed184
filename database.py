from __future__ import annotations

import logging
import re

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from config import Settings, load_settings

INVALID_DB_NAME_PATTERN = re.compile(r'[\\/\.\s"$\x00]')
_CLIENT: MongoClient | None = None

META_COLLECTION_NAME = "_meta"

# Collections that are not renamed through settings.
COLLECTION_BY_RECORD_TYPE: dict[str, str] = {
    "match_event": "match_events",
    "match_event_dead_letter": "match_event_dead_letters",
    "worker_heartbeat": "worker_heartbeats",
    "meta": META_COLLECTION_NAME,
}

MATCH_EVENT_TTL_DAYS = 30


def _require_value(value: str | None, name: str) -> str:
    if not value:
        raise RuntimeError(f"{name} is required for database access.")
    return value


def _normalize_db_name(name: str) -> str:
    normalized = INVALID_DB_NAME_PATTERN.sub("_", name.strip())
    if not normalized:
        raise RuntimeError("MONGODB_DB_NAME resolved to empty after sanitization.")
    if len(normalized.encode("utf-8")) > 63:
        raise RuntimeError("MONGODB_DB_NAME exceeds MongoDB length limits.")
    if normalized != name:
        logging.warning(
            "Normalized MONGODB_DB_NAME from %r to %r to satisfy MongoDB naming rules.",
            name,
            normalized,
        )
    return normalized


def _settings_or_default(settings: Settings | None) -> Settings:
    return settings or load_settings()


def get_client(settings: Settings | None = None) -> MongoClient:
    global _CLIENT
    if _CLIENT is not None:
        return _CLIENT
    settings = _settings_or_default(settings)
    uri = _require_value(settings.mongodb_uri, "MONGODB_URI")
    _CLIENT = MongoClient(uri, serverSelectionTimeoutMS=5000)
    return _CLIENT


def get_database(settings: Settings | None = None) -> Database:
    settings = _settings_or_default(settings)
    return get_client(settings)[_normalize_db_name(settings.mongodb_db_name)]


def get_collection(
    settings: Settings | None = None,
    *,
    name: str | None = None,
    record_type: str | None = None,
) -> Collection:
    settings = _settings_or_default(settings)
    if name is not None and record_type is not None:
        raise RuntimeError("Pass only one of `name` or `record_type` to get_collection().")
    if record_type is not None:
        if record_type == "game":
            name = settings.games_collection
        elif record_type == "match":
            name = settings.matches_collection
        else:
            mapped = COLLECTION_BY_RECORD_TYPE.get(record_type)
            if not mapped:
                raise RuntimeError(
                    f"Unknown record_type {record_type!r}; update COLLECTION_BY_RECORD_TYPE."
                )
            name = mapped
    if name is None:
        raise RuntimeError("get_collection() needs a collection `name` or `record_type`.")
    return get_database(settings)[name]


def get_games_collection(settings: Settings | None = None) -> Collection:
    return get_collection(settings, record_type="game")


def get_matches_collection(settings: Settings | None = None) -> Collection:
    return get_collection(settings, record_type="match")


def get_meta_collection(settings: Settings | None = None) -> Collection:
    return get_collection(settings, record_type="meta")


def ping(settings: Settings | None = None) -> None:
    client = get_client(settings)
    client.admin.command("ping")


def close_client() -> None:
    """
    Close the cached Mongo client (used during graceful shutdown).
    """
    global _CLIENT
    if _CLIENT is not None:
        _CLIENT.close()
        _CLIENT = None


def ensure_leaderboard_indexes(settings: Settings | None = None) -> list[str]:
    """
    Create/update the indexes the leaderboard worker relies on.
    """
    settings = _settings_or_default(settings)
    indexes: list[str] = []

    games = get_games_collection(settings)
    indexes.append(games.create_index([("game_type", 1)], name="idx_game_type"))

    matches = get_matches_collection(settings)
    indexes.append(
        matches.create_index(
            [("game", 1), ("occurred_at", 1)],
            name="idx_matches_by_game",
        )
    )

    ttl_seconds = MATCH_EVENT_TTL_DAYS * 24 * 60 * 60
    events = get_collection(settings, record_type="match_event")
    indexes.append(events.create_index("received_at", expireAfterSeconds=ttl_seconds, name="ttl_received_at"))
    indexes.append(events.create_index("status", name="idx_status"))
    dead_letters = get_collection(settings, record_type="match_event_dead_letter")
    indexes.append(
        dead_letters.create_index("received_at", expireAfterSeconds=ttl_seconds, name="ttl_received_at")
    )

    return indexes
