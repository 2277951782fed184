from __future__ import annotations

import logging
from datetime import datetime, timezone

import mongomock

from config.settings import Settings
from database import close_client
from migrations import MIGRATIONS, apply_migrations

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _fake_settings() -> Settings:
    return Settings(mongodb_uri="mongodb://localhost", mongodb_db_name="testdb")


def test_apply_migrations_with_mongomock(monkeypatch) -> None:
    """
    Ensure migrations run, convert old streak data and set schema version using mongomock.
    """
    import database

    # Force mongomock client in place of pymongo.MongoClient
    monkeypatch.setattr(database, "MongoClient", mongomock.MongoClient)
    monkeypatch.setattr(database, "_CLIENT", None)
    settings = _fake_settings()
    db = database.get_database(settings)
    db["games"].insert_one(
        {"_id": "g1", "game_type": 0, "winning_streak": 4, "leaderboard": [{"player": "P9", "date": T0}]}
    )
    db["matches"].insert_one({"game": "g1", "date": T0, "result": {"winner": "P1", "loser": "P2"}})

    logger = logging.getLogger("test_migrations")
    latest = apply_migrations(settings=settings, logger=logger)
    assert latest == len(MIGRATIONS)

    meta = db["_meta"].find_one({"_id": "schema_version"})
    assert meta and meta["version"] == len(MIGRATIONS)
    game = db["games"].find_one({"_id": "g1"})
    assert "winning_streak" not in game
    assert [(e["player"], e["consecutive_wins"]) for e in game["leaderboard"]] == [("P1", 1)]
    assert "idx_matches_by_game" in db["matches"].index_information()

    # Re-running is a no-op.
    assert apply_migrations(settings=settings, logger=logger) == len(MIGRATIONS)

    close_client()


def test_migrations_survive_wrong_result_variant(monkeypatch) -> None:
    import database

    monkeypatch.setattr(database, "MongoClient", mongomock.MongoClient)
    monkeypatch.setattr(database, "_CLIENT", None)
    settings = _fake_settings()
    db = database.get_database(settings)
    db["games"].insert_one({"_id": "scored", "game_type": "LOW_SCORE", "winning_streak": 2, "leaderboard": []})
    db["games"].insert_one({"_id": "ladder", "game_type": "RANKED", "leaderboard": []})
    db["matches"].insert_one({"game": "scored", "occurred_at": T0, "result": {"winner": "A", "loser": "B"}})
    db["matches"].insert_one({"game": "ladder", "occurred_at": T0, "result": {"winner": "A", "loser": "B"}})

    assert apply_migrations(settings=settings, logger=logging.getLogger("test_migrations")) == len(MIGRATIONS)

    assert db["games"].find_one({"_id": "scored"})["leaderboard"] == []
    assert "winning_streak" not in db["games"].find_one({"_id": "scored"})
    assert db["games"].find_one({"_id": "ladder"})["leaderboard"][0]["player"] == "A"

    close_client()
