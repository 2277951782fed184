from __future__ import annotations

from datetime import datetime, timedelta, timezone

import mongomock
import pytest

import database
from config.settings import Settings
from services import match_service
from services.leaderboard_models import GameType, MalformedMatchError

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _settings() -> Settings:
    return Settings(mongodb_uri="mongodb://localhost", mongodb_db_name="testdb")


@pytest.fixture
def settings(monkeypatch) -> Settings:
    monkeypatch.setattr(database, "MongoClient", mongomock.MongoClient)
    monkeypatch.setattr(database, "_CLIENT", None)
    yield _settings()
    database.close_client()


def test_create_and_get_game(settings) -> None:
    game_id = match_service.create_game("Arcade", "high_score", settings=settings)
    doc = match_service.get_game(game_id, settings=settings)
    assert doc["title"] == "Arcade"
    assert doc["game_type"] == "HIGH_SCORE"
    assert doc["leaderboard"] == []
    assert match_service.get_leaderboard(game_id, settings=settings) == []


def test_create_game_rejects_unknown_type(settings) -> None:
    with pytest.raises(ValueError):
        match_service.create_game("Odd", "PUZZLE", settings=settings)


def test_record_matches_only_writes_match_documents(settings) -> None:
    game_id = match_service.create_game("Ladder", GameType.RANKED, settings=settings, game_id="ladder")
    match_service.record_ranked_match(game_id, "P1", "P2", occurred_at=T0 + timedelta(minutes=1), settings=settings)
    match_service.record_ranked_match(game_id, "P2", "P1", occurred_at=T0, settings=settings)

    listed = match_service.list_matches_for_game(game_id, settings=settings)
    assert [m["result"]["winner"] for m in listed] == ["P2", "P1"]
    assert match_service.get_leaderboard(game_id, settings=settings) == []


def test_record_invalid_matches_raise(settings) -> None:
    with pytest.raises(MalformedMatchError):
        match_service.record_ranked_match("g1", "P1", "P1", settings=settings)
    with pytest.raises(MalformedMatchError):
        match_service.record_scored_match("g1", "P1", "ten", settings=settings)
    assert database.get_matches_collection(settings).count_documents({}) == 0


def test_update_and_delete_match(settings) -> None:
    match_id = match_service.record_scored_match("g1", "P1", 10, occurred_at=T0, settings=settings)

    assert match_service.update_match(match_id, {"result": {"player": "P1", "score": 12}}, settings=settings)
    assert match_service.list_matches_for_game("g1", settings=settings)[0]["result"]["score"] == 12
    with pytest.raises(MalformedMatchError):
        match_service.update_match(match_id, {"result": {"winner": "P1", "loser": "P1"}}, settings=settings)
    assert match_service.update_match("missing", {"game": "g2"}, settings=settings) is False

    assert match_service.delete_match(match_id, settings=settings) is True
    assert match_service.delete_match(match_id, settings=settings) is False
