from __future__ import annotations

from datetime import datetime, timedelta, timezone

import mongomock

from services import recovery_service as rs

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _collections():
    db = mongomock.MongoClient()["test_db"]
    return db["games"], db["matches"]


def _scored(game, player, score, minutes=0):
    return {"game": game, "occurred_at": T0 + timedelta(minutes=minutes), "result": {"player": player, "score": score}}


def test_reconcile_rewrites_only_drifted_games() -> None:
    games, matches = _collections()
    games.insert_one({"_id": "ok", "game_type": "HIGH_SCORE", "leaderboard": []})
    games.insert_one({"_id": "drift", "game_type": "HIGH_SCORE", "leaderboard": []})
    matches.insert_one(_scored("drift", "P1", 10))

    first = rs.reconcile_leaderboards(games=games, matches=matches)
    assert (first.checked, first.updated, first.failed) == (2, 1, [])
    assert "updated_at" not in games.find_one({"_id": "ok"})

    second = rs.reconcile_leaderboards(games=games, matches=matches)
    assert second.updated == 0


def test_reconcile_skips_unknown_types_and_reports_malformed_history() -> None:
    games, matches = _collections()
    games.insert_one({"_id": "odd", "game_type": "PUZZLE"})
    games.insert_one({"_id": "broken", "game_type": "LOW_SCORE", "leaderboard": []})
    matches.insert_one({"game": "broken", "occurred_at": T0, "result": {"player": "P1", "score": None}})

    result = rs.reconcile_leaderboards(games=games, matches=matches)

    assert result.skipped == 1
    assert result.failed == ["broken"]
    assert games.find_one({"_id": "broken"})["leaderboard"] == []


def test_reconcile_limited_to_game_ids() -> None:
    games, matches = _collections()
    games.insert_one({"_id": "a", "game_type": "HIGH_SCORE", "leaderboard": []})
    games.insert_one({"_id": "b", "game_type": "HIGH_SCORE", "leaderboard": []})
    matches.insert_one(_scored("a", "P1", 1))
    matches.insert_one(_scored("b", "P2", 1))

    result = rs.reconcile_leaderboards(games=games, matches=matches, game_ids=["b"])

    assert result.checked == 1
    assert games.find_one({"_id": "a"})["leaderboard"] == []
    assert games.find_one({"_id": "b"})["leaderboard"][0]["player"] == "P2"


def test_reconcile_replaces_unreadable_board() -> None:
    games, matches = _collections()
    games.insert_one({"_id": "g1", "game_type": "RANKED", "leaderboard": "garbage"})
    result = rs.reconcile_leaderboards(games=games, matches=matches)
    assert result.updated == 1
    assert games.find_one({"_id": "g1"})["leaderboard"] == []


def test_reconcile_wrong_result_variant_fails_only_that_game() -> None:
    games, matches = _collections()
    games.insert_one({"_id": "bad", "game_type": "HIGH_SCORE", "leaderboard": []})
    games.insert_one({"_id": "good", "game_type": "HIGH_SCORE", "leaderboard": []})
    matches.insert_one({"game": "bad", "occurred_at": T0, "result": {"winner": "A", "loser": "B"}})
    matches.insert_one(_scored("good", "P1", 42))

    result = rs.reconcile_leaderboards(games=games, matches=matches)

    assert result.failed == ["bad"]
    assert result.updated == 1
    assert games.find_one({"_id": "bad"})["leaderboard"] == []
    assert games.find_one({"_id": "good"})["leaderboard"][0]["player"] == "P1"
