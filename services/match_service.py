"""
Writes games and matches the way the external actors (game clients, admins) do.

Nothing here touches a leaderboard: the worker picks up the resulting change
events and the dispatcher updates the affected game.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pymongo.collection import Collection

from config import Settings
from database import get_games_collection, get_matches_collection
from services.leaderboard_models import (
    GameType,
    LeaderboardEntry,
    MalformedMatchError,
    parse_game,
    parse_game_type,
    parse_match,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def create_game(
    title: str,
    game_type: GameType | str,
    *,
    settings: Settings | None = None,
    games: Collection | None = None,
    game_id: Any = None,
) -> Any:
    resolved = parse_game_type(game_type)
    if resolved is None:
        raise ValueError(f"Unknown game type {game_type!r}.")
    if games is None:
        games = get_games_collection(settings)
    doc: dict[str, Any] = {
        "title": title,
        "game_type": resolved.value,
        "leaderboard": [],
        "created_at": _now(),
    }
    if game_id is not None:
        doc["_id"] = game_id
    return games.insert_one(doc).inserted_id


def get_game(
    game_id: Any,
    *,
    settings: Settings | None = None,
    games: Collection | None = None,
) -> dict[str, Any] | None:
    if games is None:
        games = get_games_collection(settings)
    return games.find_one({"_id": game_id})


def get_leaderboard(
    game_id: Any,
    *,
    settings: Settings | None = None,
    games: Collection | None = None,
) -> list[LeaderboardEntry]:
    doc = get_game(game_id, settings=settings, games=games)
    if doc is None:
        return []
    return parse_game(doc).leaderboard


def _insert_match(doc: dict[str, Any], *, settings: Settings | None, matches: Collection | None) -> Any:
    parse_match(doc)
    if matches is None:
        matches = get_matches_collection(settings)
    return matches.insert_one(doc).inserted_id


def record_scored_match(
    game_id: Any,
    player: Any,
    score: float,
    *,
    occurred_at: datetime | None = None,
    settings: Settings | None = None,
    matches: Collection | None = None,
) -> Any:
    doc = {
        "game": game_id,
        "occurred_at": occurred_at or _now(),
        "result": {"player": player, "score": score},
    }
    return _insert_match(doc, settings=settings, matches=matches)


def record_ranked_match(
    game_id: Any,
    winner: Any,
    loser: Any,
    *,
    occurred_at: datetime | None = None,
    settings: Settings | None = None,
    matches: Collection | None = None,
) -> Any:
    doc = {
        "game": game_id,
        "occurred_at": occurred_at or _now(),
        "result": {"winner": winner, "loser": loser},
    }
    return _insert_match(doc, settings=settings, matches=matches)


def update_match(
    match_id: Any,
    changes: dict[str, Any],
    *,
    settings: Settings | None = None,
    matches: Collection | None = None,
) -> bool:
    """
    Apply `changes` to a stored match. Returns False when the match is missing.

    The edited document is validated before it is written.
    """
    if matches is None:
        matches = get_matches_collection(settings)
    current = matches.find_one({"_id": match_id})
    if current is None:
        return False
    if "_id" in changes and changes["_id"] != match_id:
        raise MalformedMatchError("A match id cannot be changed.", match_id=match_id)
    parse_match({**current, **changes})
    matches.update_one({"_id": match_id}, {"$set": changes})
    return True


def delete_match(
    match_id: Any,
    *,
    settings: Settings | None = None,
    matches: Collection | None = None,
) -> bool:
    if matches is None:
        matches = get_matches_collection(settings)
    return matches.delete_one({"_id": match_id}).deleted_count == 1


def list_matches_for_game(
    game_id: Any,
    *,
    settings: Settings | None = None,
    matches: Collection | None = None,
) -> list[dict[str, Any]]:
    if matches is None:
        matches = get_matches_collection(settings)
    return list(matches.find({"game": game_id}).sort("occurred_at", 1))
