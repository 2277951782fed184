from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pymongo.collection import Collection

from config import Settings
from database import get_games_collection, get_matches_collection
from services.leaderboard_models import (
    Game,
    LeaderboardEntry,
    MalformedMatchError,
    Match,
    leaderboard_to_documents,
    parse_game,
    parse_game_type,
    parse_match,
)
from services.recompute_service import apply_match, recompute_leaderboard

UPDATE_STATUS_UPDATED = "updated"
UPDATE_STATUS_SKIPPED = "skipped"

SKIP_GAME_NOT_FOUND = "game_not_found"
SKIP_UNKNOWN_GAME_TYPE = "unknown_game_type"


@dataclass(frozen=True)
class UpdateResult:
    game_id: Any
    status: str
    reason: str | None = None
    leaderboard: list[LeaderboardEntry] | None = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _skipped(game_id: Any, reason: str) -> UpdateResult:
    logging.getLogger(__name__).info("leaderboard update skipped game=%s reason=%s", game_id, reason)
    return UpdateResult(game_id=game_id, status=UPDATE_STATUS_SKIPPED, reason=reason)


def game_ref(match_doc: dict[str, Any]) -> Any:
    game_id = match_doc.get("game")
    if game_id is None:
        raise MalformedMatchError("Match has no game reference.", match_id=match_doc.get("_id"))
    return game_id


def load_game(game_id: Any, *, games: Collection) -> Game | None:
    doc = games.find_one({"_id": game_id})
    if doc is None:
        return None
    return parse_game(doc)


def load_matches(game_id: Any, *, matches: Collection) -> list[Match]:
    return [parse_match(doc) for doc in matches.find({"game": game_id})]


def write_leaderboard(game_id: Any, leaderboard: list[LeaderboardEntry], *, games: Collection) -> None:
    # Merge-write: every other field on the game document is left alone.
    games.update_one(
        {"_id": game_id},
        {"$set": {"leaderboard": leaderboard_to_documents(leaderboard), "updated_at": _now()}},
    )


def on_match_created(
    match_doc: dict[str, Any],
    *,
    settings: Settings | None = None,
    games: Collection | None = None,
    matches: Collection | None = None,
) -> UpdateResult:
    """
    Fold a newly created match into its game's leaderboard.

    Not idempotent: applying the same creation twice counts the match twice.
    Callers that may see redelivered events go through match_event_service.
    """
    if games is None:
        games = get_games_collection(settings)
    match = parse_match(match_doc)
    try:
        game = load_game(match.game, games=games)
    except ValueError as exc:
        logging.getLogger(__name__).warning(
            "Stored leaderboard unreadable, rebuilding game=%s error=%s", match.game, exc
        )
        return recompute_game(match.game, settings=settings, games=games, matches=matches)
    if game is None:
        return _skipped(match.game, SKIP_GAME_NOT_FOUND)
    if game.game_type is None:
        return _skipped(match.game, SKIP_UNKNOWN_GAME_TYPE)

    leaderboard = apply_match(game.game_type, game.leaderboard, match)
    write_leaderboard(game.game_id, leaderboard, games=games)
    logging.getLogger(__name__).info(
        "leaderboard updated game=%s match=%s entries=%s",
        game.game_id,
        match.match_id,
        len(leaderboard),
    )
    return UpdateResult(game_id=game.game_id, status=UPDATE_STATUS_UPDATED, leaderboard=leaderboard)


def recompute_game(
    game_id: Any,
    *,
    settings: Settings | None = None,
    games: Collection | None = None,
    matches: Collection | None = None,
) -> UpdateResult:
    """
    Rebuild one game's leaderboard from its full match history and store it.
    """
    if games is None:
        games = get_games_collection(settings)
    if matches is None:
        matches = get_matches_collection(settings)
    # The stored board is replaced wholesale, so only the type is read.
    doc = games.find_one({"_id": game_id}, {"game_type": 1})
    if doc is None:
        return _skipped(game_id, SKIP_GAME_NOT_FOUND)
    game_type = parse_game_type(doc.get("game_type"))
    if game_type is None:
        return _skipped(game_id, SKIP_UNKNOWN_GAME_TYPE)

    history = load_matches(game_id, matches=matches)
    leaderboard = recompute_leaderboard(game_type, history)
    write_leaderboard(game_id, leaderboard, games=games)
    logging.getLogger(__name__).info(
        "leaderboard recomputed game=%s matches=%s entries=%s",
        game_id,
        len(history),
        len(leaderboard),
    )
    return UpdateResult(game_id=game_id, status=UPDATE_STATUS_UPDATED, leaderboard=leaderboard)


def on_match_updated(
    before_doc: dict[str, Any] | None,
    after_doc: dict[str, Any],
    *,
    settings: Settings | None = None,
    games: Collection | None = None,
    matches: Collection | None = None,
) -> list[UpdateResult]:
    """
    Recompute after an edit. A match moved to another game refreshes both games.
    """
    game_ids = [game_ref(after_doc)]
    if before_doc is not None:
        previous = game_ref(before_doc)
        if previous != game_ids[0]:
            game_ids.append(previous)
    return [
        recompute_game(game_id, settings=settings, games=games, matches=matches)
        for game_id in game_ids
    ]


def on_match_deleted(
    match_doc: dict[str, Any],
    *,
    settings: Settings | None = None,
    games: Collection | None = None,
    matches: Collection | None = None,
) -> UpdateResult:
    return recompute_game(game_ref(match_doc), settings=settings, games=games, matches=matches)
