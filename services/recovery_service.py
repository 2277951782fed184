from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pymongo.collection import Collection

from config import Settings, load_settings
from database import ensure_leaderboard_indexes, get_games_collection, get_matches_collection
from services.leaderboard_models import (
    MalformedMatchError,
    leaderboard_to_documents,
    parse_game,
    parse_game_type,
)
from services.leaderboard_service import load_matches, write_leaderboard
from services.recompute_service import recompute_leaderboard


@dataclass
class ReconcileResult:
    checked: int = 0
    updated: int = 0
    skipped: int = 0
    failed: list[Any] = field(default_factory=list)


def _stored_documents(doc: dict[str, Any]) -> list[dict[str, Any]] | None:
    try:
        return leaderboard_to_documents(parse_game(doc).leaderboard)
    except ValueError:
        # Unreadable stored board: always rewrite it.
        return None


def reconcile_leaderboards(
    settings: Settings | None = None,
    *,
    games: Collection | None = None,
    matches: Collection | None = None,
    game_ids: list[Any] | None = None,
) -> ReconcileResult:
    """
    Recompute leaderboards from match history and rewrite the ones that drifted.

    Games with an unknown type are skipped. A game whose history holds a
    malformed match is left untouched and reported in `failed`.
    """
    log = logging.getLogger(__name__)
    if games is None:
        games = get_games_collection(settings)
    if matches is None:
        matches = get_matches_collection(settings)
    query: dict[str, Any] = {"_id": {"$in": game_ids}} if game_ids is not None else {}

    result = ReconcileResult()
    for doc in games.find(query):
        game_id = doc["_id"]
        result.checked += 1
        game_type = parse_game_type(doc.get("game_type"))
        if game_type is None:
            result.skipped += 1
            continue
        try:
            history = load_matches(game_id, matches=matches)
            # Result variants are only checked against the game type here.
            leaderboard = recompute_leaderboard(game_type, history)
        except MalformedMatchError as exc:
            log.warning("Skipping reconcile game=%s match=%s error=%s", game_id, exc.match_id, exc)
            result.failed.append(game_id)
            continue
        if _stored_documents(doc) == leaderboard_to_documents(leaderboard):
            continue
        write_leaderboard(game_id, leaderboard, games=games)
        result.updated += 1
        log.info("Reconciled leaderboard game=%s matches=%s entries=%s", game_id, len(history), len(leaderboard))
    return result


def run_startup_recovery(settings: Settings | None = None, logger: logging.Logger | None = None) -> ReconcileResult:
    """
    Heal state after a restart: recreate indexes and reconcile every leaderboard.
    """
    log = logger or logging.getLogger(__name__)
    settings = settings or load_settings()
    ensure_leaderboard_indexes(settings)
    result = reconcile_leaderboards(settings)
    if result.updated:
        log.warning("Reconciled %s of %s leaderboards that drifted from match history.", result.updated, result.checked)
    if result.failed:
        log.warning("Could not reconcile %s games with malformed matches: %s", len(result.failed), result.failed)
    if not result.updated and not result.failed:
        log.info("Recovery check: no actions needed. games=%s", result.checked)
    return result
