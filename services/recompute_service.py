from __future__ import annotations

from typing import Iterable

from services.leaderboard_models import (
    LEADERBOARD_SIZE,
    GameType,
    LeaderboardEntry,
    Match,
    RankedLeaderboardEntry,
)
from services.ranked_ladder import apply_ranked_match
from services.scored_leaderboard import build_scored_leaderboard, update_scored_leaderboard


def chronological(matches: Iterable[Match]) -> list[Match]:
    return sorted(matches, key=lambda match: match.occurred_at)


def apply_match(
    game_type: GameType,
    leaderboard: list[LeaderboardEntry],
    match: Match,
    *,
    size: int = LEADERBOARD_SIZE,
) -> list[LeaderboardEntry]:
    """Incremental path: route one match to the updater for its game type."""
    if game_type.is_scored:
        return update_scored_leaderboard(leaderboard, match, game_type=game_type, size=size)
    return apply_ranked_match(leaderboard, match, size=size)


def recompute_leaderboard(
    game_type: GameType,
    matches: Iterable[Match],
    *,
    size: int = LEADERBOARD_SIZE,
) -> list[LeaderboardEntry]:
    """
    Rebuild a leaderboard from a game's complete match history.

    The result matches what apply_match would produce when fed the same
    matches one at a time, oldest first, starting from an empty board. That
    makes it safe to run again on redelivered events.
    """
    ordered = chronological(matches)
    if game_type.is_scored:
        return build_scored_leaderboard(ordered, game_type=game_type, size=size)
    ladder: list[RankedLeaderboardEntry] = []
    for match in ordered:
        ladder = apply_ranked_match(ladder, match, size=size)
    return ladder
