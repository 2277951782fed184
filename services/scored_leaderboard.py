from __future__ import annotations

from typing import Iterable

from services.leaderboard_models import (
    LEADERBOARD_SIZE,
    GameType,
    Match,
    ScoredLeaderboardEntry,
    require_scored,
)


def entry_from_match(match: Match) -> ScoredLeaderboardEntry:
    result = require_scored(match)
    return ScoredLeaderboardEntry(
        occurred_at=match.occurred_at,
        player=result.player,
        score=result.score,
    )


def _sort_key(game_type: GameType):
    if game_type is GameType.LOW_SCORE:
        return lambda entry: (entry.score, entry.occurred_at)
    if game_type is GameType.HIGH_SCORE:
        # Negating keeps the earlier timestamp ahead on equal scores.
        return lambda entry: (-entry.score, entry.occurred_at)
    raise ValueError(f"{game_type!r} is not a scored game type.")


def update_scored_leaderboard(
    leaderboard: list[ScoredLeaderboardEntry],
    match: Match,
    *,
    game_type: GameType,
    size: int = LEADERBOARD_SIZE,
) -> list[ScoredLeaderboardEntry]:
    """
    Fold one scored match into a leaderboard and return the new, bounded board.

    One entry per match: a player who scores twice may hold two places.
    """
    combined = [entry_from_match(match), *leaderboard]
    return sorted(combined, key=_sort_key(game_type))[:size]


def build_scored_leaderboard(
    matches: Iterable[Match],
    *,
    game_type: GameType,
    size: int = LEADERBOARD_SIZE,
) -> list[ScoredLeaderboardEntry]:
    # Newest first so exact ties come out the way repeated update_scored_leaderboard calls leave them.
    ordered = list(reversed(sorted(matches, key=lambda match: match.occurred_at)))
    entries = [entry_from_match(match) for match in ordered]
    return sorted(entries, key=_sort_key(game_type))[:size]
