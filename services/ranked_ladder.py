"""
Head-to-head ladder updates.

Position 0 is the top of the ladder. Every function here returns a new list and
leaves the leaderboard it was given untouched.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Any

from services.leaderboard_models import (
    LEADERBOARD_SIZE,
    Match,
    RankedLeaderboardEntry,
    require_ranked,
)

NOT_RANKED = -1


def ladder_rank(leaderboard: list[RankedLeaderboardEntry], player: Any) -> int:
    """
    Rank counted from the bottom of the ladder: bigger is better.

    A player who is not on the ladder gets NOT_RANKED, which is below every
    present position, so callers can compare ranks without special cases.
    """
    for rank, entry in enumerate(reversed(leaderboard)):
        if entry.player == player:
            return rank
    return NOT_RANKED


def _index_of(leaderboard: list[RankedLeaderboardEntry], rank: int) -> int:
    return len(leaderboard) - 1 - rank


def apply_ranked_match(
    leaderboard: list[RankedLeaderboardEntry],
    match: Match,
    *,
    size: int = LEADERBOARD_SIZE,
) -> list[RankedLeaderboardEntry]:
    """
    Apply one winner/loser result to the ladder.

    The ladder must reflect every match strictly before this one; applying
    matches out of order gives a different ladder.
    """
    result = require_ranked(match)
    winner_rank = ladder_rank(leaderboard, result.winner)
    loser_rank = ladder_rank(leaderboard, result.loser)

    if winner_rank == NOT_RANKED and loser_rank == NOT_RANKED:
        if len(leaderboard) >= size:
            return list(leaderboard)
        newcomer = RankedLeaderboardEntry(occurred_at=match.occurred_at, player=result.winner)
        return [*leaderboard, newcomer]

    if winner_rank > loser_rank:
        # Defended from above: streak grows, nobody moves.
        winner_idx = _index_of(leaderboard, winner_rank)
        updated = list(leaderboard)
        current = updated[winner_idx]
        updated[winner_idx] = replace(
            current,
            occurred_at=match.occurred_at,
            consecutive_wins=current.consecutive_wins + 1,
        )
        return updated

    prior_streak = 0
    if winner_rank != NOT_RANKED:
        prior_streak = leaderboard[_index_of(leaderboard, winner_rank)].consecutive_wins
    loser_idx = _index_of(leaderboard, loser_rank)
    promoted = RankedLeaderboardEntry(
        occurred_at=match.occurred_at,
        player=result.winner,
        consecutive_wins=prior_streak + 1,
    )
    below = [entry for entry in leaderboard[loser_idx:] if entry.player != result.winner]
    return [*leaderboard[:loser_idx], promoted, *below][:size]
