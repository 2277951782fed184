"""
Shapes shared by the leaderboard updaters: games, matches and leaderboard entries.

Documents stored in MongoDB are plain dicts; everything in here converts them to
frozen dataclasses (and back) so the updaters only ever see well-typed values.
A match result is a tagged union: ``ScoredResult`` for HIGH_SCORE/LOW_SCORE games
and ``RankedResult`` for RANKED ladder games.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union

LEADERBOARD_SIZE = 10


class GameType(str, Enum):
    RANKED = "RANKED"
    HIGH_SCORE = "HIGH_SCORE"
    LOW_SCORE = "LOW_SCORE"

    @property
    def is_scored(self) -> bool:
        return self is not GameType.RANKED


# Numeric values written by older clients.
_LEGACY_GAME_TYPES: dict[int, GameType] = {
    0: GameType.RANKED,
    1: GameType.HIGH_SCORE,
    2: GameType.LOW_SCORE,
}


class MalformedMatchError(ValueError):
    """Raised when a match document does not have the shape its game expects."""

    def __init__(self, message: str, *, match_id: Any = None) -> None:
        super().__init__(message)
        self.match_id = match_id


@dataclass(frozen=True)
class ScoredResult:
    player: Any
    score: float


@dataclass(frozen=True)
class RankedResult:
    winner: Any
    loser: Any


MatchResult = Union[ScoredResult, RankedResult]


@dataclass(frozen=True)
class Match:
    occurred_at: datetime
    game: Any
    result: MatchResult
    match_id: Any = None


@dataclass(frozen=True)
class ScoredLeaderboardEntry:
    occurred_at: datetime
    player: Any
    score: float

    def to_document(self) -> dict[str, Any]:
        return {"occurred_at": self.occurred_at, "player": self.player, "score": self.score}


@dataclass(frozen=True)
class RankedLeaderboardEntry:
    occurred_at: datetime
    player: Any
    consecutive_wins: int = 1

    def to_document(self) -> dict[str, Any]:
        return {
            "occurred_at": self.occurred_at,
            "player": self.player,
            "consecutive_wins": self.consecutive_wins,
        }


LeaderboardEntry = Union[ScoredLeaderboardEntry, RankedLeaderboardEntry]


@dataclass(frozen=True)
class Game:
    game_id: Any
    game_type: GameType | None
    leaderboard: list[LeaderboardEntry] = field(default_factory=list)
    title: str | None = None


def parse_game_type(value: Any) -> GameType | None:
    """Return the game type, or None when the stored value is not a known variant."""
    if isinstance(value, GameType):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return _LEGACY_GAME_TYPES.get(value)
    if isinstance(value, str):
        try:
            return GameType(value.strip().upper())
        except ValueError:
            return None
    return None


def as_utc(value: datetime) -> datetime:
    # pymongo hands back naive datetimes unless the client is tz_aware.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_score(raw: Any, *, match_id: Any) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise MalformedMatchError(f"Score must be a number, got {raw!r}.", match_id=match_id)
    return raw


def parse_result(raw: Any, *, match_id: Any = None) -> MatchResult:
    if not isinstance(raw, dict):
        raise MalformedMatchError("Match result must be a document.", match_id=match_id)
    if "winner" in raw or "loser" in raw:
        winner = raw.get("winner")
        loser = raw.get("loser")
        if winner is None or loser is None:
            raise MalformedMatchError("Ranked result needs both winner and loser.", match_id=match_id)
        if winner == loser:
            raise MalformedMatchError("Winner and loser must be different players.", match_id=match_id)
        return RankedResult(winner=winner, loser=loser)
    if "player" in raw:
        if raw.get("player") is None:
            raise MalformedMatchError("Scored result needs a player.", match_id=match_id)
        return ScoredResult(player=raw["player"], score=_parse_score(raw.get("score"), match_id=match_id))
    raise MalformedMatchError("Match result is neither scored nor ranked.", match_id=match_id)


def parse_match(doc: dict[str, Any]) -> Match:
    """
    Convert a match document into a Match.

    Accepts the legacy ``date`` field when ``occurred_at`` is absent.
    """
    match_id = doc.get("_id")
    game = doc.get("game")
    if game is None:
        raise MalformedMatchError("Match has no game reference.", match_id=match_id)
    occurred_at = doc.get("occurred_at", doc.get("date"))
    if not isinstance(occurred_at, datetime):
        raise MalformedMatchError("Match has no occurred_at timestamp.", match_id=match_id)
    return Match(
        occurred_at=as_utc(occurred_at),
        game=game,
        result=parse_result(doc.get("result"), match_id=match_id),
        match_id=match_id,
    )


def require_scored(match: Match) -> ScoredResult:
    if not isinstance(match.result, ScoredResult):
        raise MalformedMatchError("Expected a scored result for this game.", match_id=match.match_id)
    return match.result


def require_ranked(match: Match) -> RankedResult:
    if not isinstance(match.result, RankedResult):
        raise MalformedMatchError("Expected a ranked result for this game.", match_id=match.match_id)
    return match.result


def _entry_time(raw: dict[str, Any]) -> datetime:
    value = raw.get("occurred_at", raw.get("date"))
    if not isinstance(value, datetime):
        raise ValueError("Leaderboard entry has no occurred_at timestamp.")
    return as_utc(value)


def parse_leaderboard(raw: Any, game_type: GameType) -> list[LeaderboardEntry]:
    if not raw:
        return []
    if not isinstance(raw, list):
        raise ValueError("Leaderboard must be a list.")
    entries: list[LeaderboardEntry] = []
    for item in raw:
        if not isinstance(item, dict) or item.get("player") is None:
            raise ValueError(f"Malformed leaderboard entry: {item!r}")
        if game_type.is_scored:
            entries.append(
                ScoredLeaderboardEntry(
                    occurred_at=_entry_time(item),
                    player=item["player"],
                    score=_parse_score(item.get("score"), match_id=None),
                )
            )
        else:
            entries.append(
                RankedLeaderboardEntry(
                    occurred_at=_entry_time(item),
                    player=item["player"],
                    consecutive_wins=int(item.get("consecutive_wins") or 1),
                )
            )
    return entries


def parse_game(doc: dict[str, Any]) -> Game:
    game_type = parse_game_type(doc.get("game_type"))
    leaderboard = parse_leaderboard(doc.get("leaderboard"), game_type) if game_type else []
    return Game(
        game_id=doc.get("_id"),
        game_type=game_type,
        leaderboard=leaderboard,
        title=doc.get("title"),
    )


def leaderboard_to_documents(entries: list[LeaderboardEntry]) -> list[dict[str, Any]]:
    return [entry.to_document() for entry in entries]
