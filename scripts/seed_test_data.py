"""
Seed demo games and matches into MongoDB for local development.

Usage:
  set MONGODB_URI=...
  python -m scripts.seed_test_data --tag leaderboard-demo --purge
  python -m scripts.seed_test_data --tag leaderboard-demo --recompute  # without a running worker
"""

from __future__ import annotations

import argparse
import logging
import random
from datetime import datetime, timedelta, timezone
from typing import Any

from pymongo.collection import Collection

from config import load_settings
from database import get_games_collection, get_matches_collection
from migrations import apply_migrations
from services.leaderboard_models import GameType
from services.recovery_service import reconcile_leaderboards

PLAYERS = [f"seed-player-{idx}" for idx in range(1, 16)]


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed demo games and matches.")
    parser.add_argument(
        "--tag",
        type=str,
        default="leaderboard-demo",
        help="Seed tag stored on documents (used for idempotent re-seeding).",
    )
    parser.add_argument(
        "--purge",
        action="store_true",
        help="Delete existing documents with the same seed tag before inserting.",
    )
    parser.add_argument("--matches", type=int, default=40, help="Matches to insert per game.")
    parser.add_argument("--random-seed", type=int, default=7, help="Seed for the match generator.")
    parser.add_argument(
        "--recompute",
        action="store_true",
        help="Rebuild the seeded leaderboards here instead of waiting for the worker.",
    )
    return parser.parse_args()


def _delete_seeded(col: Collection, *, tag: str) -> int:
    result = col.delete_many({"seed_tag": tag})
    return int(result.deleted_count or 0)


def _seed_game(games: Collection, *, tag: str, game_type: GameType, now: datetime) -> str:
    game_id = f"seed:{tag}:{game_type.value.lower()}"
    games.replace_one(
        {"_id": game_id},
        {
            "_id": game_id,
            "title": f"[SEED:{tag}] {game_type.value.replace('_', ' ').title()}",
            "game_type": game_type.value,
            "leaderboard": [],
            "created_at": now,
            "seed_tag": tag,
        },
        upsert=True,
    )
    return game_id


def _match_docs(
    game_id: str,
    game_type: GameType,
    *,
    count: int,
    tag: str,
    now: datetime,
    rng: random.Random,
) -> list[dict[str, Any]]:
    docs: list[dict[str, Any]] = []
    start = now - timedelta(hours=count)
    for idx in range(count):
        if game_type is GameType.RANKED:
            winner, loser = rng.sample(PLAYERS, 2)
            result: dict[str, Any] = {"winner": winner, "loser": loser}
        else:
            result = {"player": rng.choice(PLAYERS), "score": rng.randint(10, 5000)}
        docs.append(
            {
                "game": game_id,
                "occurred_at": start + timedelta(hours=idx),
                "result": result,
                "seed_tag": tag,
            }
        )
    return docs


def main() -> None:
    args = _parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    settings = load_settings()
    apply_migrations(settings=settings, logger=logging.getLogger(__name__))

    seed_tag = str(args.tag).strip() or "leaderboard-demo"
    now = datetime.now(timezone.utc).replace(microsecond=0)
    rng = random.Random(args.random_seed)
    games = get_games_collection(settings)
    matches = get_matches_collection(settings)

    if args.purge:
        deleted = _delete_seeded(matches, tag=seed_tag) + _delete_seeded(games, tag=seed_tag)
        logging.info("Purged %s seeded docs (seed_tag=%s).", deleted, seed_tag)

    game_ids = []
    for game_type in GameType:
        game_id = _seed_game(games, tag=seed_tag, game_type=game_type, now=now)
        docs = _match_docs(game_id, game_type, count=args.matches, tag=seed_tag, now=now, rng=rng)
        if docs:
            matches.insert_many(docs)
        game_ids.append(game_id)
        logging.info("Seeded game=%s type=%s matches=%s", game_id, game_type.value, len(docs))

    if args.recompute:
        result = reconcile_leaderboards(settings, games=games, matches=matches, game_ids=game_ids)
        logging.info("Recomputed seeded leaderboards updated=%s", result.updated)


if __name__ == "__main__":
    main()
