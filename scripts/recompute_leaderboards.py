"""
Rebuild stored leaderboards from match history.

Usage:
  python -m scripts.recompute_leaderboards            # every game
  python -m scripts.recompute_leaderboards --game-id 65f0c2...
"""
from __future__ import annotations

import argparse
import logging
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId

from config import load_settings
from services.recovery_service import reconcile_leaderboards


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Recompute leaderboards from stored matches.")
    parser.add_argument(
        "--game-id",
        action="append",
        default=None,
        help="Game id to recompute (repeatable). Defaults to every game.",
    )
    return parser.parse_args()


def _coerce_id(raw: str) -> Any:
    try:
        return ObjectId(raw)
    except InvalidId:
        return raw


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    args = _parse_args()
    settings = load_settings()
    game_ids = [_coerce_id(raw) for raw in args.game_id] if args.game_id else None
    result = reconcile_leaderboards(settings, game_ids=game_ids)
    logging.info(
        "Recompute complete. checked=%s updated=%s skipped=%s failed=%s",
        result.checked,
        result.updated,
        result.skipped,
        result.failed,
    )
    if result.failed:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
