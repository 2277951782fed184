"""
Run database migrations.

Usage:
  python -m scripts.migrate
"""
from __future__ import annotations

import argparse
import logging

from config import load_settings
from migrations import MIGRATIONS, apply_migrations


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run leaderboard MongoDB migrations.")
    parser.add_argument(
        "--list",
        action="store_true",
        help="Print the known migrations and exit without applying anything.",
    )
    return parser.parse_args()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    args = _parse_args()
    if args.list:
        for version, description, _ in MIGRATIONS:
            print(f"{version}: {description}")
        return
    settings = load_settings()
    latest = apply_migrations(settings=settings, logger=logging.getLogger(__name__))
    logging.info("Migrations complete. Current version: %s", latest)


if __name__ == "__main__":
    main()
