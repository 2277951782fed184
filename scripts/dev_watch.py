"""
Dev helper: restart the worker when Python files change.

Requires `watchfiles` (installed with the `dev` extra).
Usage:
  python -m scripts.dev_watch
  python -m scripts.dev_watch --path services --path leaderboard_worker
"""
from __future__ import annotations

import argparse
import logging
import shlex
import sys

from watchfiles import PythonFilter, run_process

LOG = logging.getLogger(__name__)
WORKER_COMMAND = f"{shlex.quote(sys.executable)} -m leaderboard_worker"


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the leaderboard worker and reload it on code changes.")
    parser.add_argument(
        "--path",
        action="append",
        default=None,
        help="Directory to watch (repeatable). Defaults to the current directory.",
    )
    parser.add_argument(
        "--debounce-ms",
        type=int,
        default=1600,
        help="Quiet period before a burst of edits triggers one restart.",
    )
    return parser.parse_args()


def _on_reload(changes) -> None:
    paths = sorted({str(path) for _, path in changes})
    LOG.info("Changes detected, restarting worker files=%s", ",".join(paths))


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    args = _parse_args()
    paths = args.path or ["."]
    LOG.info("Watching %s for worker command %r", paths, WORKER_COMMAND)
    reloads = run_process(
        *paths,
        target=WORKER_COMMAND,
        target_type="command",
        callback=_on_reload,
        watch_filter=PythonFilter(),
        debounce=args.debounce_ms,
    )
    LOG.info("Watcher stopped after %s restarts.", reloads)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        pass
