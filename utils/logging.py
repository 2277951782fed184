from __future__ import annotations

import logging
from typing import Any


def _event_context(
    *,
    event_id: str,
    operation: str,
    game_ids: list[Any],
    duration_ms: float | None,
) -> dict[str, Any]:
    return {
        "event_id": event_id,
        "operation": operation,
        "game_ids": [str(game_id) for game_id in game_ids],
        "duration_ms": round(duration_ms, 1) if duration_ms is not None else None,
    }


def log_match_event(
    *,
    event_id: str,
    operation: str,
    status: str,
    game_ids: list[Any] | None = None,
    duration_ms: float | None = None,
) -> None:
    """
    Emit a structured log line for a handled match lifecycle event.
    """
    ctx = _event_context(
        event_id=event_id,
        operation=operation,
        game_ids=game_ids or [],
        duration_ms=duration_ms,
    )
    logging.info(
        "match event status=%s operation=%s event=%s games=%s duration_ms=%s",
        status,
        ctx["operation"],
        ctx["event_id"],
        ",".join(ctx["game_ids"]) or "-",
        ctx["duration_ms"],
        extra=ctx,
    )
