"""
In-process counters for handled match events.

The change stream thread records events while the heartbeat job reads them
from another thread, so every access goes through one lock.
"""
from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from typing import Dict, Tuple

LATENCY_BUCKET_MS = 100

_lock = threading.Lock()
_counters: Counter[str] = Counter()
_timings: Counter[str] = Counter()


def _counter_key(operation: str, status: str) -> str:
    return f"match_events.total.{status}.{operation}"


def _latency_key(operation: str, duration_ms: float) -> str:
    floor = int(duration_ms // LATENCY_BUCKET_MS) * LATENCY_BUCKET_MS
    return f"match_events.latency.bucket.{operation}.{floor}ms"


def record_event(operation: str, *, status: str, duration_ms: float | None = None) -> None:
    with _lock:
        _counters[_counter_key(operation, status)] += 1
        if duration_ms is not None:
            _timings[_latency_key(operation, duration_ms)] += 1
    logging.getLogger(__name__).debug(
        "event metric operation=%s status=%s duration_ms=%s",
        operation,
        status,
        "-" if duration_ms is None else f"{duration_ms:.1f}",
    )


def snapshot() -> Tuple[Dict[str, int], Dict[str, int]]:
    with _lock:
        return dict(_counters), dict(_timings)


def reset() -> None:
    with _lock:
        _counters.clear()
        _timings.clear()


def now_ms() -> float:
    return time.perf_counter() * 1000
