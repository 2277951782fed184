from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Iterable

from . import constants

DEFAULT_DB_NAME = "Leaderboards"
DEFAULT_GAMES_COLLECTION = "games"
DEFAULT_MATCHES_COLLECTION = "matches"
DEFAULT_WORKER_NAME = "leaderboard-worker"


@dataclass(frozen=True)
class Settings:
    mongodb_uri: str
    mongodb_db_name: str = DEFAULT_DB_NAME
    games_collection: str = DEFAULT_GAMES_COLLECTION
    matches_collection: str = DEFAULT_MATCHES_COLLECTION
    worker_name: str = DEFAULT_WORKER_NAME
    heartbeat_interval_seconds: int = 30
    reconcile_interval_seconds: int = 0
    reconcile_on_start: bool = True
    change_stream_max_await_ms: int = 1000
    change_stream_pre_images: bool = True
    max_retries: int = 5
    retry_delay_seconds: int = 1
    feature_flags: set[str] = field(default_factory=set)


def _required_str(name: str, missing: list[str]) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        missing.append(name)
    return value


def _optional_str(name: str) -> str | None:
    raw = os.getenv(name, "").strip()
    return raw or None


def _optional_int_default(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer.") from None


def _optional_str_set(name: str) -> set[str]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return set()
    return {part.strip() for part in raw.split(",") if part.strip()}


def _optional_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off"}:
        return False
    raise RuntimeError(f"{name} must be a boolean (true/false).")


def _format_list(values: Iterable[str]) -> str:
    return ", ".join(sorted(values))


def load_settings() -> Settings:
    """
    Load and validate environment configuration.
    Raises RuntimeError with a consolidated message when required values are missing/invalid.
    """
    missing: list[str] = []

    mongodb_uri = _required_str(constants.MONGODB_URI_ENV, missing)
    if missing:
        raise RuntimeError(f"Missing required config: {_format_list(missing)}")

    heartbeat_interval_seconds = _optional_int_default(
        constants.HEARTBEAT_INTERVAL_SECONDS_ENV, default=30
    )
    reconcile_interval_seconds = _optional_int_default(
        constants.RECONCILE_INTERVAL_SECONDS_ENV, default=0
    )
    change_stream_max_await_ms = _optional_int_default(
        constants.CHANGE_STREAM_MAX_AWAIT_MS_ENV, default=1000
    )
    max_retries = _optional_int_default(constants.MAX_RETRIES_ENV, default=5)
    retry_delay_seconds = _optional_int_default(constants.RETRY_DELAY_SECONDS_ENV, default=1)

    if heartbeat_interval_seconds <= 0:
        raise RuntimeError("HEARTBEAT_INTERVAL_SECONDS must be > 0.")
    if reconcile_interval_seconds < 0:
        raise RuntimeError("RECONCILE_INTERVAL_SECONDS must be >= 0 (0 disables it).")
    if change_stream_max_await_ms <= 0:
        raise RuntimeError("CHANGE_STREAM_MAX_AWAIT_MS must be > 0.")
    if max_retries <= 0:
        raise RuntimeError("MAX_RETRIES must be > 0.")
    if retry_delay_seconds < 0:
        raise RuntimeError("RETRY_DELAY_SECONDS must be >= 0.")

    return Settings(
        mongodb_uri=mongodb_uri,
        mongodb_db_name=_optional_str(constants.MONGODB_DB_NAME_ENV) or DEFAULT_DB_NAME,
        games_collection=_optional_str(constants.GAMES_COLLECTION_ENV) or DEFAULT_GAMES_COLLECTION,
        matches_collection=_optional_str(constants.MATCHES_COLLECTION_ENV)
        or DEFAULT_MATCHES_COLLECTION,
        worker_name=_optional_str(constants.WORKER_NAME_ENV) or DEFAULT_WORKER_NAME,
        heartbeat_interval_seconds=heartbeat_interval_seconds,
        reconcile_interval_seconds=reconcile_interval_seconds,
        reconcile_on_start=_optional_bool(constants.RECONCILE_ON_START_ENV, default=True),
        change_stream_max_await_ms=change_stream_max_await_ms,
        change_stream_pre_images=_optional_bool(constants.CHANGE_STREAM_PRE_IMAGES_ENV, default=True),
        max_retries=max_retries,
        retry_delay_seconds=retry_delay_seconds,
        feature_flags=_optional_str_set(constants.FEATURE_FLAGS_ENV),
    )


def summarize_settings(settings: Settings) -> dict[str, object]:
    """
    Produce a non-secret snapshot of configuration for startup logging.
    """
    return {
        "mongodb_uri_present": bool(settings.mongodb_uri),
        "mongodb_db_name": settings.mongodb_db_name,
        "collections": {
            "games": settings.games_collection,
            "matches": settings.matches_collection,
        },
        "worker_name": settings.worker_name,
        "heartbeat_interval_seconds": settings.heartbeat_interval_seconds,
        "reconcile": {
            "on_start": settings.reconcile_on_start,
            "interval_seconds": settings.reconcile_interval_seconds,
        },
        "change_stream": {
            "max_await_ms": settings.change_stream_max_await_ms,
            "pre_images": settings.change_stream_pre_images,
        },
        "retries": {
            "max_retries": settings.max_retries,
            "retry_delay_seconds": settings.retry_delay_seconds,
        },
        "feature_flags": sorted(settings.feature_flags),
    }
