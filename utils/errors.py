from __future__ import annotations

import logging
import uuid


def log_event_error(
    error: Exception,
    *,
    source: str,
    event_id: str | None = None,
    error_id: str | None = None,
) -> None:
    prefix = f"[error_id={error_id}] " if error_id else ""
    logging.error(
        "%sMatch event error source=%s event=%s type=%s",
        prefix,
        source,
        event_id,
        type(error).__name__,
        exc_info=error,
    )


def new_error_id() -> str:
    return uuid.uuid4().hex[:8]
