from __future__ import annotations

import logging
from typing import Any

from sqlmodel import Session


logger = logging.getLogger(__name__)

_PENDING_KEY = "pending_events"


def emit(event: str, **fields: Any) -> None:
    """Log an observability event; the record carries `event` and `fields`."""
    details = " ".join(f"{k}={v}" for k, v in fields.items())
    logger.info("%s %s", event, details, extra={"event": event, "fields": fields})


def defer(session: Session, event: str, **fields: Any) -> None:
    """Queue an event until ``session`` commits; a rollback discards it."""
    session.info.setdefault(_PENDING_KEY, []).append((event, fields))


def flush_pending(session: Session) -> None:
    for event, fields in session.info.pop(_PENDING_KEY, []):
        emit(event, **fields)


def drop_pending(session: Session) -> None:
    session.info.pop(_PENDING_KEY, None)
