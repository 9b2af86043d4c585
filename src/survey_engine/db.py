from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine

from .config import Settings
from .events import drop_pending, flush_pending


_engine: Optional[Engine] = None
_engine_lock = threading.Lock()


def make_engine(database_url: str, *, echo: bool = False) -> Engine:
    is_sqlite = database_url.startswith("sqlite")
    # Writers wait on each other instead of failing fast
    connect_args = {"check_same_thread": False, "timeout": 30} if is_sqlite else {}
    engine = create_engine(database_url, echo=echo, pool_pre_ping=True, connect_args=connect_args)

    if is_sqlite:
        @event.listens_for(engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
            cur = dbapi_connection.cursor()
            cur.execute("PRAGMA journal_mode=WAL;")
            cur.execute("PRAGMA synchronous=NORMAL;")
            cur.execute("PRAGMA foreign_keys=ON;")
            cur.close()

    return engine


# Events queued with events.defer() go out only once their transaction is durable
event.listen(Session, "after_commit", flush_pending)
event.listen(Session, "after_rollback", drop_pending)


def configure(database_url: str, *, echo: bool = False) -> Engine:
    """Replace the process-wide engine, disposing the previous one."""
    global _engine
    with _engine_lock:
        if _engine is not None:
            _engine.dispose()
        _engine = make_engine(database_url, echo=echo)
        return _engine


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        with _engine_lock:
            if _engine is None:
                settings = Settings()
                _engine = make_engine(settings.database_url, echo=settings.sql_echo)
    return _engine


def init_db() -> None:
    """Create tables if they do not exist."""
    from . import models  # noqa: F401  registers tables on the metadata

    SQLModel.metadata.create_all(get_engine())


@contextmanager
def get_session() -> Iterator[Session]:
    with Session(get_engine(), expire_on_commit=False) as session:
        yield session
