"""Statistics aggregator: keeps ``survey_stats`` equal to the live vote count.

Every hook runs inside the caller's session so that the vote row and the
counter bump commit together. Counter writes are single statements
(``INSERT ... ON CONFLICT DO UPDATE`` where the dialect has it) so concurrent
voters never lose an increment. Events raised by the hooks are held on the
session and only emitted once the surrounding transaction has committed,
whoever commits it.
"""
from __future__ import annotations

import logging
import time
from datetime import date
from typing import Any, Callable, Dict, Optional, TypeVar

from sqlalchemy import func, insert, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select
from sqlmodel.sql.expression import SelectOfScalar

from . import clock
from .config import Settings
from .db import get_session
from .errors import DanglingReference, TransientWriteError
from .events import defer
from .models import AnswerOption, Question, Survey, SurveyStats, Vote


logger = logging.getLogger(__name__)

T = TypeVar("T")

_UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}
# SQLSTATE serialization_failure / deadlock_detected
_PG_CONFLICT_CODES = {"40001", "40P01"}


def _is_write_conflict(exc: OperationalError) -> bool:
    if getattr(exc.orig, "pgcode", None) in _PG_CONFLICT_CODES:
        return True
    message = str(exc.orig).lower()
    return "locked" in message or "busy" in message


def run_stats_write(operation: str, work: Callable[[Session], T], *, settings: Optional[Settings] = None) -> T:
    """Run ``work`` in its own transaction, retrying on lock conflicts.

    Only conflicts reported by the store are retried; any other error rolls
    back and propagates on the first attempt.
    """
    settings = settings or Settings()
    attempts = settings.write_max_retries
    last_error: Optional[OperationalError] = None
    for attempt in range(1, attempts + 1):
        with get_session() as session:
            try:
                result = work(session)
                session.commit()
            except OperationalError as exc:
                session.rollback()
                if not _is_write_conflict(exc):
                    raise
                last_error = exc
                logger.warning("%s conflicted (attempt %d/%d): %s", operation, attempt, attempts, exc.orig)
            except Exception:
                session.rollback()
                raise
            else:
                return result
        if attempt < attempts:
            time.sleep(settings.write_retry_backoff * attempt)
    raise TransientWriteError(operation, attempts) from last_error


def live_vote_count(survey_id: int) -> SelectOfScalar[int]:
    """SELECT counting the votes whose option belongs to ``survey_id``."""
    return (
        select(func.count(Vote.id))
        .join(AnswerOption, AnswerOption.id == Vote.option_id)
        .join(Question, Question.id == AnswerOption.question_id)
        .where(Question.survey_id == survey_id)
    )


def _upsert_stats(session: Session, survey_id: int, *, inserted: Any, on_conflict: Dict[str, Any]) -> None:
    """Insert ``inserted`` or apply ``on_conflict``; a None there reuses the inserted value."""
    table = SurveyStats.__table__  # type: ignore[attr-defined]
    values = {"survey_id": survey_id, **inserted}
    dialect = session.get_bind().dialect.name
    upsert = _UPSERT_INSERTS.get(dialect)
    if upsert is not None:
        stmt = upsert(table).values(**values)
        conflict_set = {
            name: (stmt.excluded[name] if expr is None else expr) for name, expr in on_conflict.items()
        }
        session.exec(stmt.on_conflict_do_update(index_elements=[table.c.survey_id], set_=conflict_set))  # type: ignore[call-overload]
        return
    # No native upsert: a lost insert race surfaces as IntegrityError to the caller
    conflict_set = {name: (values[name] if expr is None else expr) for name, expr in on_conflict.items()}
    result = session.exec(update(table).where(table.c.survey_id == survey_id).values(**conflict_set))  # type: ignore[call-overload]
    if result.rowcount == 0:
        session.exec(insert(table).values(**values))  # type: ignore[call-overload]


def _seed(session: Session, survey_id: int, last_update: date) -> None:
    # total_votes is left alone when the row already exists
    _upsert_stats(
        session,
        survey_id,
        inserted={"total_votes": 0, "last_update": last_update},
        on_conflict={"last_update": None},
    )


def on_survey_created(session: Session, survey: Survey) -> None:
    _seed(session, survey.id, survey.created_on)


def on_survey_activated(session: Session, survey: Survey, activated_on: Optional[date] = None) -> None:
    activated_on = activated_on or clock.today()
    _seed(session, survey.id, activated_on)
    defer(
        session,
        "survey_activated",
        survey_id=survey.id,
        title=survey.title,
        activated_on=activated_on.isoformat(),
    )


def resolve_survey_id(session: Session, vote: Vote) -> int:
    option = session.get(AnswerOption, vote.option_id)
    if option is None:
        raise DanglingReference("option", vote.option_id, f"vote #{vote.id}")
    question = session.get(Question, option.question_id)
    if question is None:
        raise DanglingReference("question", option.question_id, f"option #{option.id}")
    survey = session.get(Survey, question.survey_id)
    if survey is None:
        raise DanglingReference("survey", question.survey_id, f"question #{question.id}")
    return survey.id  # type: ignore[return-value]


def on_vote_cast(session: Session, vote: Vote) -> int:
    """Count ``vote`` against its survey; returns the survey id."""
    try:
        survey_id = resolve_survey_id(session, vote)
    except DanglingReference:
        logger.error("Vote #%s cannot be attributed to a survey", vote.id, exc_info=True)
        raise
    table = SurveyStats.__table__  # type: ignore[attr-defined]
    _upsert_stats(
        session,
        survey_id,
        inserted={"total_votes": 1, "last_update": clock.today()},
        on_conflict={"total_votes": table.c.total_votes + 1, "last_update": None},
    )
    return survey_id


def reconcile(survey_id: int, *, settings: Optional[Settings] = None) -> int:
    """Recompute ``total_votes`` for one survey from the votes table.

    The existing stats row is locked before counting, so increments that
    commit concurrently are either included in the count or applied after
    it. When the row is missing there is nothing to lock: a first vote racing
    the recreated row can leave it one short until the next pass. Returns
    the reconciled total.
    """

    def _work(session: Session) -> int:
        stats = session.exec(
            select(SurveyStats).where(SurveyStats.survey_id == survey_id).with_for_update()
        ).first()
        before = stats.total_votes if stats else None
        _upsert_stats(
            session,
            survey_id,
            inserted={"total_votes": live_vote_count(survey_id).scalar_subquery(), "last_update": clock.today()},
            on_conflict={"total_votes": None},
        )
        after = session.exec(
            select(SurveyStats.total_votes).where(SurveyStats.survey_id == survey_id)
        ).one()
        if before != after:
            defer(session, "stats_reconciled", survey_id=survey_id, before=before, after=after)
        return after

    return run_stats_write(f"reconcile survey #{survey_id}", _work, settings=settings)


def reconcile_all(*, settings: Optional[Settings] = None) -> Dict[int, int]:
    with get_session() as session:
        survey_ids = list(session.exec(select(Survey.id).order_by(Survey.id)).all())
    return {sid: reconcile(sid, settings=settings) for sid in survey_ids}
