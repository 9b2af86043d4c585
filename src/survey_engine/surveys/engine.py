from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from .. import clock, stats
from ..config import Settings
from ..db import get_session
from ..errors import EmailTaken, NotFound, SurveyHasVotes
from ..events import defer
from ..guard import check_vote_policy
from ..models import AnswerOption, Question, Survey, SurveyStats, User, Vote
from ..validation import validate_survey, validate_user
from .schema import OptionCreate, QuestionCreate, SurveyCreate, SurveyUpdate, UserCreate, UserUpdate


logger = logging.getLogger(__name__)


def _commit_user(session: Session, user: User) -> User:
    session.add(user)
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise EmailTaken(user.email) from exc
    session.refresh(user)
    return user


def create_user(data: UserCreate) -> User:
    user = validate_user(
        User(
            username=data.username,
            email=data.email,
            password=data.password,
            registered_on=data.registered_on,
        )
    )
    with get_session() as session:
        user = _commit_user(session, user)
    logger.info("Registered user #%s <%s>", user.id, user.email)
    return user


def update_user(user_id: int, data: UserUpdate) -> User:
    with get_session() as session:
        user = session.get(User, user_id)
        if not user:
            raise NotFound("user", user_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(user, field, value)
        validate_user(user)
        return _commit_user(session, user)


def create_survey(data: SurveyCreate, *, settings: Optional[Settings] = None) -> Survey:
    """Validate and store a survey, seeding its statistics row in the same transaction."""
    candidate = validate_survey(Survey(**data.model_dump()))

    def _work(session: Session) -> Survey:
        if session.get(User, candidate.owner_id) is None:
            raise NotFound("user", candidate.owner_id)
        survey = Survey(**candidate.model_dump(exclude={"id"}))
        session.add(survey)
        session.flush()
        stats.on_survey_created(session, survey)
        if survey.active:
            stats.on_survey_activated(session, survey, survey.created_on)
        return survey

    return stats.run_stats_write("create survey", _work, settings=settings)


def update_survey(survey_id: int, data: SurveyUpdate, *, settings: Optional[Settings] = None) -> Survey:
    changes = data.model_dump(exclude_unset=True)

    def _work(session: Session) -> Survey:
        survey = session.get(Survey, survey_id)
        if not survey:
            raise NotFound("survey", survey_id)
        was_active = survey.active
        for field, value in changes.items():
            setattr(survey, field, value)
        validate_survey(survey)
        session.add(survey)
        session.flush()
        if survey.active and not was_active:
            stats.on_survey_activated(session, survey)
        return survey

    return stats.run_stats_write(f"update survey #{survey_id}", _work, settings=settings)


def add_question(survey_id: int, data: QuestionCreate) -> Tuple[Question, List[AnswerOption]]:
    with get_session() as session:
        if session.get(Survey, survey_id) is None:
            raise NotFound("survey", survey_id)
        question = Question(survey_id=survey_id, text=data.text, kind=data.kind)
        session.add(question)
        session.flush()
        options = [AnswerOption(question_id=question.id, text=o.text) for o in data.options]
        session.add_all(options)
        session.commit()
        return question, options


def add_option(question_id: int, data: OptionCreate) -> AnswerOption:
    with get_session() as session:
        if session.get(Question, question_id) is None:
            raise NotFound("question", question_id)
        option = AnswerOption(question_id=question_id, text=data.text)
        session.add(option)
        session.commit()
        return option


def cast_vote(
    user_id: int,
    option_id: int,
    *,
    cast_at: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> Vote:
    """Record a vote and bump its survey's counter atomically.

    The vote row, the duplicate-vote policy check and the counter increment
    share one transaction; a policy rejection leaves nothing behind.
    """
    settings = settings or Settings()

    def _work(session: Session) -> Vote:
        if session.get(User, user_id) is None:
            raise NotFound("user", user_id)
        option = session.get(AnswerOption, option_id)
        if option is None:
            raise NotFound("option", option_id)
        vote = Vote(user_id=user_id, option_id=option_id, cast_at=clock.as_utc(cast_at) if cast_at else clock.now())
        session.add(vote)
        session.flush()
        survey_id = stats.resolve_survey_id(session, vote)
        check_vote_policy(session, vote, option, survey_id, settings.duplicate_vote_policy)
        stats.on_vote_cast(session, vote)
        defer(
            session,
            "vote_recorded",
            vote_id=vote.id,
            user_id=user_id,
            option_id=option_id,
            survey_id=survey_id,
        )
        return vote

    return stats.run_stats_write(f"cast vote on option #{option_id}", _work, settings=settings)


def delete_survey(survey_id: int, *, settings: Optional[Settings] = None) -> None:
    """Remove a survey according to ``survey_delete_policy``.

    ``restrict`` refuses while votes exist, ``cascade`` removes votes,
    options, questions and statistics with it, ``deactivate`` only clears
    the active flag.
    """
    settings = settings or Settings()
    policy = settings.survey_delete_policy

    def _work(session: Session) -> None:
        survey = session.get(Survey, survey_id)
        if not survey:
            raise NotFound("survey", survey_id)
        if policy == "deactivate":
            survey.active = False
            session.add(survey)
            defer(session, "survey_deactivated", survey_id=survey_id, title=survey.title)
            return
        votes = session.exec(stats.live_vote_count(survey_id)).one()
        if votes and policy == "restrict":
            raise SurveyHasVotes(survey_id, votes)
        question_ids = select(Question.id).where(Question.survey_id == survey_id)
        option_ids = select(AnswerOption.id).where(col(AnswerOption.question_id).in_(question_ids))
        for stmt in (
            delete(Vote).where(col(Vote.option_id).in_(option_ids)),
            delete(AnswerOption).where(col(AnswerOption.question_id).in_(question_ids)),
            delete(Question).where(col(Question.survey_id) == survey_id),
            delete(SurveyStats).where(col(SurveyStats.survey_id) == survey_id),
        ):
            session.exec(stmt.execution_options(synchronize_session=False))  # type: ignore[call-overload]
        session.delete(survey)
        defer(session, "survey_deleted", survey_id=survey_id, votes_removed=votes)

    stats.run_stats_write(f"delete survey #{survey_id}", _work, settings=settings)
