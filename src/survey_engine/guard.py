from __future__ import annotations

from typing import Optional

from sqlmodel import Session, select
from sqlmodel.sql.expression import SelectOfScalar

from .config import DuplicateVotePolicy
from .db import get_session
from .errors import DuplicateVote
from .models import AnswerOption, Question, User, Vote


def _votes_by_user(user_id: int, exclude_vote_id: Optional[int]) -> SelectOfScalar[Optional[int]]:
    stmt = (
        select(Vote.id)
        .join(AnswerOption, AnswerOption.id == Vote.option_id)
        .where(Vote.user_id == user_id)
    )
    if exclude_vote_id is not None:
        stmt = stmt.where(Vote.id != exclude_vote_id)
    return stmt


def voted_in_survey(session: Session, user_id: int, survey_id: int, *, exclude_vote_id: Optional[int] = None) -> bool:
    stmt = (
        _votes_by_user(user_id, exclude_vote_id)
        .join(Question, Question.id == AnswerOption.question_id)
        .where(Question.survey_id == survey_id)
        .limit(1)
    )
    return session.exec(stmt).first() is not None


def voted_on_question(session: Session, user_id: int, question_id: int, *, exclude_vote_id: Optional[int] = None) -> bool:
    stmt = _votes_by_user(user_id, exclude_vote_id).where(AnswerOption.question_id == question_id).limit(1)
    return session.exec(stmt).first() is not None


def lock_voter(user_id: int) -> SelectOfScalar[Optional[int]]:
    """Row lock on the voter; SQLite renders no FOR clause and relies on its writer lock.

    NO KEY UPDATE does not conflict with the KEY SHARE lock the vote's foreign
    key already holds, so concurrent votes by one user queue here instead of
    deadlocking.
    """
    return select(User.id).where(User.id == user_id).with_for_update(key_share=True)


def has_voted(user_id: int, survey_id: int) -> bool:
    """True once any vote by ``user_id`` lands on an option of ``survey_id``."""
    with get_session() as session:
        return voted_in_survey(session, user_id, survey_id)


def check_vote_policy(
    session: Session,
    vote: Vote,
    option: AnswerOption,
    survey_id: int,
    policy: DuplicateVotePolicy,
) -> None:
    """Reject ``vote`` if the user already voted in the scope ``policy`` names.

    Call after the vote row is flushed. On SQLite the write lock taken by
    that flush keeps a concurrent vote by the same user out; elsewhere the
    voter row is locked first, so under READ COMMITTED the second of two
    concurrent votes waits and then sees the first.
    """
    if policy == "allow":
        return
    session.exec(lock_voter(vote.user_id)).first()
    if policy == "per_question":
        if voted_on_question(session, vote.user_id, option.question_id, exclude_vote_id=vote.id):
            raise DuplicateVote(vote.user_id, "question", option.question_id)
    elif policy == "per_survey":
        if voted_in_survey(session, vote.user_id, survey_id, exclude_vote_id=vote.id):
            raise DuplicateVote(vote.user_id, "survey", survey_id)
