"""Read-only views over surveys, votes and the statistics cache.

Nothing here writes or takes write locks. Missing surveys come back as
``None`` or an empty view rather than an exception.
"""
from __future__ import annotations

from itertools import groupby
from typing import Iterator, List, Optional, Tuple

from sqlalchemy import func
from sqlmodel import col, select

from . import clock
from .db import get_session
from .models import AnswerOption, Question, Survey, SurveyStats, User, Vote
from .surveys.schema import DashboardView, OptionTally, SurveySummaryView


def survey_summary(survey_id: int) -> Optional[SurveySummaryView]:
    stmt = (
        select(Survey, User.username, SurveyStats.total_votes, SurveyStats.last_update)
        .join(User, User.id == Survey.owner_id)
        .outerjoin(SurveyStats, SurveyStats.survey_id == Survey.id)
        .where(Survey.id == survey_id)
    )
    with get_session() as session:
        row = session.exec(stmt).first()
    if row is None:
        return None
    survey, owner_name, total_votes, last_update = row
    return SurveySummaryView(
        survey_id=survey.id,
        title=survey.title,
        description=survey.description,
        owner_name=owner_name,
        created_on=survey.created_on,
        total_votes=total_votes or 0,
        last_update=last_update,
        active=survey.active,
        days_active=(clock.today() - survey.created_on).days,
    )


def _percentage(votes: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round(votes * 100.0 / total, 2)


def _rank_question(rows: List[Tuple[int, str, int, str, int]]) -> Iterator[OptionTally]:
    total = sum(r[4] for r in rows)
    # rows arrive in option id order; the sort is stable, so ties keep it
    ordered = sorted(rows, key=lambda r: r[4], reverse=True)
    for rank, (question_id, question_text, option_id, option_text, votes) in enumerate(ordered, start=1):
        yield OptionTally(
            question_id=question_id,
            question_text=question_text,
            option_id=option_id,
            option_text=option_text,
            votes=votes,
            percentage=_percentage(votes, total),
            rank=rank,
        )


class VoteBreakdown:
    """Per-option tallies for one survey.

    Iterating runs the query afresh, so the same object can be walked again
    after more votes arrive. Rows come ordered by question text, then rank.
    """

    def __init__(self, survey_id: int) -> None:
        self.survey_id = survey_id

    def _rows(self) -> List[Tuple[int, str, int, str, int]]:
        stmt = (
            select(Question.id, Question.text, AnswerOption.id, AnswerOption.text, func.count(Vote.id))
            .join(AnswerOption, AnswerOption.question_id == Question.id)
            .outerjoin(Vote, Vote.option_id == AnswerOption.id)
            .where(Question.survey_id == self.survey_id)
            .group_by(Question.id, Question.text, AnswerOption.id, AnswerOption.text)
            .order_by(Question.text, Question.id, AnswerOption.id)
        )
        with get_session() as session:
            return [tuple(r) for r in session.exec(stmt).all()]  # type: ignore[misc]

    def __iter__(self) -> Iterator[OptionTally]:
        for _, question_rows in groupby(self._rows(), key=lambda r: r[0]):
            yield from _rank_question(list(question_rows))


def vote_breakdown(survey_id: int) -> VoteBreakdown:
    return VoteBreakdown(survey_id)


def dashboard() -> DashboardView:
    with get_session() as session:
        total_surveys = session.exec(select(func.count(Survey.id))).one()
        if not total_surveys:
            return DashboardView()
        active_surveys = session.exec(select(func.count(Survey.id)).where(col(Survey.active).is_(True))).one()
        distinct_voters = session.exec(select(func.count(func.distinct(Vote.user_id)))).one()
        total_votes = session.exec(select(func.count(Vote.id))).one()
        votes_col = func.coalesce(SurveyStats.total_votes, 0)
        top = session.exec(
            select(Survey.id, Survey.title, votes_col)
            .outerjoin(SurveyStats, SurveyStats.survey_id == Survey.id)
            .order_by(votes_col.desc(), Survey.id)
            .limit(1)
        ).first()
    most_voted_id, most_voted_title, most_voted_votes = top  # type: ignore[misc]
    return DashboardView(
        total_surveys=total_surveys,
        active_surveys=active_surveys,
        distinct_voters=distinct_voters,
        total_votes=total_votes,
        most_voted_survey_id=most_voted_id,
        most_voted_title=most_voted_title,
        most_voted_votes=most_voted_votes,
    )
