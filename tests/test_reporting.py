from __future__ import annotations

from datetime import date, timedelta

import pytest

from survey_engine.reporting import dashboard, survey_summary, vote_breakdown
from survey_engine.surveys.engine import add_question, cast_vote, create_survey, create_user
from survey_engine.surveys.schema import DashboardView, OptionCreate, QuestionCreate, SurveyCreate, UserCreate
from survey_engine.surveys.seed import seed_sample_data


def _options(*texts):
    return [OptionCreate(text=t) for t in texts]


def test_end_to_end_single_vote():
    ana = create_user(UserCreate(username="Ana", email="ana@example.com", password="anapass123"))
    survey = create_survey(SurveyCreate(owner_id=ana.id, title="Satisfacción", active=True))
    assert survey_summary(survey.id).total_votes == 0

    _, options = add_question(
        survey.id,
        QuestionCreate(text="¿Cómo calificaría nuestra plataforma?", options=_options("Excelente", "Buena", "Regular", "Mala")),
    )
    cast_vote(ana.id, options[0].id)

    assert survey_summary(survey.id).total_votes == 1
    rows = list(vote_breakdown(survey.id))
    assert [(r.option_text, r.votes, r.percentage, r.rank) for r in rows] == [
        ("Excelente", 1, 100.0, 1),
        ("Buena", 0, 0.0, 2),
        ("Regular", 0, 0.0, 3),
        ("Mala", 0, 0.0, 4),
    ]


def test_summary_fields(ana):
    created_on = date.today() - timedelta(days=10)
    survey = create_survey(
        SurveyCreate(owner_id=ana.id, title="Preferencias", description="Qué valoran", created_on=created_on)
    )
    summary = survey_summary(survey.id)
    assert summary.title == "Preferencias"
    assert summary.description == "Qué valoran"
    assert summary.owner_name == "Ana"
    assert summary.created_on == created_on
    assert summary.total_votes == 0
    assert summary.active is True
    assert summary.days_active == 10


def test_summary_of_missing_survey_is_none():
    assert survey_summary(31337) is None


def test_breakdown_without_votes_is_all_zero(survey, question):
    rows = list(vote_breakdown(survey.id))
    assert len(rows) == 4
    assert all(r.percentage == 0.0 and r.votes == 0 for r in rows)
    assert [r.rank for r in rows] == [1, 2, 3, 4]


def test_breakdown_percentages_sum_to_hundred(survey, question, make_user):
    _, options = question
    for idx in (0, 1, 1, 2, 3, 3, 3):
        cast_vote(make_user().id, options[idx].id)
    rows = list(vote_breakdown(survey.id))
    assert sum(r.percentage for r in rows) == pytest.approx(100.0, abs=0.05)
    assert [(r.option_text, r.votes, r.rank) for r in rows] == [
        ("Mala", 3, 1),
        ("Buena", 2, 2),
        ("Excelente", 1, 3),
        ("Regular", 1, 4),
    ]
    assert rows[0].percentage == 42.86


def test_breakdown_ties_keep_option_order(survey, question, make_user):
    _, options = question
    for idx in (3, 1, 0):
        cast_vote(make_user().id, options[idx].id)
    rows = list(vote_breakdown(survey.id))
    assert [(r.option_text, r.rank) for r in rows] == [
        ("Excelente", 1),
        ("Buena", 2),
        ("Mala", 3),
        ("Regular", 4),
    ]
    assert [r.percentage for r in rows[:3]] == [33.33, 33.33, 33.33]


def test_breakdown_is_ordered_by_question_then_restartable(survey, ana):
    _, yes_no = add_question(survey.id, QuestionCreate(text="¿Recomendaría?", kind="yes_no", options=_options("Sí", "No")))
    _, scale = add_question(survey.id, QuestionCreate(text="Califique (1-3)", kind="scale", options=_options("1", "2", "3")))
    breakdown = vote_breakdown(survey.id)

    first = list(breakdown)
    assert [r.question_text for r in first] == ["Califique (1-3)"] * 3 + ["¿Recomendaría?"] * 2

    cast_vote(ana.id, yes_no[1].id)
    second = list(breakdown)
    no = next(r for r in second if r.option_text == "No")
    assert (no.votes, no.percentage, no.rank) == (1, 100.0, 1)
    assert all(r.percentage == 0.0 for r in second if r.question_text == "Califique (1-3)")


def test_breakdown_of_missing_survey_is_empty():
    assert list(vote_breakdown(31337)) == []


def test_empty_dashboard():
    assert dashboard() == DashboardView()


def test_dashboard_on_sample_data():
    seed_sample_data()
    view = dashboard()
    assert view.total_surveys == 3
    assert view.active_surveys == 2
    assert view.distinct_voters == 5
    assert view.total_votes == 8
    assert view.most_voted_title == "Satisfacción de Usuarios"
    assert view.most_voted_votes == 4


def test_dashboard_ties_pick_lowest_survey_id(ana):
    first = create_survey(SurveyCreate(owner_id=ana.id, title="Primera"))
    create_survey(SurveyCreate(owner_id=ana.id, title="Segunda"))
    view = dashboard()
    assert view.most_voted_survey_id == first.id
    assert view.most_voted_votes == 0
    assert view.distinct_voters == 0


def test_sample_breakdown_matches_votes():
    seeded = seed_sample_data()
    rows = [r for r in vote_breakdown(seeded.surveys[0].id) if r.question_text.startswith("¿Cómo")]
    assert [(r.option_text, r.votes, r.rank) for r in rows] == [
        ("Excelente", 1, 1),
        ("Buena", 1, 2),
        ("Mala", 1, 3),
        ("Regular", 0, 4),
    ]
    inactive = survey_summary(seeded.surveys[2].id)
    assert inactive.active is False
    assert inactive.total_votes == 2
