from __future__ import annotations

import logging
from typing import Callable, List

import pytest

from survey_engine import db
from survey_engine.surveys.engine import add_question, create_survey, create_user
from survey_engine.surveys.schema import OptionCreate, QuestionCreate, SurveyCreate, UserCreate


_ENV_KEYS = (
    "DATABASE_URL",
    "SQL_ECHO",
    "LOG_LEVEL",
    "WRITE_MAX_RETRIES",
    "WRITE_RETRY_BACKOFF",
    "DUPLICATE_VOTE_POLICY",
    "SURVEY_DELETE_POLICY",
)


@pytest.fixture(autouse=True)
def database(tmp_path, monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    url = f"sqlite:///{tmp_path / 'engine.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("WRITE_RETRY_BACKOFF", "0")
    engine = db.configure(url)
    db.init_db()
    yield engine
    engine.dispose()


@pytest.fixture
def events(caplog):
    """Structured events emitted during the test, as (name, fields) pairs."""
    caplog.set_level(logging.INFO, logger="survey_engine.events")

    def _collect(name: str) -> List[dict]:
        return [r.fields for r in caplog.records if getattr(r, "event", None) == name]

    return _collect


@pytest.fixture
def make_user() -> Callable:
    counter = {"n": 0}

    def _make(username: str = "Ana Ruiz", email: str = "", password: str = "s3cretpass"):
        counter["n"] += 1
        email = email or f"user{counter['n']}@example.com"
        return create_user(UserCreate(username=username, email=email, password=password))

    return _make


@pytest.fixture
def ana(make_user):
    return make_user(username="Ana", email="ana@example.com")


@pytest.fixture
def survey(ana):
    return create_survey(SurveyCreate(owner_id=ana.id, title="Satisfacción"))


@pytest.fixture
def question(survey):
    return add_question(
        survey.id,
        QuestionCreate(
            text="¿Cómo calificaría nuestra plataforma?",
            options=[OptionCreate(text=t) for t in ("Excelente", "Buena", "Regular", "Mala")],
        ),
    )
