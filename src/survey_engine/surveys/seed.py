from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from ..config import Settings
from ..models import AnswerOption, Question, QuestionKind, Survey, User
from .engine import add_question, cast_vote, create_survey, create_user
from .schema import OptionCreate, QuestionCreate, SurveyCreate, UserCreate


DATA_DIR = Path(__file__).resolve().parent / "data"


class SampleQuestion(BaseModel):
    text: str
    kind: QuestionKind
    options: List[str] = Field(default_factory=list)


class SampleSurvey(BaseModel):
    owner: int  # index into SampleData.users
    title: str
    description: Optional[str] = None
    created_on: Optional[date] = None
    active: bool = True
    questions: List[SampleQuestion] = Field(default_factory=list)


class SampleVote(BaseModel):
    user: int
    survey: int
    question: int
    option: int
    cast_at: Optional[datetime] = None


class SampleData(BaseModel):
    users: List[UserCreate] = Field(default_factory=list)
    surveys: List[SampleSurvey] = Field(default_factory=list)
    votes: List[SampleVote] = Field(default_factory=list)


@dataclass
class SeededData:
    users: List[User] = field(default_factory=list)
    surveys: List[Survey] = field(default_factory=list)
    questions: Dict[Tuple[int, int], Question] = field(default_factory=dict)
    options: Dict[Tuple[int, int], List[AnswerOption]] = field(default_factory=dict)


def load_sample(key: str = "sample") -> SampleData:
    path = DATA_DIR / f"{key}.json"
    if not path.exists():
        raise FileNotFoundError(f"Sample data file not found: {path}")
    data = json.loads(path.read_text(encoding="utf-8"))
    return SampleData.model_validate(data)


def seed_sample_data(key: str = "sample", *, settings: Optional[Settings] = None) -> SeededData:
    """Load a sample data set through the regular write path.

    Statistics are produced by the aggregator as the votes go in; the data
    file carries no counters of its own.
    """
    sample = load_sample(key)
    seeded = SeededData()
    for u in sample.users:
        seeded.users.append(create_user(u))
    for s_idx, s in enumerate(sample.surveys):
        survey = create_survey(
            SurveyCreate(
                owner_id=seeded.users[s.owner].id,
                title=s.title,
                description=s.description,
                created_on=s.created_on,
                active=s.active,
            ),
            settings=settings,
        )
        seeded.surveys.append(survey)
        for q_idx, q in enumerate(s.questions):
            question, options = add_question(
                survey.id,
                QuestionCreate(text=q.text, kind=q.kind, options=[OptionCreate(text=t) for t in q.options]),
            )
            seeded.questions[(s_idx, q_idx)] = question
            seeded.options[(s_idx, q_idx)] = options
    for v in sample.votes:
        option = seeded.options[(v.survey, v.question)][v.option]
        cast_vote(seeded.users[v.user].id, option.id, cast_at=v.cast_at, settings=settings)
    return seeded
