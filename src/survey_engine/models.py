from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from .clock import now


class QuestionKind(str, Enum):
    single_choice = "single_choice"
    multiple_choice = "multiple_choice"
    multiple_selection = "multiple_selection"
    scale = "scale"
    yes_no = "yes_no"


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(max_length=100)
    email: str = Field(max_length=150, index=True, unique=True)
    password: str = Field(max_length=100)
    registered_on: date = Field(default_factory=date.today, nullable=False)


class Survey(SQLModel, table=True):
    __tablename__ = "surveys"

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: int = Field(foreign_key="users.id", index=True)
    title: str = Field(max_length=255)
    description: Optional[str] = None
    created_on: date = Field(default_factory=date.today, nullable=False)
    active: bool = Field(default=True)


class Question(SQLModel, table=True):
    __tablename__ = "questions"

    id: Optional[int] = Field(default=None, primary_key=True)
    survey_id: int = Field(foreign_key="surveys.id", index=True)
    text: str
    # Descriptive only; not checked against the option set
    kind: QuestionKind


class AnswerOption(SQLModel, table=True):
    __tablename__ = "answer_options"

    id: Optional[int] = Field(default=None, primary_key=True)
    question_id: int = Field(foreign_key="questions.id", index=True)
    text: str = Field(max_length=255)


class Vote(SQLModel, table=True):
    __tablename__ = "votes"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    option_id: int = Field(foreign_key="answer_options.id", index=True)
    cast_at: datetime = Field(default_factory=now, sa_type=DateTime(timezone=True), nullable=False)


class SurveyStats(SQLModel, table=True):
    """Eagerly maintained vote counter, one row per survey."""

    __tablename__ = "survey_stats"

    id: Optional[int] = Field(default=None, primary_key=True)
    survey_id: int = Field(foreign_key="surveys.id", unique=True, index=True)
    total_votes: int = Field(default=0, nullable=False)
    last_update: Optional[date] = None
