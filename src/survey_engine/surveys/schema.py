from __future__ import annotations

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models import QuestionKind


class UserCreate(BaseModel):
    username: Optional[str] = None
    email: str
    password: Optional[str] = None
    registered_on: Optional[date] = None


class UserUpdate(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class SurveyCreate(BaseModel):
    owner_id: int
    title: str
    description: Optional[str] = None
    created_on: Optional[date] = None
    active: bool = True


class SurveyUpdate(BaseModel):
    # no owner_id: ownership is fixed at creation
    title: Optional[str] = None
    description: Optional[str] = None
    created_on: Optional[date] = None
    active: Optional[bool] = None


class OptionCreate(BaseModel):
    text: str


class QuestionCreate(BaseModel):
    text: str
    kind: QuestionKind = QuestionKind.single_choice
    options: List[OptionCreate] = Field(default_factory=list)


class SurveySummaryView(BaseModel):
    survey_id: int
    title: str
    description: Optional[str] = None
    owner_name: str
    created_on: date
    total_votes: int
    last_update: Optional[date] = None
    active: bool
    days_active: int


class OptionTally(BaseModel):
    question_id: int
    question_text: str
    option_id: int
    option_text: str
    votes: int
    percentage: float
    rank: int


class DashboardView(BaseModel):
    total_surveys: int = 0
    active_surveys: int = 0
    distinct_voters: int = 0
    total_votes: int = 0
    most_voted_survey_id: Optional[int] = None
    most_voted_title: Optional[str] = None
    most_voted_votes: int = 0
