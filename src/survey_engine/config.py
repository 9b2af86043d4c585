from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DuplicateVotePolicy = Literal["allow", "per_question", "per_survey"]
SurveyDeletePolicy = Literal["restrict", "cascade", "deactivate"]


class Settings(BaseSettings):
    """Engine runtime settings loaded from environment/.env."""

    database_url: str = Field(default="sqlite:///./survey_engine.db", alias="DATABASE_URL")
    sql_echo: bool = Field(default=False, alias="SQL_ECHO")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Conflict retries on the statistics write path
    write_max_retries: int = Field(default=5, ge=1, alias="WRITE_MAX_RETRIES")
    write_retry_backoff: float = Field(default=0.05, ge=0, alias="WRITE_RETRY_BACKOFF")

    duplicate_vote_policy: DuplicateVotePolicy = Field(default="allow", alias="DUPLICATE_VOTE_POLICY")
    survey_delete_policy: SurveyDeletePolicy = Field(default="restrict", alias="SURVEY_DELETE_POLICY")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        extra="ignore",
        populate_by_name=True,
    )
