"""Application settings and configuration management."""
from __future__ import annotations

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or defaults."""

    DB_PATH: str = Field(default="data/interview.db")
    APP_CONFIG_PATH: str = "app_config.json"

    START_COMMAND: str = "start"

    EASY_TIME_LIMIT: int = Field(default=20, gt=0)
    MEDIUM_TIME_LIMIT: int = Field(default=60, gt=0)
    HARD_TIME_LIMIT: int = Field(default=120, gt=0)
    TIMER_TICK_SECONDS: float = Field(default=1.0, gt=0.0)

    SHORT_ANSWER_CHARS: int = 20
    MEDIUM_ANSWER_CHARS: int = 80
    SPEED_BONUS_RATIO: float = Field(default=0.5, ge=0.0, le=1.0)

    MAX_RESUME_BYTES: int = 5 * 1024 * 1024
    ALLOWED_RESUME_TYPES: List[str] = Field(
        default_factory=lambda: [
            "application/pdf",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            "application/msword",
        ]
    )

    REMOTE_QUESTIONS_ENABLED: bool = False
    REMOTE_SCORING_ENABLED: bool = False
    REMOTE_SUMMARY_ENABLED: bool = False
    INTERVIEW_ROLE: str = "fullstack"
    INTERVIEW_STACK: str = "React/Node"
    SUMMARY_MAX_WORDS: int = 60

    model_config = SettingsConfigDict(env_file=".env", validate_assignment=True, extra="ignore")


settings = Settings()
