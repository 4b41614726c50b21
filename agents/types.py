"""Shared type definitions for the interview session."""
from datetime import datetime, timezone
from typing import List, Literal, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

Difficulty = Literal["easy", "medium", "hard"]
CandidateStatus = Literal["incomplete", "paused", "completed"]
ChatOrigin = Literal["bot", "user"]
ProfileField = Literal["name", "email", "phone"]

TIER_ORDER: Tuple[str, ...] = ("easy", "medium", "hard")
REQUIRED_FIELDS: Tuple[str, ...] = ("name", "email", "phone")


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def new_id() -> str:
    return uuid4().hex


class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    text: str
    difficulty: Difficulty
    time_limit: int = Field(gt=0)  # seconds


class Answer(BaseModel):
    question_id: str
    question_text: str
    answer_text: str
    difficulty: Difficulty
    score: int = Field(ge=0, le=100)
    time_spent_seconds: int = Field(ge=0)
    feedback: str


class ChatTurn(BaseModel):
    origin: ChatOrigin
    text: str
    timestamp: str = Field(default_factory=utc_now)


class Candidate(BaseModel):
    """One interviewee together with their question set, answers and chat log."""

    id: str = Field(default_factory=new_id)
    name: str = ""
    email: str = ""
    phone: str = ""
    questions: List[Question] = Field(default_factory=list)
    answers: List[Answer] = Field(default_factory=list)
    current_question_index: int = Field(default=0, ge=0)
    total_score: int = 0
    final_score: Optional[int] = None
    status: CandidateStatus = "incomplete"
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    summary: str = ""
    chat: List[ChatTurn] = Field(default_factory=list)

    def missing_fields(self) -> List[str]:
        """Required profile fields still empty, in solicitation order."""
        return [field for field in REQUIRED_FIELDS if not getattr(self, field).strip()]


class EvalResult(BaseModel):
    score: int = Field(ge=0, le=100)
    feedback: str
    source: Literal["local", "remote"] = "local"


class AggregateResult(BaseModel):
    final_score: int = Field(ge=0, le=100)
    summary: str
    answered: int = Field(default=0, ge=0)


class ProfileDecision(BaseModel):
    field: ProfileField
    value: str


class GeneratedQuestion(BaseModel):  # Question item returned by the remote generator
    text: str
    difficulty: Difficulty
    time_limit_seconds: int = Field(gt=0)


class GeneratedQuestionSet(BaseModel):
    questions: List[GeneratedQuestion]


class RemoteScore(BaseModel):
    score: float = Field(allow_inf_nan=False)
    feedback: str


class SummaryResult(BaseModel):
    summary: str


class ResumeSections(BaseModel):
    education: str = ""
    experience: str = ""
    skills: str = ""


class ResumeExtraction(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    sections: ResumeSections = Field(default_factory=ResumeSections)
    raw_text: str = ""
