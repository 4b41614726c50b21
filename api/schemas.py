"""Pydantic schemas for the interview session API."""
from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from agents.types import Answer, Candidate, ChatTurn, Question


class TurnReq(BaseModel):
    text: str
    question_index: Optional[int] = None


class CandidateSummary(BaseModel):
    id: str
    name: str
    email: str
    phone: str
    status: str
    total_score: int
    final_score: Optional[int] = None
    summary: str = ""
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    answered: int = 0

    @classmethod
    def from_candidate(cls, candidate: Candidate) -> "CandidateSummary":
        return cls(
            id=candidate.id,
            name=candidate.name,
            email=candidate.email,
            phone=candidate.phone,
            status=candidate.status,
            total_score=candidate.total_score,
            final_score=candidate.final_score,
            summary=candidate.summary,
            started_at=candidate.started_at,
            completed_at=candidate.completed_at,
            answered=len(candidate.answers),
        )


class CandidateDetail(CandidateSummary):
    questions: List[Question] = Field(default_factory=list)
    answers: List[Answer] = Field(default_factory=list)
    chat: List[ChatTurn] = Field(default_factory=list)

    @classmethod
    def from_candidate(cls, candidate: Candidate) -> "CandidateDetail":
        base = CandidateSummary.from_candidate(candidate).model_dump()
        return cls(**base, questions=candidate.questions, answers=candidate.answers, chat=candidate.chat)


class SessionResp(BaseModel):
    phase: str
    candidate: Optional[CandidateSummary] = None
    question_index: Optional[int] = None
    question: Optional[Question] = None
    question_count: int = 0
    remaining_seconds: int = 0
    missing_fields: List[str] = Field(default_factory=list)
    messages: List[ChatTurn] = Field(default_factory=list)


SortBy = Literal["score", "date", "name"]
