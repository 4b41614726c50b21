"""Fixed-layout question set generation with an optional remote generator."""
from __future__ import annotations

import logging
from typing import Dict, List, Literal, Optional, Sequence, Tuple

from pydantic import BaseModel, ValidationError

from agents.types import TIER_ORDER, GeneratedQuestionSet, Question
from config.registry import QUESTION_GEN_KEY, get_model
from config.settings import settings
from llm_gateway import LlmGatewayError

logger = logging.getLogger(__name__)

QUESTIONS_PER_TIER = 2

QUESTION_BANK: Dict[str, Tuple[str, ...]] = {
    "easy": (
        "What is React and why would you use it?",
        "Describe the difference between var, let and const in JavaScript.",
    ),
    "medium": (
        "Explain the React component lifecycle or the hooks flow for data fetching.",
        "How would you design an API for a product catalog with filtering and pagination?",
    ),
    "hard": (
        "Describe how to scale a Node.js service under heavy write traffic (design and tradeoffs).",
        "Explain how you would debug a memory leak in a fullstack app and the steps to mitigate it.",
    ),
}


class QuestionPlan(BaseModel):
    questions: List[Question]
    source: Literal["bank", "remote"] = "bank"
    # Remote generation was enabled but its result could not be used.
    fallback: bool = False


def time_limit_for(difficulty: str) -> int:
    limits = {
        "easy": settings.EASY_TIME_LIMIT,
        "medium": settings.MEDIUM_TIME_LIMIT,
        "hard": settings.HARD_TIME_LIMIT,
    }
    return limits[difficulty]


def has_standard_layout(questions: Sequence[Question]) -> bool:
    """True when ``questions`` is exactly 2 easy, 2 medium, 2 hard in that order."""
    expected = [tier for tier in TIER_ORDER for _ in range(QUESTIONS_PER_TIER)]
    return [q.difficulty for q in questions] == expected and all(
        q.time_limit == time_limit_for(q.difficulty) for q in questions
    )


class QuestionSequencer:
    """Produce the ordered six-question set for one session.

    Holds configuration only; every ``generate`` call returns fresh ids.
    """

    def __init__(
        self,
        *,
        use_remote: Optional[bool] = None,
        role: Optional[str] = None,
        stack: Optional[str] = None,
    ) -> None:
        self._use_remote = settings.REMOTE_QUESTIONS_ENABLED if use_remote is None else use_remote
        self._role = role or settings.INTERVIEW_ROLE
        self._stack = stack or settings.INTERVIEW_STACK

    def generate(self) -> List[Question]:
        return self.plan().questions

    def plan(self) -> QuestionPlan:
        if not self._use_remote:
            return QuestionPlan(questions=self.from_bank())
        remote = self._generate_remote()
        if remote is None:
            return QuestionPlan(questions=self.from_bank(), fallback=True)
        return QuestionPlan(questions=remote, source="remote")

    def from_bank(self) -> List[Question]:
        return [
            Question(text=text, difficulty=tier, time_limit=time_limit_for(tier))
            for tier in TIER_ORDER
            for text in QUESTION_BANK[tier][:QUESTIONS_PER_TIER]
        ]

    def _generate_remote(self) -> Optional[List[Question]]:
        try:
            llm = get_model(QUESTION_GEN_KEY)
            raw = llm(inputs={"role": self._role, "stack": self._stack})
            parsed = GeneratedQuestionSet.model_validate(raw)
        except KeyError:
            logger.info("No remote question generator bound; using the fixed bank")
            return None
        except (LlmGatewayError, ValidationError, TypeError, ValueError) as exc:
            logger.warning("Remote question generation failed, using the fixed bank: %s", exc)
            return None

        # Tier fixes the time limit regardless of what the generator proposed.
        questions = [
            Question(text=item.text.strip(), difficulty=item.difficulty, time_limit=time_limit_for(item.difficulty))
            for item in parsed.questions
            if item.text.strip()
        ]
        if not has_standard_layout(questions):
            logger.warning(
                "Remote question set has layout %s, using the fixed bank",
                [q.difficulty for q in questions],
            )
            return None
        return questions


__all__ = ["QuestionPlan", "QuestionSequencer", "QUESTION_BANK", "has_standard_layout", "time_limit_for"]
