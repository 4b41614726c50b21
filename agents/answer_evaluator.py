"""Answer scoring: local heuristic with an optional remote scorer in front."""
from __future__ import annotations

import logging
from typing import Dict, Optional

from pydantic import BaseModel, Field, ValidationError

from agents.types import EvalResult, Question, RemoteScore
from config.registry import SCORER_KEY, get_model
from config.settings import settings
from llm_gateway import LlmGatewayError
from services.scoring import clamp_score

logger = logging.getLogger(__name__)

NO_ANSWER_FEEDBACK = "No answer provided."
STRONG_FEEDBACK = "Great answer, thorough and on point."
ADEQUATE_FEEDBACK = "Solid answer that covers the main points but lacks depth."
SHALLOW_FEEDBACK = "Short or shallow. Try to include your reasoning and concrete examples."


class ScoringPolicy(BaseModel):
    """Heuristic constants for local scoring."""

    short_answer_chars: int = 20
    medium_answer_chars: int = 80
    short_points: int = 20
    medium_points: int = 45
    long_points: int = 70
    difficulty_bonus: Dict[str, int] = Field(default_factory=lambda: {"easy": 10, "medium": 15, "hard": 20})
    speed_bonus: int = 5
    speed_bonus_ratio: float = 0.5

    @classmethod
    def from_settings(cls) -> "ScoringPolicy":
        return cls(
            short_answer_chars=settings.SHORT_ANSWER_CHARS,
            medium_answer_chars=settings.MEDIUM_ANSWER_CHARS,
            speed_bonus_ratio=settings.SPEED_BONUS_RATIO,
        )


def feedback_for(score: int) -> str:
    if score > 80:
        return STRONG_FEEDBACK
    if score > 50:
        return ADEQUATE_FEEDBACK
    return SHALLOW_FEEDBACK


def evaluate_local(
    question: Question,
    answer_text: str,
    time_spent_seconds: float,
    policy: Optional[ScoringPolicy] = None,
) -> EvalResult:
    """Score an answer from its length, the question tier and answer speed."""

    policy = policy or ScoringPolicy.from_settings()
    trimmed = (answer_text or "").strip()
    if not trimmed:
        return EvalResult(score=0, feedback=NO_ANSWER_FEEDBACK)

    length = len(trimmed)
    if length < policy.short_answer_chars:
        score = policy.short_points
    elif length < policy.medium_answer_chars:
        score = policy.medium_points
    else:
        score = policy.long_points

    score += policy.difficulty_bonus.get(question.difficulty, 0)
    if time_spent_seconds < question.time_limit * policy.speed_bonus_ratio:
        score += policy.speed_bonus

    bounded = clamp_score(score)
    return EvalResult(score=bounded, feedback=feedback_for(bounded))


class AnswerEvaluator:
    """Evaluate answers through the remote scorer when enabled, else locally.

    Any remote failure (unbound model, transport error, malformed payload)
    makes :meth:`evaluate_remote` return ``None`` and :meth:`evaluate` fall
    back to :func:`evaluate_local`; evaluation never raises.
    """

    def __init__(self, *, use_remote: Optional[bool] = None, policy: Optional[ScoringPolicy] = None) -> None:
        self._use_remote = settings.REMOTE_SCORING_ENABLED if use_remote is None else use_remote
        self._policy = policy or ScoringPolicy.from_settings()

    @property
    def remote_enabled(self) -> bool:
        return self._use_remote

    def wants_remote(self, answer_text: str) -> bool:
        """Empty answers are final at 0 and never sent to the remote scorer."""
        return self._use_remote and bool((answer_text or "").strip())

    def evaluate_local(self, question: Question, answer_text: str, time_spent_seconds: float) -> EvalResult:
        return evaluate_local(question, answer_text, time_spent_seconds, self._policy)

    def evaluate(self, question: Question, answer_text: str, time_spent_seconds: float) -> EvalResult:
        local = self.evaluate_local(question, answer_text, time_spent_seconds)
        if not self.wants_remote(answer_text):
            return local
        remote = self.evaluate_remote(question, answer_text, time_spent_seconds)
        return remote or local

    def evaluate_remote(self, question: Question, answer_text: str, time_spent_seconds: float) -> Optional[EvalResult]:
        try:
            llm = get_model(SCORER_KEY)
            raw = llm(
                inputs={
                    "question": question.text,
                    "answer": answer_text,
                    "difficulty": question.difficulty,
                    "time_limit": question.time_limit,
                    "time_spent": time_spent_seconds,
                }
            )
            parsed = RemoteScore.model_validate(raw)
        except KeyError:
            logger.info("No remote scorer bound; scoring locally")
            return None
        except (LlmGatewayError, ValidationError, TypeError, ValueError) as exc:
            logger.warning("Remote scoring failed, scoring locally: %s", exc)
            return None

        feedback = parsed.feedback.strip()[:200] or feedback_for(clamp_score(parsed.score))
        return EvalResult(score=clamp_score(parsed.score), feedback=feedback, source="remote")


__all__ = ["AnswerEvaluator", "ScoringPolicy", "evaluate_local", "feedback_for", "NO_ANSWER_FEEDBACK"]
