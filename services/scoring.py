"""Score aggregation and end-of-session summaries."""
from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Sequence

from pydantic import ValidationError

from agents.types import AggregateResult, Answer, SummaryResult
from config.registry import SUMMARY_KEY, get_model
from config.settings import settings
from llm_gateway import LlmGatewayError

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (62.5 -> 63)."""
    return int(math.floor(value + 0.5))


def clamp_score(value: float) -> int:
    return max(0, min(100, round_half_up(value)))


def total_score(answers: Sequence[Answer]) -> int:
    return sum(answer.score for answer in answers)


def final_score(answers: Sequence[Answer]) -> int:
    if not answers:
        return 0
    return clamp_score(total_score(answers) / len(answers))


def templated_summary(name: str, score: int, answered: int) -> str:
    who = name.strip() or "Candidate"
    return (
        f"Summary for {who}: Final Score {score}/100. "
        f"Answered {answered} questions. Review the chat transcript for strengths and gaps."
    )


def _trim_words(text: str, limit: int) -> str:
    words = text.split()
    if len(words) <= limit:
        return " ".join(words)
    return " ".join(words[:limit]).rstrip(".,;") + "..."


class SessionAggregator:
    """Reduce a candidate's answers to a final score and short synopsis."""

    def __init__(self, *, remote_enabled: Optional[bool] = None) -> None:
        self.remote_enabled = settings.REMOTE_SUMMARY_ENABLED if remote_enabled is None else remote_enabled

    def aggregate(self, answers: Sequence[Answer], *, candidate_name: str = "") -> AggregateResult:
        score = final_score(answers)
        return AggregateResult(
            final_score=score,
            summary=templated_summary(candidate_name, score, len(answers)),
            answered=len(answers),
        )

    def remote_summary(self, *, name: str, answers: Sequence[Answer], total: int) -> Optional[str]:
        """Ask the bound summarizer for a synopsis; ``None`` means keep the templated one."""

        try:
            llm = get_model(SUMMARY_KEY)
            raw = llm(
                inputs={
                    "name": name or "Candidate",
                    "answers": _answer_digest(answers),
                    "total_score": total,
                    "max_words": settings.SUMMARY_MAX_WORDS,
                }
            )
            parsed = SummaryResult.model_validate(raw)
        except KeyError:
            logger.info("No remote summarizer bound; keeping templated summary")
            return None
        except (LlmGatewayError, ValidationError, TypeError, ValueError) as exc:
            logger.warning("Remote summary failed, keeping templated summary: %s", exc)
            return None

        text = parsed.summary.strip()
        if not text:
            return None
        return _trim_words(text, settings.SUMMARY_MAX_WORDS)


def _answer_digest(answers: Sequence[Answer]) -> List[Dict[str, object]]:
    return [
        {"question": a.question_text, "answer": a.answer_text or "[no answer]", "score": a.score}
        for a in answers
    ]


__all__ = [
    "SessionAggregator",
    "clamp_score",
    "final_score",
    "round_half_up",
    "templated_summary",
    "total_score",
]
