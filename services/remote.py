"""Registry bindings for remote question, scoring and summary models."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from textwrap import dedent
from typing import Any, Callable, Dict, List, Optional

from agents.types import GeneratedQuestionSet, RemoteScore, SummaryResult
from config import AppConfig, LlmRoute, load_config, resolve_route
from config.registry import QUESTION_GEN_KEY, SCORER_KEY, SUMMARY_KEY, bind_model
from llm_gateway import HttpClient, call

logger = logging.getLogger(__name__)

INTERVIEWER_SYSTEM = "You are a concise technical interviewer."


def question_generator(route: LlmRoute, *, client: Optional[HttpClient] = None) -> Callable[..., Dict[str, Any]]:
    def _invoke(*, inputs: Dict[str, Any], **_: Any) -> Dict[str, Any]:
        prompt = dedent(
            f"""
            Create 6 interview questions for a {inputs.get('role', 'fullstack')} role focused on
            {inputs.get('stack', 'React/Node')}. Structure: 2 easy (20s), 2 medium (60s), 2 hard (120s),
            in that order. Keep questions concise.
            """
        ).strip()
        return call(prompt, GeneratedQuestionSet, cfg=route, client=client, system=INTERVIEWER_SYSTEM).model_dump()

    return _invoke


def answer_scorer(route: LlmRoute, *, client: Optional[HttpClient] = None) -> Callable[..., Dict[str, Any]]:
    def _invoke(*, inputs: Dict[str, Any], **_: Any) -> Dict[str, Any]:
        prompt = dedent(
            f"""
            Score the candidate answer from 0 to 100 and give one line of feedback.

            Question: {inputs['question']}
            Difficulty: {inputs['difficulty']}
            Time limit: {inputs['time_limit']}
            Time spent: {inputs['time_spent']}
            Candidate answer: {inputs['answer']}
            """
        ).strip()
        return call(prompt, RemoteScore, cfg=route, client=client, system=INTERVIEWER_SYSTEM).model_dump()

    return _invoke


def summarizer(route: LlmRoute, *, client: Optional[HttpClient] = None) -> Callable[..., Dict[str, Any]]:
    def _invoke(*, inputs: Dict[str, Any], **_: Any) -> Dict[str, Any]:
        answers: List[Dict[str, Any]] = inputs.get("answers", [])
        transcript = "\n\n".join(
            f"Q: {a['question']}\nA: {a['answer']}\nScore: {a['score']}" for a in answers
        )
        prompt = (
            f"Write a concise 3-sentence summary about {inputs['name']}, highlighting strengths and "
            f"weaknesses, based on the answers below and the total score ({inputs['total_score']}). "
            f"Do not exceed {inputs.get('max_words', 60)} words.\n\n{transcript}"
        )
        return call(prompt, SummaryResult, cfg=route, client=client, system=INTERVIEWER_SYSTEM).model_dump()

    return _invoke


BUILDERS: Dict[str, Callable[..., Callable[..., Dict[str, Any]]]] = {
    QUESTION_GEN_KEY: question_generator,
    SCORER_KEY: answer_scorer,
    SUMMARY_KEY: summarizer,
}


def bind_remote_models(cfg: AppConfig, *, client: Optional[HttpClient] = None) -> List[str]:
    """Bind a callable for every collaborator key mapped in ``cfg.registry``."""

    bound: List[str] = []
    for key, builder in BUILDERS.items():
        if key not in cfg.registry:
            continue
        bind_model(key, builder(resolve_route(cfg, key), client=client))
        bound.append(key)
    logger.info("Bound remote collaborators: %s", ", ".join(bound) or "none")
    return bound


def bind_from_file(path: Path) -> List[str]:
    """Load the JSON app config at ``path`` if present and bind its routes."""

    if not path.exists():
        logger.info("No app config at %s; all collaborators run locally", path)
        return []
    try:
        cfg = load_config(path)
    except (OSError, json.JSONDecodeError, ValueError) as exc:
        logger.warning("Ignoring unreadable app config %s: %s", path, exc)
        return []
    return bind_remote_models(cfg)


__all__ = ["BUILDERS", "answer_scorer", "bind_from_file", "bind_remote_models", "question_generator", "summarizer"]
