"""Heuristic classifier for missing candidate profile fields.

Only the first missing field of the ``[name, email, phone]`` checklist is
ever considered, so one field is requested per bot turn and a reply shaped
like a later field is never accepted for an earlier one.
"""
from __future__ import annotations

import re
from typing import Callable, Dict, Optional, Sequence

from agents.types import REQUIRED_FIELDS, Candidate, ProfileDecision

EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)*\.[A-Za-z]{2,}")
PHONE_RE = re.compile(r"\+?\d[\d\s().-]*\d")
MIN_PHONE_DIGITS = 7

PROMPTS: Dict[str, str] = {
    "name": "I could not find your name in the resume. What is your full name?",
    "email": "I could not find your email in the resume. Please provide your email address.",
    "phone": "I could not find your phone number in the resume. Please provide your phone number.",
}


def _match_email(text: str) -> Optional[str]:
    found = EMAIL_RE.search(text)
    return found.group(0) if found else None


def _match_phone(text: str) -> Optional[str]:
    for found in PHONE_RE.finditer(text):
        candidate = found.group(0)
        if sum(ch.isdigit() for ch in candidate) >= MIN_PHONE_DIGITS:
            return candidate.strip()
    return None


def _match_name(text: str) -> Optional[str]:
    tokens = text.split()
    if len(tokens) < 2 or not tokens[0][0].isupper():
        return None
    return " ".join(tokens)


MATCHERS: Dict[str, Callable[[str], Optional[str]]] = {
    "name": _match_name,
    "email": _match_email,
    "phone": _match_phone,
}


def first_missing(candidate: Candidate) -> Optional[str]:
    missing = candidate.missing_fields()
    return missing[0] if missing else None


def prompt_for(field: str) -> str:
    return PROMPTS[field]


def classify_turn(text: str, missing: Sequence[str]) -> Optional[ProfileDecision]:
    """Return the field update ``text`` supplies, or ``None`` to forward the turn.

    ``missing`` is the ordered list of empty fields; only its head is tried.
    """

    pending = [field for field in REQUIRED_FIELDS if field in missing]
    if not pending:
        return None
    field = pending[0]
    value = MATCHERS[field](text.strip())
    if value is None:
        return None
    return ProfileDecision(field=field, value=value)


__all__ = ["classify_turn", "first_missing", "prompt_for", "MATCHERS", "PROMPTS"]
