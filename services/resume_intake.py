"""Resume upload validation and candidate creation."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from agents.types import Candidate, ResumeExtraction
from config.registry import RESUME_EXTRACTOR_KEY, get_model
from config.settings import settings

logger = logging.getLogger(__name__)

Extractor = Callable[..., Dict[str, Any]]


class ResumeRejectedError(ValueError):
    """Upload refused before or during extraction; ``message`` is shown to the user."""

    def __init__(self, message: str, *, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def normalize_content_type(content_type: Optional[str]) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def too_large() -> ResumeRejectedError:
    limit_mb = settings.MAX_RESUME_BYTES / (1024 * 1024)
    return ResumeRejectedError(f"File is too large (limit {limit_mb:.0f} MB).", status_code=413)


def check_declared_size(content_length: Optional[str]) -> None:
    """Reject on the declared ``Content-Length`` before any of the body is read."""

    if content_length and content_length.strip().isdigit() and int(content_length) > settings.MAX_RESUME_BYTES:
        raise too_large()


def validate_upload(data: bytes, content_type: Optional[str]) -> str:
    """Check type and size before any extraction work; returns the bare MIME type."""

    mime = normalize_content_type(content_type)
    if not data:
        raise ResumeRejectedError("No file uploaded.")
    if mime not in settings.ALLOWED_RESUME_TYPES:
        raise ResumeRejectedError("Only PDF and DOCX files are supported.", status_code=415)
    if len(data) > settings.MAX_RESUME_BYTES:
        raise too_large()
    return mime


def extract_resume(data: bytes, mime: str, extractor: Optional[Extractor] = None) -> ResumeExtraction:
    try:
        fn = extractor or get_model(RESUME_EXTRACTOR_KEY)
    except KeyError as exc:
        raise ResumeRejectedError("Resume parsing is not available right now.", status_code=503) from exc

    try:
        return ResumeExtraction.model_validate(fn(data=data, content_type=mime))
    except ResumeRejectedError:
        raise
    except (ValidationError, ValueError, TypeError) as exc:
        logger.warning("Resume extraction failed: %s", exc)
        raise ResumeRejectedError("Failed to parse resume.", status_code=422) from exc


def intake_resume(store, data: bytes, content_type: Optional[str], extractor: Optional[Extractor] = None) -> Candidate:
    """Validate, extract and create a candidate; empty fields are collected later in chat."""

    mime = validate_upload(data, content_type)
    extraction = extract_resume(data, mime, extractor)
    candidate = store.create_candidate(
        name=extraction.name,
        email=extraction.email,
        phone=extraction.phone,
    )
    logger.info(
        "Created candidate %s from resume (missing=%s)",
        candidate.id,
        ",".join(candidate.missing_fields()) or "none",
    )
    return candidate


__all__ = [
    "ResumeRejectedError",
    "check_declared_size",
    "extract_resume",
    "intake_resume",
    "normalize_content_type",
    "too_large",
    "validate_upload",
]
