"""FastAPI routes for interview session control."""
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool

from agents.types import ResumeExtraction
from api.schemas import CandidateDetail, CandidateSummary, SessionResp, SortBy, TurnReq
from candidate_management import CandidateNotFoundError
from config.settings import settings
from services.commands import Command, bot_messages
from services.resume_intake import ResumeRejectedError, check_declared_size, too_large
from services.sessions import InterviewRuntime, build_runtime

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/interview")

_RUNTIME: Optional[InterviewRuntime] = None


def get_runtime() -> InterviewRuntime:
    global _RUNTIME
    if _RUNTIME is None:
        _RUNTIME = build_runtime()
    return _RUNTIME


def _session_resp(runtime: InterviewRuntime, commands: Optional[List[Command]] = None) -> SessionResp:
    snap = runtime.machine.snapshot()
    candidate = runtime.machine.candidate
    return SessionResp(
        phase=snap.phase.value,
        candidate=CandidateSummary.from_candidate(candidate) if candidate else None,
        question_index=snap.question_index,
        question=snap.question,
        question_count=snap.question_count,
        remaining_seconds=snap.remaining_seconds,
        missing_fields=snap.missing_fields,
        messages=bot_messages(commands or []),
    )


async def _read_capped(request: Request) -> bytes:
    check_declared_size(request.headers.get("content-length"))
    chunks = bytearray()
    async for chunk in request.stream():
        chunks.extend(chunk)
        if len(chunks) > settings.MAX_RESUME_BYTES:
            raise too_large()
    return bytes(chunks)


@router.post("/resume", response_model=SessionResp)
async def upload_resume(request: Request, runtime: InterviewRuntime = Depends(get_runtime)) -> SessionResp:
    try:
        data = await _read_capped(request)
        # Extraction and SQLite writes are blocking; keep them off the event loop.
        result = await run_in_threadpool(runtime.upload_resume, data, request.headers.get("content-type"))
    except ResumeRejectedError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    return _session_resp(runtime, result["commands"])


@router.post("/candidates", response_model=SessionResp)
def create_candidate(extraction: ResumeExtraction, runtime: InterviewRuntime = Depends(get_runtime)) -> SessionResp:
    candidate = runtime.store.create_candidate(name=extraction.name, email=extraction.email, phone=extraction.phone)
    return _session_resp(runtime, runtime.activate(candidate.id))


@router.post("/candidates/{candidate_id}/activate", response_model=SessionResp)
def activate(candidate_id: str, runtime: InterviewRuntime = Depends(get_runtime)) -> SessionResp:
    try:
        commands = runtime.activate(candidate_id)
    except CandidateNotFoundError as exc:
        raise HTTPException(status_code=404, detail="candidate not found") from exc
    return _session_resp(runtime, commands)


@router.post("/turn", response_model=SessionResp)
def turn(req: TurnReq, runtime: InterviewRuntime = Depends(get_runtime)) -> SessionResp:
    commands = runtime.machine.submit(req.text, question_index=req.question_index)
    return _session_resp(runtime, commands)


@router.post("/start", response_model=SessionResp)
def start(runtime: InterviewRuntime = Depends(get_runtime)) -> SessionResp:
    return _session_resp(runtime, runtime.machine.start())


@router.post("/pause", response_model=SessionResp)
def pause(runtime: InterviewRuntime = Depends(get_runtime)) -> SessionResp:
    return _session_resp(runtime, runtime.machine.pause())


@router.post("/resume-session", response_model=SessionResp)
def resume(runtime: InterviewRuntime = Depends(get_runtime)) -> SessionResp:
    return _session_resp(runtime, runtime.machine.resume())


@router.get("/state", response_model=SessionResp)
def state(runtime: InterviewRuntime = Depends(get_runtime)) -> SessionResp:
    return _session_resp(runtime)


@router.get("/candidates", response_model=List[CandidateSummary])
def list_candidates(
    q: str = "",
    sort_by: SortBy = "score",
    runtime: InterviewRuntime = Depends(get_runtime),
) -> List[CandidateSummary]:
    return [CandidateSummary.from_candidate(c) for c in runtime.store.list_candidates(q, sort_by)]


@router.get("/candidates/{candidate_id}", response_model=CandidateDetail)
def get_candidate(candidate_id: str, runtime: InterviewRuntime = Depends(get_runtime)) -> CandidateDetail:
    try:
        candidate = runtime.store.get_candidate(candidate_id)
    except CandidateNotFoundError as exc:
        raise HTTPException(status_code=404, detail="candidate not found") from exc
    return CandidateDetail.from_candidate(candidate)
