"""Outbound commands emitted by the session state machine and their store sink."""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from typing import Callable, List, Literal, Optional, Set, Union

from pydantic import BaseModel, Field

from agents.types import Answer, CandidateStatus, ChatTurn, Question
from observability import log_event
from services.scoring import SessionAggregator

logger = logging.getLogger(__name__)


class UpdateCandidateFields(BaseModel):
    kind: Literal["update_candidate_fields"] = "update_candidate_fields"
    candidate_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class RecordQuestionSet(BaseModel):
    kind: Literal["record_question_set"] = "record_question_set"
    candidate_id: str
    questions: List[Question]
    started_at: str


class RecordAnswer(BaseModel):
    kind: Literal["record_answer"] = "record_answer"
    candidate_id: str
    position: int = Field(ge=0)
    answer: Answer


class CorrectAnswerScore(BaseModel):
    """Replace the local score of an already recorded answer with the remote one."""

    kind: Literal["correct_answer_score"] = "correct_answer_score"
    candidate_id: str
    position: int = Field(ge=0)
    score: int = Field(ge=0, le=100)
    feedback: str


class SetStatus(BaseModel):
    kind: Literal["set_status"] = "set_status"
    candidate_id: str
    status: CandidateStatus
    completed_at: Optional[str] = None


class SetSummary(BaseModel):
    kind: Literal["set_summary"] = "set_summary"
    candidate_id: str
    summary: str
    final_score: int = Field(ge=0, le=100)


class AppendChatTurn(BaseModel):
    kind: Literal["append_chat_turn"] = "append_chat_turn"
    candidate_id: str
    turn: ChatTurn


class RequestSummary(BaseModel):
    kind: Literal["request_summary"] = "request_summary"
    candidate_id: str
    name: str
    answers: List[Answer]
    total_score: int
    final_score: int = Field(ge=0, le=100)


Command = Union[
    UpdateCandidateFields,
    RecordQuestionSet,
    RecordAnswer,
    CorrectAnswerScore,
    SetStatus,
    SetSummary,
    AppendChatTurn,
    RequestSummary,
]

CommandSink = Callable[[Command], None]


def bot_messages(commands: List[Command]) -> List[ChatTurn]:
    """Bot chat turns among ``commands``, in emission order."""
    return [c.turn for c in commands if isinstance(c, AppendChatTurn) and c.turn.origin == "bot"]


class StoreCommandSink:
    """Apply commands to a candidate store.

    ``RequestSummary`` runs the remote summarizer on a background executor
    and only overwrites the stored templated summary when it succeeds.
    """

    def __init__(
        self,
        store,
        *,
        aggregator: Optional[SessionAggregator] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        self._store = store
        self._aggregator = aggregator or SessionAggregator()
        self._executor = executor
        self._owns_executor = executor is None
        self._pending: Set[Future] = set()
        self._pending_lock = threading.Lock()

    def __call__(self, command: Command) -> None:
        handler = getattr(self, f"_on_{command.kind}")
        handler(command)

    def _on_update_candidate_fields(self, cmd: UpdateCandidateFields) -> None:
        fields = cmd.model_dump(include={"name", "email", "phone"}, exclude_none=True)
        self._store.update_candidate_fields(cmd.candidate_id, **fields)

    def _on_record_question_set(self, cmd: RecordQuestionSet) -> None:
        self._store.record_question_set(cmd.candidate_id, cmd.questions, started_at=cmd.started_at)

    def _on_record_answer(self, cmd: RecordAnswer) -> None:
        self._store.record_answer(cmd.candidate_id, cmd.position, cmd.answer)

    def _on_correct_answer_score(self, cmd: CorrectAnswerScore) -> None:
        self._store.correct_answer_score(cmd.candidate_id, cmd.position, cmd.score, cmd.feedback)

    def _on_set_status(self, cmd: SetStatus) -> None:
        self._store.set_status(cmd.candidate_id, cmd.status, completed_at=cmd.completed_at)

    def _on_set_summary(self, cmd: SetSummary) -> None:
        self._store.set_summary(cmd.candidate_id, cmd.summary, final_score=cmd.final_score)

    def _on_append_chat_turn(self, cmd: AppendChatTurn) -> None:
        self._store.append_chat_turn(cmd.candidate_id, cmd.turn)

    def _on_request_summary(self, cmd: RequestSummary) -> None:
        if not self._aggregator.remote_enabled:
            return
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="summary")
        future = self._executor.submit(self._refine_summary, cmd)
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    @property
    def pending(self) -> List[Future]:
        """Summary refinements still running."""
        with self._pending_lock:
            return [future for future in self._pending if not future.done()]

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for running refinements; ``False`` if some are still running at ``timeout``."""
        _, not_done = wait(self.pending, timeout=timeout)
        return not not_done

    def _forget(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def _refine_summary(self, cmd: RequestSummary) -> Optional[str]:
        text = self._aggregator.remote_summary(name=cmd.name, answers=cmd.answers, total=cmd.total_score)
        if text is None:
            log_event("fallback", cmd.candidate_id, collaborator="summarizer")
            return None
        self._store.set_summary(cmd.candidate_id, text, final_score=cmd.final_score)
        return text

    def close(self) -> None:
        if self._executor is not None and self._owns_executor:
            self._executor.shutdown(wait=True)
            self._executor = None


__all__ = [
    "AppendChatTurn",
    "Command",
    "CorrectAnswerScore",
    "CommandSink",
    "RecordAnswer",
    "RecordQuestionSet",
    "RequestSummary",
    "SetStatus",
    "SetSummary",
    "StoreCommandSink",
    "UpdateCandidateFields",
    "bot_messages",
]
