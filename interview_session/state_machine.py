"""Session orchestration for one active candidate.

Every inbound event is handled under a single re-entrant lock, so the timer
thread, HTTP handlers and the console all go through the same serialized
consumer. Each event performs at most one phase transition and emits
commands to the sink; the machine itself never touches storage.

Answers are scored locally before the machine advances. When remote scoring
is enabled the remote scorer runs on an executor outside the lock and its
result re-enters as a ``RemoteScoreReady`` event that corrects the answer.
"""
from __future__ import annotations

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from enum import Enum
from threading import RLock
from typing import Callable, List, Literal, Optional, Set, Union

from pydantic import BaseModel

from agents.answer_evaluator import AnswerEvaluator
from agents.profile_collector import classify_turn, first_missing, prompt_for
from agents.question_sequencer import QuestionSequencer
from agents.types import Answer, Candidate, ChatTurn, EvalResult, Question, utc_now
from config.settings import settings
from observability import log_event
from services.commands import (
    AppendChatTurn,
    Command,
    CommandSink,
    CorrectAnswerScore,
    RecordAnswer,
    RecordQuestionSet,
    RequestSummary,
    SetStatus,
    SetSummary,
    UpdateCandidateFields,
)
from services.scoring import SessionAggregator
from services.timer import TimerController

logger = logging.getLogger(__name__)

AUTO_SUBMIT_TEXT = "(No answer, auto-submitted)"


class SessionPhase(str, Enum):
    NO_CANDIDATE = "no_candidate"
    COLLECTING_PROFILE = "collecting_profile"
    IDLE = "idle"
    ASKING_QUESTION = "asking_question"
    PAUSED = "paused"
    FINISHED = "finished"


class UserTurn(BaseModel):
    kind: Literal["user_turn"] = "user_turn"
    text: str
    # Question index the client believed was active; stale values are dropped.
    question_index: Optional[int] = None


class StartSession(BaseModel):
    kind: Literal["start"] = "start"


class TimerExpired(BaseModel):
    kind: Literal["timer_expired"] = "timer_expired"
    question_index: int


class PauseSession(BaseModel):
    kind: Literal["pause"] = "pause"


class ResumeSession(BaseModel):
    kind: Literal["resume"] = "resume"


class RemoteScoreReady(BaseModel):
    """Result of a background remote scoring call; ``None`` means it fell back."""

    kind: Literal["remote_score"] = "remote_score"
    generation: int
    question_index: int
    result: Optional[EvalResult] = None


class SwitchCandidate(BaseModel):
    kind: Literal["switch_candidate"] = "switch_candidate"
    candidate: Optional[Candidate] = None


InboundEvent = Union[
    UserTurn, StartSession, TimerExpired, PauseSession, ResumeSession, SwitchCandidate, RemoteScoreReady
]


class SessionSnapshot(BaseModel):
    phase: SessionPhase
    candidate_id: Optional[str] = None
    question_index: Optional[int] = None
    question: Optional[Question] = None
    question_count: int = 0
    remaining_seconds: int = 0
    missing_fields: List[str] = []


TimerFactory = Callable[[Callable[[object], None]], TimerController]


class SessionStateMachine:
    def __init__(
        self,
        sink: CommandSink,
        *,
        sequencer: Optional[QuestionSequencer] = None,
        evaluator: Optional[AnswerEvaluator] = None,
        aggregator: Optional[SessionAggregator] = None,
        timer_factory: Optional[TimerFactory] = None,
        start_command: Optional[str] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        self._sink = sink
        self._sequencer = sequencer or QuestionSequencer()
        self._evaluator = evaluator or AnswerEvaluator()
        self._aggregator = aggregator or SessionAggregator()
        self._start_command = (start_command or settings.START_COMMAND).strip().lower()
        self._lock = RLock()
        self._timer = (timer_factory or TimerController)(self._on_timer_expired)
        self._outbox: List[Command] = []
        self._executor = executor
        self._owns_executor = executor is None
        self._futures: Set[Future] = set()
        # Bumped on every candidate switch; remote scores from older sessions are dropped.
        self._generation = 0
        self._scoring: Set[int] = set()
        self._finish_deferred = False
        self._reset(None)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def timer(self) -> TimerController:
        return self._timer

    @property
    def phase(self) -> SessionPhase:
        with self._lock:
            return self._phase

    @property
    def candidate(self) -> Optional[Candidate]:
        with self._lock:
            return self._candidate.model_copy(deep=True) if self._candidate else None

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            cand = self._candidate
            asking = self._phase in (SessionPhase.ASKING_QUESTION, SessionPhase.PAUSED)
            return SessionSnapshot(
                phase=self._phase,
                candidate_id=cand.id if cand else None,
                question_index=self._index if asking else None,
                question=cand.questions[self._index] if asking and cand else None,
                question_count=len(cand.questions) if cand else 0,
                remaining_seconds=self._timer.remaining if asking else 0,
                missing_fields=cand.missing_fields() if cand else [],
            )

    def dispatch(self, event: InboundEvent) -> List[Command]:
        """Handle one event and return the commands it emitted."""

        with self._lock:
            outbox_start = len(self._outbox)
            before = self._phase
            handler = getattr(self, f"_handle_{event.kind}")
            handler(event)
            emitted = self._outbox[outbox_start:]
            del self._outbox[outbox_start:]
            if self._phase != before:
                log_event(
                    "transition",
                    self._session_id(),
                    event=event.kind,
                    phase=f"{before.value}->{self._phase.value}",
                    index=self._index,
                )
            return emitted

    def activate(self, candidate: Optional[Candidate]) -> List[Command]:
        return self.dispatch(SwitchCandidate(candidate=candidate))

    def submit(self, text: str, question_index: Optional[int] = None) -> List[Command]:
        return self.dispatch(UserTurn(text=text, question_index=question_index))

    def start(self) -> List[Command]:
        return self.dispatch(StartSession())

    def pause(self) -> List[Command]:
        return self.dispatch(PauseSession())

    def resume(self) -> List[Command]:
        return self.dispatch(ResumeSession())

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for background remote scoring; ``False`` if some is still running at ``timeout``."""

        with self._lock:
            futures = list(self._futures)
        _, not_done = wait(futures, timeout=timeout)
        return not not_done

    def shutdown(self) -> None:
        with self._lock:
            self._timer.shutdown()
            executor, self._executor = self._executor, None
        # Scoring workers dispatch back into the machine, so wait without the lock.
        if executor is not None and self._owns_executor:
            executor.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------
    def _handle_switch_candidate(self, event: SwitchCandidate) -> None:
        self._reset(event.candidate)
        cand = self._candidate
        if cand is None:
            return

        if cand.status == "completed":
            self._phase = SessionPhase.FINISHED
            score = cand.final_score if cand.final_score is not None else 0
            self._bot(f"Welcome back {cand.name or 'there'}. This interview is complete. Final score: {score}/100.")
            return

        if cand.answers:
            self._bot(
                f"Welcome back {cand.name or 'there'}. Type \"{self._start_command}\" to resume the interview, "
                "or fill in any missing details first."
            )
        else:
            self._bot(
                f"Hi {cand.name or 'there'}! I'm your interview assistant. I'll ask 6 questions "
                f"(2 easy, 2 medium, 2 hard). Type \"{self._start_command}\" when you are ready."
            )
        missing = first_missing(cand)
        if missing:
            self._phase = SessionPhase.COLLECTING_PROFILE
            self._bot(prompt_for(missing))
        else:
            self._phase = SessionPhase.IDLE

    def _handle_user_turn(self, event: UserTurn) -> None:
        cand = self._candidate
        if cand is None:
            log_event("turn_unrouted", "-", reason="no_active_candidate")
            return

        if event.question_index is not None and not self._is_current(event.question_index):
            self._drop_duplicate("user_turn", event.question_index, reason="stale_index")
            return

        if self._phase is SessionPhase.ASKING_QUESTION:
            if event.question_index is None:
                # An unindexed answer cannot be told apart from a late reply to an expired question.
                self._drop_duplicate("user_turn", None, reason="missing_index")
                return
            self._user(event.text.strip() or "(empty answer)")
            self._resolve_question(event.text, timed_out=False)
            return

        text = event.text.strip()
        if not text:
            return
        self._user(text)

        if self._phase is SessionPhase.PAUSED:
            self._bot("The interview is paused. Resume it to continue answering.")
            return
        if self._phase is SessionPhase.FINISHED:
            log_event("turn_unrouted", cand.id, reason="finished")
            return
        self._route_free_text(text)

    def _handle_start(self, _event: StartSession) -> None:
        if self._candidate is None:
            return
        self._try_start()

    def _handle_timer_expired(self, event: TimerExpired) -> None:
        if self._phase is not SessionPhase.ASKING_QUESTION or event.question_index != self._index:
            self._drop_duplicate("timer_expired", event.question_index)
            return
        self._user(AUTO_SUBMIT_TEXT)
        self._resolve_question("", timed_out=True)

    def _handle_remote_score(self, event: RemoteScoreReady) -> None:
        index = event.question_index
        if event.generation != self._generation or index not in self._scoring:
            self._drop_duplicate("remote_score", index, reason="stale_session")
            return
        self._scoring.discard(index)
        if event.result is None:
            log_event("fallback", self._candidate.id, collaborator="scorer", index=index)
        else:
            self._apply_remote_score(index, event.result)
        if self._finish_deferred and not self._scoring:
            self._complete()

    def _handle_pause(self, _event: PauseSession) -> None:
        if self._phase is not SessionPhase.ASKING_QUESTION:
            return
        if not self._timer.pause():
            return
        self._phase = SessionPhase.PAUSED
        self._set_status("paused")
        self._bot(f"Interview paused with {self._timer.remaining}s remaining.")

    def _handle_resume(self, _event: ResumeSession) -> None:
        if self._phase is not SessionPhase.PAUSED:
            return
        self._timer.resume()
        self._phase = SessionPhase.ASKING_QUESTION
        self._set_status("incomplete")
        self._bot(f"Resumed. You have {self._timer.remaining}s left for this question.")

    # ------------------------------------------------------------------
    # Routing and transitions
    # ------------------------------------------------------------------
    def _route_free_text(self, text: str) -> None:
        cand = self._candidate
        missing = cand.missing_fields()
        if missing:
            decision = classify_turn(text, missing)
            if decision is not None:
                setattr(cand, decision.field, decision.value)
                self._emit(UpdateCandidateFields(candidate_id=cand.id, **{decision.field: decision.value}))
                log_event("profile_field", cand.id, field=decision.field)
                self._bot(f"Thanks, saved {decision.field} as \"{decision.value}\".")
                self._after_profile_update()
                return

        if text.lower() == self._start_command:
            self._try_start()
            return

        log_event("turn_unrouted", cand.id, phase=self._phase.value)
        if missing:
            self._bot(prompt_for(missing[0]))

    def _after_profile_update(self) -> None:
        missing = first_missing(self._candidate)
        if missing:
            self._phase = SessionPhase.COLLECTING_PROFILE
            self._bot(prompt_for(missing))
            return
        self._phase = SessionPhase.IDLE
        self._bot(f"All set. Type \"{self._start_command}\" to begin the interview.")

    def _try_start(self) -> None:
        cand = self._candidate
        if self._phase in (SessionPhase.ASKING_QUESTION, SessionPhase.PAUSED):
            log_event("turn_unrouted", cand.id, reason="already_running")
            return
        if self._phase is SessionPhase.FINISHED:
            self._bot("This interview is already complete.")
            return

        missing = first_missing(cand)
        if missing:
            self._phase = SessionPhase.COLLECTING_PROFILE
            self._bot(prompt_for(missing))
            return

        if not cand.questions:
            plan = self._sequencer.plan()
            if plan.fallback:
                log_event("fallback", cand.id, collaborator="question_generator")
            questions = plan.questions
            cand.questions = questions
            cand.started_at = utc_now()
            self._emit(RecordQuestionSet(candidate_id=cand.id, questions=questions, started_at=cand.started_at))
        elif cand.status == "paused":
            self._set_status("incomplete")

        self._index = len(cand.answers)
        if self._index >= len(cand.questions):
            self._finish()
            return
        self._begin_question(self._index)

    def _begin_question(self, index: int) -> None:
        cand = self._candidate
        question = cand.questions[index]
        self._index = index
        cand.current_question_index = index
        self._phase = SessionPhase.ASKING_QUESTION
        self._bot(
            f"Question {index + 1}/{len(cand.questions)} ({question.difficulty.upper()}, "
            f"{question.time_limit}s): {question.text}"
        )
        self._timer.arm(question.time_limit, tag=index)

    def _resolve_question(self, text: str, *, timed_out: bool) -> None:
        cand = self._candidate
        index = self._index
        question = cand.questions[index]
        time_spent = question.time_limit if timed_out else self._timer.elapsed
        self._timer.cancel()

        result = self._evaluator.evaluate_local(question, text, time_spent)
        answer = Answer(
            question_id=question.id,
            question_text=question.text,
            answer_text=text.strip(),
            difficulty=question.difficulty,
            score=result.score,
            time_spent_seconds=time_spent,
            feedback=result.feedback,
        )
        cand.answers.append(answer)
        cand.total_score += answer.score
        self._index = index + 1
        cand.current_question_index = self._index
        self._emit(RecordAnswer(candidate_id=cand.id, position=index, answer=answer))
        log_event("answer", cand.id, index=index, score=answer.score, source=result.source)
        if self._evaluator.wants_remote(text):
            self._request_remote_score(index, question, text, time_spent)

        prefix = "Time's up. " if timed_out else ""
        self._bot(f"{prefix}Score: {answer.score}/100. {answer.feedback}")

        if self._index < len(cand.questions):
            self._begin_question(self._index)
        else:
            self._finish()

    def _finish(self) -> None:
        self._timer.cancel()
        self._phase = SessionPhase.FINISHED
        if self._scoring:
            self._finish_deferred = True
            self._bot("All questions answered. Final scoring is in progress.")
            return
        self._complete()

    def _complete(self) -> None:
        cand = self._candidate
        self._finish_deferred = False
        result = self._aggregator.aggregate(cand.answers, candidate_name=cand.name)
        cand.final_score = result.final_score
        cand.summary = result.summary
        cand.status = "completed"
        cand.completed_at = utc_now()
        self._emit(SetSummary(candidate_id=cand.id, summary=result.summary, final_score=result.final_score))
        self._emit(SetStatus(candidate_id=cand.id, status="completed", completed_at=cand.completed_at))
        self._bot(f"Interview complete! Final score: {result.final_score}/100. Summary saved.")
        self._emit(
            RequestSummary(
                candidate_id=cand.id,
                name=cand.name,
                answers=list(cand.answers),
                total_score=cand.total_score,
                final_score=result.final_score,
            )
        )

    # ------------------------------------------------------------------
    # Remote scoring
    # ------------------------------------------------------------------
    def _request_remote_score(self, index: int, question: Question, text: str, time_spent: int) -> None:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="scoring")
        self._scoring.add(index)
        future = self._executor.submit(self._score_remotely, self._generation, index, question, text, time_spent)
        self._futures.add(future)
        future.add_done_callback(self._forget)

    def _score_remotely(self, generation: int, index: int, question: Question, text: str, time_spent: int) -> None:
        # Runs on the executor without the lock; the result comes back as an ordinary event.
        result = self._evaluator.evaluate_remote(question, text, time_spent)
        self.dispatch(RemoteScoreReady(generation=generation, question_index=index, result=result))

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._futures.discard(future)

    def _apply_remote_score(self, index: int, result: EvalResult) -> None:
        cand = self._candidate
        previous = cand.answers[index]
        cand.answers[index] = previous.model_copy(update={"score": result.score, "feedback": result.feedback})
        cand.total_score += result.score - previous.score
        self._emit(
            CorrectAnswerScore(candidate_id=cand.id, position=index, score=result.score, feedback=result.feedback)
        )
        log_event("answer", cand.id, index=index, score=result.score, source=result.source)
        self._bot(f"Question {index + 1} re-scored: {result.score}/100. {result.feedback}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _reset(self, candidate: Optional[Candidate]) -> None:
        self._timer.cancel()
        if self._finish_deferred:
            # Outgoing candidate keeps its local scores for anything still being re-scored.
            self._complete()
        self._generation += 1
        self._scoring.clear()
        self._candidate = candidate.model_copy(deep=True) if candidate else None
        self._index = 0
        self._phase = SessionPhase.NO_CANDIDATE if candidate is None else SessionPhase.IDLE

    def _is_current(self, index: int) -> bool:
        return self._phase in (SessionPhase.ASKING_QUESTION, SessionPhase.PAUSED) and index == self._index

    def _on_timer_expired(self, tag: object) -> None:
        if not isinstance(tag, int):
            return
        self.dispatch(TimerExpired(question_index=tag))

    def _drop_duplicate(self, kind: str, index: Optional[int], reason: str = "resolved") -> None:
        log_event(
            "duplicate_dropped",
            self._session_id(),
            event=kind,
            index=index,
            phase=self._phase.value,
            reason=reason,
        )

    def _set_status(self, status: str) -> None:
        self._candidate.status = status
        self._emit(SetStatus(candidate_id=self._candidate.id, status=status))

    def _bot(self, text: str) -> None:
        self._chat("bot", text)

    def _user(self, text: str) -> None:
        self._chat("user", text)

    def _chat(self, origin: str, text: str) -> None:
        turn = ChatTurn(origin=origin, text=text)
        self._candidate.chat.append(turn)
        self._emit(AppendChatTurn(candidate_id=self._candidate.id, turn=turn))

    def _emit(self, command: Command) -> None:
        self._outbox.append(command)
        self._sink(command)

    def _session_id(self) -> str:
        return self._candidate.id if self._candidate else "-"


__all__ = [
    "InboundEvent",
    "PauseSession",
    "RemoteScoreReady",
    "ResumeSession",
    "SessionPhase",
    "SessionSnapshot",
    "SessionStateMachine",
    "StartSession",
    "SwitchCandidate",
    "TimerExpired",
    "UserTurn",
]
