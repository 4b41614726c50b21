"""Process-level wiring of the candidate store and the session state machine."""
from __future__ import annotations

import logging
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Optional

from agents.answer_evaluator import AnswerEvaluator
from agents.question_sequencer import QuestionSequencer
from agents.types import Candidate
from candidate_management import CandidateStore
from config.settings import settings
from interview_session import SessionStateMachine
from interview_session.state_machine import TimerFactory
from services.commands import Command, CommandSink, StoreCommandSink
from services.resume_intake import Extractor, intake_resume
from services.scoring import SessionAggregator

logger = logging.getLogger(__name__)


class InterviewRuntime:
    """One store plus one orchestrator; at most one active candidate at a time."""

    def __init__(
        self,
        store: CandidateStore,
        *,
        timer_factory: Optional[TimerFactory] = None,
        sequencer: Optional[QuestionSequencer] = None,
        evaluator: Optional[AnswerEvaluator] = None,
        aggregator: Optional[SessionAggregator] = None,
        sink: Optional[CommandSink] = None,
    ) -> None:
        self.store = store
        self.aggregator = aggregator or SessionAggregator()
        self.store_sink = StoreCommandSink(store, aggregator=self.aggregator)
        self.machine = SessionStateMachine(
            sink or self.store_sink,
            sequencer=sequencer,
            evaluator=evaluator,
            aggregator=self.aggregator,
            timer_factory=timer_factory,
        )
        self._lock = RLock()

    def activate(self, candidate_id: Optional[str]) -> List[Command]:
        """Switch the active candidate; a full teardown of the previous session."""

        with self._lock:
            self.store.set_active_candidate(candidate_id)
            candidate = self.store.get_candidate(candidate_id) if candidate_id else None
            return self.machine.activate(candidate)

    def restore_active(self) -> Optional[Candidate]:
        with self._lock:
            candidate = self.store.get_active_candidate()
            if candidate is not None:
                self.machine.activate(candidate)
            return candidate

    def upload_resume(
        self,
        data: bytes,
        content_type: Optional[str],
        extractor: Optional[Extractor] = None,
    ) -> Dict[str, Any]:
        with self._lock:
            candidate = intake_resume(self.store, data, content_type, extractor)
            commands = self.activate(candidate.id)
            return {"candidate": candidate, "commands": commands}

    def shutdown(self) -> None:
        self.machine.shutdown()
        self.store_sink.close()


def build_runtime(db_path: Optional[str] = None, **kwargs: Any) -> InterviewRuntime:
    store = CandidateStore(Path(db_path or settings.DB_PATH))
    runtime = InterviewRuntime(store, **kwargs)
    restored = runtime.restore_active()
    if restored is not None:
        logger.info("Restored active candidate %s", restored.id)
    return runtime


__all__ = ["InterviewRuntime", "build_runtime"]
