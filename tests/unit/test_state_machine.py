"""Unit tests for the session orchestration state machine."""
from __future__ import annotations

import threading

import pytest

import interview_session.state_machine as state_machine
from agents.answer_evaluator import AnswerEvaluator
from agents.question_sequencer import QuestionSequencer
from agents.types import Candidate
from config.registry import QUESTION_GEN_KEY, SCORER_KEY, SUMMARY_KEY, bind_model
from interview_session import SessionPhase, TimerExpired
from services.commands import AppendChatTurn, RecordAnswer, RequestSummary, bot_messages
from services.scoring import SessionAggregator, final_score
from services.sessions import InterviewRuntime
from services.timer import TimerController

LONG_ANSWER = "I would profile the heap, compare snapshots and look for detached listeners. " * 2


def manual_timer(on_expired):
    return TimerController(on_expired, threaded=False)


def _texts(commands):
    return [turn.text for turn in bot_messages(commands)]


def _tick(runtime, n):
    for _ in range(n):
        runtime.machine.timer.tick()


def _answer(runtime, text):
    """Answer the active question the way a client does, echoing its index."""
    return runtime.machine.submit(text, question_index=runtime.machine.snapshot().question_index)


def _start(runtime, candidate):
    runtime.activate(candidate.id)
    return runtime.machine.start()


def test_profile_fields_collected_in_order(runtime, store):
    cand = store.create_candidate()
    commands = runtime.activate(cand.id)
    assert runtime.machine.phase is SessionPhase.COLLECTING_PROFILE
    assert "full name" in _texts(commands)[-1]

    commands = runtime.machine.submit("ada@example.com")
    assert runtime.machine.phase is SessionPhase.COLLECTING_PROFILE
    assert store.get_candidate(cand.id).name == ""
    assert "full name" in _texts(commands)[-1]

    runtime.machine.submit("Ada Lovelace")
    commands = runtime.machine.submit("ada@example.com")
    assert "phone" in _texts(commands)[-1]
    runtime.machine.submit("+44 20 7946 0958")

    stored = store.get_candidate(cand.id)
    assert (stored.name, stored.email, stored.phone) == ("Ada Lovelace", "ada@example.com", "+44 20 7946 0958")
    assert runtime.machine.phase is SessionPhase.IDLE


def test_start_blocked_while_fields_missing(runtime, store):
    cand = store.create_candidate(name="Ada Lovelace")
    runtime.activate(cand.id)
    commands = runtime.machine.submit("START")
    assert runtime.machine.phase is SessionPhase.COLLECTING_PROFILE
    assert "email" in _texts(commands)[-1]
    assert store.get_candidate(cand.id).questions == []


def test_unrouted_idle_text_changes_nothing(runtime, full_profile):
    runtime.activate(full_profile.id)
    commands = runtime.machine.submit("hello there, how does this work?")
    assert runtime.machine.phase is SessionPhase.IDLE
    assert [c.turn.origin for c in commands if isinstance(c, AppendChatTurn)] == ["user"]


def test_start_text_is_case_insensitive(runtime, full_profile):
    runtime.activate(full_profile.id)
    runtime.machine.submit("  Start ")
    assert runtime.machine.phase is SessionPhase.ASKING_QUESTION
    assert runtime.machine.snapshot().question_index == 0


def test_full_session_records_six_answers(runtime, store, full_profile):
    commands = _start(runtime, full_profile)
    assert _texts(commands)[-1].startswith("Question 1/6 (EASY, 20s)")

    for i in range(6):
        runtime.machine.submit(LONG_ANSWER, question_index=i)

    assert runtime.machine.phase is SessionPhase.FINISHED
    assert not runtime.machine.timer.armed
    stored = store.get_candidate(full_profile.id)
    assert len(stored.answers) == 6
    assert [a.question_id for a in stored.answers] == [q.id for q in stored.questions]
    assert stored.total_score == sum(a.score for a in stored.answers)
    assert stored.status == "completed"
    assert stored.final_score == final_score(stored.answers)
    assert "Ada Lovelace" in stored.summary
    assert stored.completed_at is not None


def test_total_score_tracks_each_submission(runtime, store, full_profile):
    _start(runtime, full_profile)
    _answer(runtime, "short")
    _answer(runtime, "")
    stored = store.get_candidate(full_profile.id)
    assert [a.score for a in stored.answers] == [35, 0]
    assert stored.total_score == 35
    assert stored.current_question_index == 2


def test_elapsed_ticks_drive_speed_bonus(runtime, store, full_profile):
    _start(runtime, full_profile)
    _tick(runtime, 3)
    _answer(runtime, "y" * 50)
    _tick(runtime, 15)
    _answer(runtime, "y" * 50)
    answers = store.get_candidate(full_profile.id).answers
    assert [a.time_spent_seconds for a in answers] == [3, 15]
    assert [a.score for a in answers] == [60, 55]


def test_expiry_auto_submits_empty_answer(runtime, store, full_profile):
    _start(runtime, full_profile)
    _tick(runtime, 20)
    stored = store.get_candidate(full_profile.id)
    assert len(stored.answers) == 1
    assert stored.answers[0].score == 0
    assert stored.answers[0].feedback == "No answer provided."
    assert stored.answers[0].time_spent_seconds == 20
    assert runtime.machine.snapshot().question_index == 1
    assert runtime.machine.timer.remaining == 20


def test_expiry_after_manual_submit_is_noop(runtime, store, full_profile):
    _start(runtime, full_profile)
    runtime.machine.submit(LONG_ANSWER, question_index=0)
    late = runtime.machine.dispatch(TimerExpired(question_index=0))
    assert late == []
    assert len(store.get_candidate(full_profile.id).answers) == 1


def test_manual_submit_after_expiry_is_noop(runtime, store, full_profile):
    _start(runtime, full_profile)
    _tick(runtime, 20)
    late = runtime.machine.submit(LONG_ANSWER, question_index=0)
    assert late == []
    answers = store.get_candidate(full_profile.id).answers
    assert len(answers) == 1
    assert answers[0].answer_text == ""


def test_pause_resume_keeps_remaining(runtime, store, full_profile):
    _start(runtime, full_profile)
    _tick(runtime, 8)
    runtime.machine.pause()
    assert runtime.machine.phase is SessionPhase.PAUSED
    assert store.get_candidate(full_profile.id).status == "paused"
    _tick(runtime, 30)
    assert runtime.machine.snapshot().remaining_seconds == 12

    commands = runtime.machine.submit("an answer while paused")
    assert "paused" in _texts(commands)[-1]
    assert store.get_candidate(full_profile.id).answers == []

    runtime.machine.resume()
    assert runtime.machine.phase is SessionPhase.ASKING_QUESTION
    assert runtime.machine.snapshot().remaining_seconds == 12
    assert store.get_candidate(full_profile.id).status == "incomplete"


def test_switch_candidate_tears_down_timer(runtime, store, full_profile):
    other = store.create_candidate(name="Grace Hopper", email="grace@navy.mil", phone="202-555-0143")
    _start(runtime, full_profile)
    runtime.activate(other.id)
    assert runtime.machine.phase is SessionPhase.IDLE
    assert not runtime.machine.timer.armed
    _tick(runtime, 200)
    assert store.get_candidate(full_profile.id).answers == []
    assert store.get_candidate(other.id).answers == []
    assert store.get_active_candidate().id == other.id


def test_switch_back_resumes_at_next_unanswered(runtime, store, full_profile):
    _start(runtime, full_profile)
    _answer(runtime, LONG_ANSWER)
    _answer(runtime, LONG_ANSWER)
    question_ids = [q.id for q in store.get_candidate(full_profile.id).questions]

    other = store.create_candidate(name="Grace Hopper", email="grace@navy.mil", phone="202-555-0143")
    runtime.activate(other.id)
    commands = runtime.activate(full_profile.id)
    assert "Welcome back" in _texts(commands)[0]

    runtime.machine.start()
    snap = runtime.machine.snapshot()
    assert snap.question_index == 2
    assert [q.id for q in store.get_candidate(full_profile.id).questions] == question_ids


def test_completed_candidate_is_terminal(runtime, store, full_profile):
    _start(runtime, full_profile)
    for _ in range(6):
        _answer(runtime, LONG_ANSWER)
    runtime.activate(full_profile.id)
    assert runtime.machine.phase is SessionPhase.FINISHED
    assert "already complete" in _texts(runtime.machine.start())[-1]
    assert runtime.machine.phase is SessionPhase.FINISHED
    assert len(store.get_candidate(full_profile.id).answers) == 6


def test_finish_requests_summary(runtime, full_profile):
    _start(runtime, full_profile)
    emitted = []
    for _ in range(6):
        emitted.extend(_answer(runtime, LONG_ANSWER))
    requests = [c for c in emitted if isinstance(c, RequestSummary)]
    assert len(requests) == 1
    assert len(requests[0].answers) == 6
    assert sum(isinstance(c, RecordAnswer) for c in emitted) == 6


def test_remote_summary_replaces_templated(store, full_profile):
    bind_model(SUMMARY_KEY, lambda **_: {"summary": "Strong fundamentals, thin on scaling."})
    runtime = InterviewRuntime(
        store,
        timer_factory=manual_timer,
        aggregator=SessionAggregator(remote_enabled=True),
    )
    try:
        _start(runtime, full_profile)
        for _ in range(6):
            _answer(runtime, LONG_ANSWER)
        assert runtime.store_sink.drain(timeout=5)
        assert store.get_candidate(full_profile.id).summary == "Strong fundamentals, thin on scaling."
    finally:
        runtime.shutdown()


def test_no_candidate_ignores_events(runtime):
    assert runtime.machine.phase is SessionPhase.NO_CANDIDATE
    assert runtime.machine.start() == []
    assert runtime.machine.submit("start") == []


def test_orchestrator_copy_is_isolated(runtime, store):
    cand = store.create_candidate(name="Ada Lovelace", email="ada@example.com", phone="555-0100 12")
    runtime.activate(cand.id)
    snapshot = runtime.machine.candidate
    assert isinstance(snapshot, Candidate)
    snapshot.name = "Changed"
    assert runtime.machine.candidate.name == "Ada Lovelace"


@pytest.fixture
def events(monkeypatch):
    recorded = []

    def record(kind, candidate_id, **fields):
        recorded.append((kind, fields))

    monkeypatch.setattr(state_machine, "log_event", record)
    return recorded


def _remote_runtime(store, **kwargs):
    return InterviewRuntime(
        store,
        timer_factory=manual_timer,
        evaluator=AnswerEvaluator(use_remote=True),
        **kwargs,
    )


def test_unindexed_answer_after_expiry_is_dropped(runtime, store, full_profile, events):
    _start(runtime, full_profile)
    _tick(runtime, 20)
    late = runtime.machine.submit("React is a UI library for building components.")
    assert late == []
    answers = store.get_candidate(full_profile.id).answers
    assert len(answers) == 1
    assert answers[0].answer_text == ""
    assert runtime.machine.snapshot().question_index == 1
    assert ("duplicate_dropped", {"event": "user_turn", "index": None, "phase": "asking_question", "reason": "missing_index"}) in events


def test_stale_index_dropped_after_finish(runtime, store, full_profile):
    _start(runtime, full_profile)
    for i in range(5):
        runtime.machine.submit(LONG_ANSWER, question_index=i)
    _tick(runtime, 120)
    assert runtime.machine.phase is SessionPhase.FINISHED

    late = runtime.machine.submit("my late answer for the last question", question_index=5)
    assert late == []
    chat = store.get_candidate(full_profile.id).chat
    assert chat[-1].text != "my late answer for the last question"


def test_stale_index_dropped_while_paused(runtime, full_profile):
    _start(runtime, full_profile)
    runtime.machine.submit(LONG_ANSWER, question_index=0)
    runtime.machine.pause()
    assert runtime.machine.submit("late", question_index=0) == []
    commands = runtime.machine.submit("current", question_index=1)
    assert "paused" in _texts(commands)[-1]


def test_remote_scoring_runs_outside_the_lock(store, full_profile):
    release = threading.Event()

    def slow_scorer(**_):
        release.wait(5)
        return {"score": 90, "feedback": "Thorough and correct."}

    bind_model(SCORER_KEY, slow_scorer)
    runtime = _remote_runtime(store)
    try:
        _start(runtime, full_profile)
        commands = runtime.machine.submit(LONG_ANSWER, question_index=0)
        assert sum(isinstance(c, RecordAnswer) for c in commands) == 1

        # The scorer is still blocked, yet the machine has already moved on.
        snap = runtime.machine.snapshot()
        assert snap.question_index == 1
        assert snap.remaining_seconds == 20
        assert store.get_candidate(full_profile.id).answers[0].score == 85

        release.set()
        assert runtime.machine.drain(timeout=5)
        stored = store.get_candidate(full_profile.id)
        assert stored.answers[0].score == 90
        assert stored.answers[0].feedback == "Thorough and correct."
        assert stored.total_score == 90
        assert "re-scored" in stored.chat[-1].text
    finally:
        release.set()
        runtime.shutdown()


def test_finish_waits_for_pending_remote_scores(store, full_profile):
    release = threading.Event()

    def gated_scorer(**_):
        release.wait(5)
        return {"score": 100, "feedback": "Excellent."}

    bind_model(SCORER_KEY, gated_scorer)
    runtime = _remote_runtime(store)
    try:
        _start(runtime, full_profile)
        for i in range(6):
            runtime.machine.submit(LONG_ANSWER, question_index=i)
        assert runtime.machine.phase is SessionPhase.FINISHED
        assert store.get_candidate(full_profile.id).status == "incomplete"

        release.set()
        assert runtime.machine.drain(timeout=5)
        stored = store.get_candidate(full_profile.id)
        assert stored.status == "completed"
        assert stored.total_score == 600
        assert stored.final_score == 100
    finally:
        release.set()
        runtime.shutdown()


def test_remote_score_for_previous_candidate_is_dropped(store, full_profile):
    release = threading.Event()

    def gated_scorer(**_):
        release.wait(5)
        return {"score": 10, "feedback": "Weak."}

    bind_model(SCORER_KEY, gated_scorer)
    other = store.create_candidate(name="Grace Hopper", email="grace@navy.mil", phone="202-555-0143")
    runtime = _remote_runtime(store)
    try:
        _start(runtime, full_profile)
        runtime.machine.submit(LONG_ANSWER, question_index=0)
        runtime.activate(other.id)
        release.set()
        assert runtime.machine.drain(timeout=5)
        assert store.get_candidate(full_profile.id).answers[0].score == 85
    finally:
        release.set()
        runtime.shutdown()


def test_scorer_fallback_is_logged(store, full_profile, events):
    bind_model(SCORER_KEY, lambda **_: {"nonsense": 1})
    runtime = _remote_runtime(store)
    try:
        _start(runtime, full_profile)
        runtime.machine.submit(LONG_ANSWER, question_index=0)
        assert runtime.machine.drain(timeout=5)
    finally:
        runtime.shutdown()
    assert ("fallback", {"collaborator": "scorer", "index": 0}) in events
    assert store.get_candidate(full_profile.id).answers[0].score == 85


def test_question_generator_fallback_is_logged(store, full_profile, events):
    bind_model(QUESTION_GEN_KEY, lambda **_: {"questions": []})
    runtime = InterviewRuntime(store, timer_factory=manual_timer, sequencer=QuestionSequencer(use_remote=True))
    try:
        _start(runtime, full_profile)
    finally:
        runtime.shutdown()
    assert ("fallback", {"collaborator": "question_generator"}) in events
    assert len(store.get_candidate(full_profile.id).questions) == 6
