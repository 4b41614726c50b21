from agents.answer_evaluator import NO_ANSWER_FEEDBACK, AnswerEvaluator, ScoringPolicy, evaluate_local
from agents.types import Question
from config.registry import SCORER_KEY, bind_model

EASY = Question(text="Q", difficulty="easy", time_limit=20)
MEDIUM = Question(text="Q", difficulty="medium", time_limit=60)
HARD = Question(text="Q", difficulty="hard", time_limit=120)


def test_empty_answer_scores_zero():
    for question in (EASY, MEDIUM, HARD):
        result = evaluate_local(question, "   ", 1)
        assert result.score == 0
        assert result.feedback == NO_ANSWER_FEEDBACK


def test_long_hard_fast_answer():
    result = evaluate_local(HARD, "x" * 90, 10)
    assert result.score == 95
    assert "thorough" in result.feedback


def test_medium_length_easy_slow_answer():
    result = evaluate_local(EASY, "y" * 50, 15)
    assert result.score == 55
    assert "lacks depth" in result.feedback


def test_short_answer_feedback_asks_for_reasoning():
    result = evaluate_local(MEDIUM, "short", 50)
    assert result.score == 35
    assert "reasoning" in result.feedback


def test_speed_cutoff_is_strict():
    assert evaluate_local(EASY, "y" * 50, 10).score == 55
    assert evaluate_local(EASY, "y" * 50, 9).score == 60


def test_policy_thresholds_are_configurable():
    policy = ScoringPolicy(short_answer_chars=5, medium_answer_chars=10)
    assert evaluate_local(MEDIUM, "y" * 12, 59, policy).score == 85


def test_remote_score_is_clamped():
    bind_model(SCORER_KEY, lambda **_: {"score": 140, "feedback": "excellent"})
    result = AnswerEvaluator(use_remote=True).evaluate(HARD, "a real answer", 30)
    assert result.score == 100
    assert result.source == "remote"


def test_remote_malformed_falls_back_to_local():
    bind_model(SCORER_KEY, lambda **_: {"unexpected": True})
    result = AnswerEvaluator(use_remote=True).evaluate(HARD, "x" * 90, 10)
    assert result.score == 95
    assert result.source == "local"


def test_remote_not_consulted_for_empty_answer():
    calls = []
    bind_model(SCORER_KEY, lambda **kw: calls.append(kw) or {"score": 90, "feedback": "?"})
    result = AnswerEvaluator(use_remote=True).evaluate(EASY, "", 3)
    assert result.score == 0
    assert calls == []


def test_remote_failure_reports_none():
    bind_model(SCORER_KEY, lambda **_: {"unexpected": True})
    evaluator = AnswerEvaluator(use_remote=True)
    assert evaluator.wants_remote("an answer")
    assert not evaluator.wants_remote("   ")
    assert evaluator.evaluate_remote(HARD, "an answer", 10) is None
