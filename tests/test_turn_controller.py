from founder_interview.config import EngineLimits, InterviewMode
from founder_interview.coverage import DISTRIBUTION_NETWORK, CoverageGuard
from founder_interview.models import InterviewSession, SessionStatus, TurnRole
from founder_interview.turn_controller import (
    TurnAction,
    TurnState,
    approaching_limit,
    can_finalize,
    plan_next_turn,
    record_answer,
)

LIMITS = EngineLimits()
GUARD = CoverageGuard()


def _session_with(
    answered: int,
    mode: InterviewMode = InterviewMode.COLD_START,
    answer: str = "I run a bakery.",
) -> InterviewSession:
    session = InterviewSession(owner_id="founder-1", mode=mode)
    for index in range(answered):
        session.append(TurnRole.INTERVIEWER, f"Question {index + 1}?")
        session.append(TurnRole.INTERVIEWEE, answer)
    return session


def test_fresh_session_awaits_opening_question():
    session = _session_with(0)
    assert TurnState.of(session, LIMITS) is TurnState.AWAITING_OPENING_QUESTION
    plan = plan_next_turn(session, LIMITS, GUARD)
    assert plan.action is TurnAction.ASK


def test_guided_session_with_context_turn_awaits_opening_question():
    session = InterviewSession(owner_id="founder-1", mode=InterviewMode.GUIDED)
    session.append(TurnRole.SYSTEM, "FOUNDER CONTEXT")
    assert TurnState.of(session, LIMITS) is TurnState.AWAITING_OPENING_QUESTION


def test_pending_question_is_resumed():
    session = _session_with(2)
    session.append(TurnRole.INTERVIEWER, "Question 3?")
    plan = plan_next_turn(session, LIMITS, GUARD)
    assert plan.state is TurnState.AWAITING_ANSWER
    assert plan.action is TurnAction.RESUME_PENDING


def test_record_answer_only_after_interviewer_turn():
    session = _session_with(1)
    assert record_answer(session, "second answer") is False
    session.append(TurnRole.INTERVIEWER, "Question 2?")
    assert record_answer(session, "   ") is False
    assert record_answer(session, "  real answer  ") is True
    assert session.last_turn.content == "real answer"
    assert record_answer(session, "duplicate") is False
    assert session.answered == 2


def test_fallback_planned_at_final_slot_when_topic_missing():
    session = _session_with(LIMITS.cold_start_max_questions - 1)
    plan = plan_next_turn(session, LIMITS, GUARD)
    assert plan.action is TurnAction.ASK_FALLBACK
    assert plan.fallback is DISTRIBUTION_NETWORK


def test_no_fallback_before_final_slot():
    session = _session_with(LIMITS.cold_start_max_questions - 2)
    assert plan_next_turn(session, LIMITS, GUARD).action is TurnAction.ASK


def test_no_fallback_when_topic_covered():
    session = _session_with(
        LIMITS.guided_max_questions - 1,
        mode=InterviewMode.GUIDED,
        answer="I have a newsletter with 800 readers.",
    )
    assert plan_next_turn(session, LIMITS, GUARD).action is TurnAction.ASK


def test_budget_exhausted_forces_completion():
    session = _session_with(LIMITS.guided_max_questions, mode=InterviewMode.GUIDED)
    plan = plan_next_turn(session, LIMITS, GUARD)
    assert plan.state is TurnState.BUDGET_EXHAUSTED
    assert plan.action is TurnAction.FORCE_COMPLETE
    assert plan.max_questions == 7


def test_completed_state():
    session = _session_with(3)
    session.status = SessionStatus.COMPLETED
    assert TurnState.of(session, LIMITS) is TurnState.COMPLETED


def test_can_finalize_and_approaching_limit():
    session = _session_with(2)
    assert not can_finalize(session, LIMITS)
    session.append(TurnRole.INTERVIEWER, "Question 3?")
    assert can_finalize(session, LIMITS)
    assert not approaching_limit(session, LIMITS)

    late = _session_with(LIMITS.cold_start_max_questions - 1)
    assert approaching_limit(late, LIMITS)
