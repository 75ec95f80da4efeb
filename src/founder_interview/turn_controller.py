"""State machine deciding what the next interview turn should be."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .config import EngineLimits
from .coverage import CoverageGuard, MandatoryTopic
from .models import InterviewSession, TurnRole


class TurnState(str, Enum):
    AWAITING_OPENING_QUESTION = "awaiting_opening_question"
    AWAITING_ANSWER = "awaiting_answer"
    READY_TO_ASK = "ready_to_ask"
    BUDGET_EXHAUSTED = "budget_exhausted"
    COMPLETED = "completed"

    @classmethod
    def of(cls, session: InterviewSession, limits: EngineLimits) -> "TurnState":
        if session.completed:
            return cls.COMPLETED
        if session.answered >= limits.max_questions(session.mode):
            return cls.BUDGET_EXHAUSTED
        last = session.last_turn
        if session.interviewer_turns == 0 and (
            last is None or last.role is TurnRole.SYSTEM
        ):
            return cls.AWAITING_OPENING_QUESTION
        if last is not None and last.role is TurnRole.INTERVIEWER:
            return cls.AWAITING_ANSWER
        return cls.READY_TO_ASK


class TurnAction(str, Enum):
    RESUME_PENDING = "resume_pending"
    FORCE_COMPLETE = "force_complete"
    ASK_FALLBACK = "ask_fallback"
    ASK = "ask"


@dataclass(frozen=True, slots=True)
class TurnPlan:
    action: TurnAction
    state: TurnState
    answered: int
    max_questions: int
    fallback: Optional[MandatoryTopic] = None


def record_answer(session: InterviewSession, answer_text: Optional[str]) -> bool:
    """Append the interviewee's answer when it is owed one.

    An answer is only recorded right after an interviewer turn, so a resent
    answer never produces two interviewee turns in a row.
    """

    text = (answer_text or "").strip()
    if not text:
        return False
    last = session.last_turn
    if last is None or last.role is not TurnRole.INTERVIEWER:
        return False
    session.append(TurnRole.INTERVIEWEE, text)
    return True


def plan_next_turn(
    session: InterviewSession,
    limits: EngineLimits,
    guard: CoverageGuard,
) -> TurnPlan:
    """Decide the next action for a session whose answer was already recorded."""

    max_questions = limits.max_questions(session.mode)
    answered = session.answered
    state = TurnState.of(session, limits)

    if state is TurnState.BUDGET_EXHAUSTED:
        return TurnPlan(TurnAction.FORCE_COMPLETE, state, answered, max_questions)
    if state is TurnState.AWAITING_ANSWER:
        return TurnPlan(TurnAction.RESUME_PENDING, state, answered, max_questions)

    if answered >= max_questions - 1:
        # Last available slot: spend it on a missing mandatory topic.
        topic = guard.fallback_for(session)
        if topic is not None:
            return TurnPlan(
                TurnAction.ASK_FALLBACK,
                state,
                answered,
                max_questions,
                fallback=topic,
            )
    return TurnPlan(TurnAction.ASK, state, answered, max_questions)


def can_finalize(session: InterviewSession, limits: EngineLimits) -> bool:
    return session.interviewer_turns >= limits.min_depth


def approaching_limit(session: InterviewSession, limits: EngineLimits) -> bool:
    return session.answered >= limits.max_questions(session.mode) - 1
