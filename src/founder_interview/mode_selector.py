"""Chooses the interview strategy for a new session."""

from __future__ import annotations

from typing import Optional

from .config import InterviewMode
from .models import IntakeFields


def select_mode(prior_intake: Optional[IntakeFields]) -> InterviewMode:
    """Return ``guided`` when usable onboarding answers exist.

    Onboarding counts as usable only when it was explicitly marked completed
    and at least one answer carries text. The result is stored on the session
    at creation and never recomputed.
    """

    if prior_intake is None:
        return InterviewMode.COLD_START
    if prior_intake.onboarding_completed and prior_intake.has_signal():
        return InterviewMode.GUIDED
    return InterviewMode.COLD_START
