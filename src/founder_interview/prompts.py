"""Prompt scaffolding for the founder interview."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from .config import InterviewMode
from .models import IntakeFields


@dataclass(slots=True)
class ModePromptPack:
    """Instructions bound to an interview mode."""

    opening: str
    follow_up: str


SYSTEM_PROMPT = """You are "Mavrik", an AI cofounder and coach for early-stage founders.
Your job is to interview the founder and build a deep, actionable picture of who they are and what they should build.

You are not a therapist. This is a career and business conversation.
You are direct, warm, and grounded. You care about clarity and momentum more than inspiration.

You are trying to understand, in practical detail:
- Insider knowledge: non-obvious insight from professional or personal experience
- Customer intimacy: groups of people they understand deeply enough to build for
- Constraints: hours per week, capital, responsibilities, and runway
- Financial target: what "worth it" means in dollars
- Network and distribution: who they can reach on day one
- "Hell no" filters: things they never want their business to require

INTERVIEW BEHAVIOR
- Ask exactly one question at a time, in one or two sentences.
- Adapt each question to what the founder already said; dig into vague answers.
- Never ask what they want to build.
- When asked for the next question, return only the question text: no prefixes,
  quotes, markdown, or JSON."""

NEXT_QUESTION_INSTRUCTION = (
    "Ask the next interview question now. Remember: respond with the question "
    "text only, no explanations."
)

DEFAULT_QUESTION = (
    "What is one thing you want your next business to change about your life?"
)

MODE_PROMPTS: Mapping[InterviewMode, ModePromptPack] = {
    InterviewMode.GUIDED: ModePromptPack(
        opening=(
            "The founder already completed structured onboarding; their answers "
            "are in the first message. Open with a personalized question that "
            "references two of those answers and invites a story or a specific "
            "frustration. Do not re-ask anything onboarding already covered."
        ),
        follow_up=(
            "You have a budget of {max_questions} questions and have asked "
            "{asked}. Fill the biggest remaining gap, prioritizing insider "
            "knowledge, then customer intimacy, constraints, and financial "
            "target."
        ),
    ),
    InterviewMode.COLD_START: ModePromptPack(
        opening=(
            "You know nothing about this founder yet. Open with a broad, "
            "open-ended question about their background and what pulled them "
            "toward starting something."
        ),
        follow_up=(
            "You have a budget of {max_questions} questions and have asked "
            "{asked}. Build the picture from scratch: skills and track record, "
            "markets they know from the inside, constraints, and what they "
            "refuse to do."
        ),
    ),
}

SUMMARY_SCHEMA_INSTRUCTIONS = """Summarize this interview into the contextSummary JSON object below. Return ONLY valid JSON.
Do not wrap the JSON in markdown fences or include commentary. Use [] for lists
you have no data for, "unclear" for unknown hours and "unspecified" for an
unknown revenue target.
{
  "extractedInsights": {
    "insiderKnowledge": [string],
    "customerIntimacy": [string],
    "constraints": {
      "hoursPerWeek": number | "unclear",
      "availableCapital": string,
      "timeline": string,
      "otherConstraints": [string]
    },
    "financialTarget": {
      "type": "side_income" | "salary_replacement" | "wealth_building",
      "minimumMonthlyRevenue": number | "unspecified",
      "description": string
    },
    "hardNoFilters": [string],
    "emotionalDrivers": [string],
    "domainExpertise": [string]
  },
  "networkStrength": string,
  "distributionChannels": [string],
  "founderSummary": string,
  "confidenceLevel": {
    "insiderKnowledge": "high" | "medium" | "low",
    "customerIntimacy": "high" | "medium" | "low",
    "constraints": "high" | "medium" | "low",
    "financialTarget": "high" | "medium" | "low"
  },
  "ideaGenerationContext": string
}"""

_INTAKE_LABELS: Mapping[str, str] = {
    "entry_trigger": "Why they're here",
    "future_vision": "1-year vision",
    "desired_identity": "How they see themselves",
    "business_type_preference": "Business type interest",
    "energy_source": "What energizes them",
    "learning_style": "How they learn",
    "commitment_level_text": "Commitment level",
}


def render_intake_context(intake: IntakeFields) -> str:
    """Format onboarding answers as the leading context turn of a guided session."""

    lines = ["FOUNDER CONTEXT (from structured onboarding):"]
    for name, value in intake.signal_fields().items():
        label = _INTAKE_LABELS.get(name, name)
        text = value.strip() if value else ""
        lines.append(f"- {label}: {text or 'Not specified'}")
    return "\n".join(lines)


def build_question_instructions(
    mode: InterviewMode,
    *,
    asked: int,
    max_questions: int,
) -> str:
    pack = MODE_PROMPTS[mode]
    if asked == 0:
        return pack.opening
    return pack.follow_up.format(asked=asked, max_questions=max_questions)
