"""Deterministic backstop ensuring mandatory topics come up in the interview."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence, Tuple, cast

from .models import InterviewSession, Turn, TurnRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MandatoryTopic:
    """A topic that must be evidenced before the interview may end."""

    topic: str
    keywords: Tuple[str, ...]
    fallback_question: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MandatoryTopic":
        topic = str(data.get("topic", "")).strip()
        if not topic:
            raise ValueError("Mandatory topic entries need a 'topic' name.")
        raw_keywords = data.get("keywords")
        if not isinstance(raw_keywords, list) or not raw_keywords:
            raise ValueError(f"Topic '{topic}' needs a non-empty 'keywords' list.")
        keywords = tuple(
            str(item).strip().lower()
            for item in cast(List[Any], raw_keywords)
            if str(item).strip()
        )
        fallback = str(
            data.get("fallbackQuestion") or data.get("fallback_question") or ""
        ).strip()
        if not fallback:
            raise ValueError(f"Topic '{topic}' needs a 'fallbackQuestion'.")
        return cls(topic=topic, keywords=keywords, fallback_question=fallback)


DISTRIBUTION_NETWORK = MandatoryTopic(
    topic="distribution_network",
    keywords=(
        "network",
        "audience",
        "followers",
        "newsletter",
        "community",
        "connections",
        "distribution",
        "email list",
        "mailing list",
        "linkedin",
        "subscribers",
        "who do you know",
        "warm intro",
        "referral",
    ),
    fallback_question=(
        "Before we wrap up: who could you reach on day one? Tell me about "
        "your network, audience, or communities, and roughly how many people "
        "you could put an offer in front of this month."
    ),
)

DEFAULT_TOPICS: Tuple[MandatoryTopic, ...] = (DISTRIBUTION_NETWORK,)


def load_topics(path: Path) -> Tuple[MandatoryTopic, ...]:
    """Read a JSON list of ``{topic, keywords, fallbackQuestion}`` entries."""

    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, list) or not payload:
        raise ValueError(f"{path} must contain a non-empty JSON list of topics.")
    topics = tuple(
        MandatoryTopic.from_dict(cast(dict[str, Any], entry))
        for entry in cast(List[Any], payload)
    )
    logger.info("Loaded %d mandatory topic(s) from %s", len(topics), path)
    return topics


class CoverageGuard:
    """Checks transcript text for evidence of each mandatory topic."""

    def __init__(self, topics: Sequence[MandatoryTopic] = DEFAULT_TOPICS) -> None:
        self._topics: Tuple[MandatoryTopic, ...] = tuple(topics)

    @property
    def topics(self) -> Tuple[MandatoryTopic, ...]:
        return self._topics

    @staticmethod
    def _haystack(transcript: Iterable[Turn]) -> str:
        return "\n".join(turn.content for turn in transcript).lower()

    def is_covered(self, topic: MandatoryTopic, transcript: Sequence[Turn]) -> bool:
        haystack = self._haystack(transcript)
        return any(keyword in haystack for keyword in topic.keywords)

    def missing_topics(self, transcript: Sequence[Turn]) -> List[MandatoryTopic]:
        return [topic for topic in self._topics if not self.is_covered(topic, transcript)]

    def fallback_for(self, session: InterviewSession) -> Optional[MandatoryTopic]:
        """Return the topic whose fallback should be asked, if any.

        The fallback fires at most once per session.
        """

        if session.fallback_topic is not None:
            return None
        missing = self.missing_topics(session.transcript)
        if not missing:
            return None
        return missing[0]

    @staticmethod
    def fallback_turn(topic: MandatoryTopic) -> Turn:
        """Build the interviewer turn that asks the topic's fallback verbatim."""

        return Turn(role=TurnRole.INTERVIEWER, content=topic.fallback_question)
