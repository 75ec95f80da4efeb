"""Data model for founder interview sessions."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from .config import InterviewMode


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_timestamp(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        return raw
    text = str(raw).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class TurnRole(str, Enum):
    """Authors of transcript turns."""

    SYSTEM = "system"
    INTERVIEWER = "interviewer"
    INTERVIEWEE = "interviewee"


class SessionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(slots=True)
class Turn:
    """One atomic contribution to the transcript."""

    role: TurnRole
    content: str
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role.value,
            "content": self.content,
            "timestamp": _timestamp(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Turn":
        return cls(
            role=TurnRole(str(data["role"])),
            content=str(data.get("content", "")),
            timestamp=_parse_timestamp(data["timestamp"]),
        )


@dataclass(slots=True)
class IntakeFields:
    """Answers collected by the structured onboarding step."""

    entry_trigger: Optional[str] = None
    future_vision: Optional[str] = None
    desired_identity: Optional[str] = None
    business_type_preference: Optional[str] = None
    energy_source: Optional[str] = None
    learning_style: Optional[str] = None
    commitment_level_text: Optional[str] = None
    onboarding_completed: bool = False

    def signal_fields(self) -> Dict[str, Optional[str]]:
        return {
            item.name: getattr(self, item.name)
            for item in fields(self)
            if item.name != "onboarding_completed"
        }

    def has_signal(self) -> bool:
        return any(
            value is not None and value.strip()
            for value in self.signal_fields().values()
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IntakeFields":
        known = {item.name for item in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                continue
            if key == "onboarding_completed":
                kwargs[key] = bool(value)
            elif value is not None:
                kwargs[key] = str(value)
        return cls(**kwargs)


def _empty_turns() -> List[Turn]:
    return []


@dataclass(slots=True)
class InterviewSession:
    """Persisted state of one bounded interview conversation."""

    owner_id: str
    mode: InterviewMode
    id: str = field(default_factory=lambda: f"intv-{uuid4().hex}")
    transcript: List[Turn] = field(default_factory=_empty_turns)
    status: SessionStatus = SessionStatus.IN_PROGRESS
    summary: Optional[Dict[str, Any]] = None
    fallback_topic: Optional[str] = None
    version: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def count(self, role: TurnRole) -> int:
        return sum(1 for turn in self.transcript if turn.role is role)

    @property
    def interviewer_turns(self) -> int:
        return self.count(TurnRole.INTERVIEWER)

    @property
    def answered(self) -> int:
        return self.count(TurnRole.INTERVIEWEE)

    @property
    def last_turn(self) -> Optional[Turn]:
        if not self.transcript:
            return None
        return self.transcript[-1]

    @property
    def completed(self) -> bool:
        return self.status is SessionStatus.COMPLETED

    def add(self, turn: Turn) -> Turn:
        """Append a prepared turn, keeping timestamps non-decreasing."""
        last = self.last_turn
        if last is not None and turn.timestamp < last.timestamp:
            turn.timestamp = last.timestamp
        self.transcript.append(turn)
        return turn

    def append(self, role: TurnRole, content: str) -> Turn:
        return self.add(Turn(role=role, content=content))

    def mark_completed(self) -> None:
        self.status = SessionStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "mode": self.mode.value,
            "transcript": [turn.to_dict() for turn in self.transcript],
            "status": self.status.value,
            "summary": self.summary,
            "fallbackTopic": self.fallback_topic,
            "version": self.version,
            "createdAt": _timestamp(self.created_at),
            "updatedAt": _timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "InterviewSession":
        raw_transcript = data.get("transcript") or []
        return cls(
            id=str(data["id"]),
            owner_id=str(data["ownerId"]),
            mode=InterviewMode(str(data["mode"])),
            transcript=[Turn.from_dict(item) for item in raw_transcript],
            status=SessionStatus(str(data.get("status", "in_progress"))),
            summary=data.get("summary"),
            fallback_topic=data.get("fallbackTopic"),
            version=int(data.get("version", 0)),
            created_at=_parse_timestamp(data["createdAt"]),
            updated_at=_parse_timestamp(data["updatedAt"]),
        )


@dataclass(slots=True)
class TurnResult:
    """Outcome of a single next-turn request."""

    session_id: str
    question: Optional[str]
    transcript: List[Turn]
    can_finalize: bool
    mode: InterviewMode
    force_complete: bool = False
    approaching_limit: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "question": self.question,
            "transcript": [turn.to_dict() for turn in self.transcript],
            "canFinalize": self.can_finalize,
            "forceComplete": self.force_complete,
            "approachingLimit": self.approaching_limit,
            "mode": self.mode.value,
        }
