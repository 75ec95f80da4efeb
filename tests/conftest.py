import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, WatchError

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from founder_interview.config import EngineLimits
from founder_interview.engine import InterviewEngine
from founder_interview.models import IntakeFields, Turn
from founder_interview.rate_limiter import InMemoryRateLimiter
from founder_interview.session_store import InMemorySessionStore, SessionArchive


def run(coro):
    return asyncio.run(coro)


VALID_SUMMARY: Dict[str, Any] = {
    "extractedInsights": {
        "insiderKnowledge": ["Prior auth in clinics is handled by fax"],
        "customerIntimacy": ["Independent physical therapists"],
        "constraints": {
            "hoursPerWeek": 15,
            "availableCapital": "low",
            "timeline": "6 months",
            "otherConstraints": ["two kids"],
        },
        "financialTarget": {
            "type": "side_income",
            "minimumMonthlyRevenue": 3000,
            "description": "Cover the mortgage",
        },
        "hardNoFilters": ["cold calling"],
        "emotionalDrivers": ["autonomy"],
        "domainExpertise": ["clinic operations"],
    },
    "networkStrength": "moderate: 2k LinkedIn connections in healthcare",
    "distributionChannels": ["LinkedIn"],
    "founderSummary": "You are a clinic operator who sees the paperwork nobody else sees.",
    "confidenceLevel": {
        "insiderKnowledge": "high",
        "customerIntimacy": "medium",
        "constraints": "high",
        "financialTarget": "medium",
    },
    "ideaGenerationContext": "Clinic ops veteran, 15h/week, wants side income.",
}


class ScriptedNarrativeService:
    """Deterministic narrative service double."""

    def __init__(
        self,
        questions: Optional[Sequence[str]] = None,
        summary: Optional[str] = None,
    ) -> None:
        self._questions = list(questions) if questions is not None else None
        self.summary_response = summary if summary is not None else json.dumps(VALID_SUMMARY)
        self.question_calls: List[str] = []
        self.summary_calls = 0
        self.fail_next: Optional[Exception] = None

    async def next_question(self, transcript: Sequence[Turn], instructions: str) -> str:
        if self.fail_next is not None:
            exc, self.fail_next = self.fail_next, None
            raise exc
        self.question_calls.append(instructions)
        index = len(self.question_calls)
        if self._questions is not None:
            return self._questions[(index - 1) % len(self._questions)]
        return f"Question {index}: what else should I know about your work?"

    async def summarize(self, transcript: Sequence[Turn], schema: str) -> str:
        if self.fail_next is not None:
            exc, self.fail_next = self.fail_next, None
            raise exc
        self.summary_calls += 1
        return self.summary_response


class FakePipeline:
    def __init__(self, client: "FakeRedis") -> None:
        self._client = client
        self._watched: Dict[str, int] = {}
        self._queued: List[tuple] = []
        self._buffering = False

    def __enter__(self) -> "FakePipeline":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self._watched.clear()
        self._queued.clear()

    def watch(self, *keys: str) -> None:
        for key in keys:
            self._watched[key] = self._client.revision(key)

    def multi(self) -> None:
        self._buffering = True

    def get(self, key: str) -> Optional[str]:
        return self._client.get(key)

    def set(self, key: str, value: str) -> None:
        self._queued.append(("set", key, value))

    def delete(self, key: str) -> None:
        self._queued.append(("delete", key))

    def execute(self) -> List[Any]:
        hook, self._client.before_execute = self._client.before_execute, None
        if hook is not None:
            hook()
        for key, revision in self._watched.items():
            if self._client.revision(key) != revision:
                raise WatchError("watched key changed")
        results = []
        for op in self._queued:
            if op[0] == "set":
                results.append(self._client.set(op[1], op[2]))
            else:
                results.append(self._client.delete(op[1]))
        return results


class FakeRedis:
    """Minimal in-process stand-in for the redis client methods the app uses."""

    def __init__(self) -> None:
        self.data: Dict[str, Any] = {}
        self._revisions: Dict[str, int] = {}
        self.before_execute: Optional[Callable[[], None]] = None

    def revision(self, key: str) -> int:
        return self._revisions.get(key, 0)

    def _touch(self, key: str) -> None:
        self._revisions[key] = self.revision(key) + 1

    def get(self, key: str) -> Optional[str]:
        value = self.data.get(key)
        return None if value is None else str(value)

    def set(self, key: str, value: Any, nx: bool = False) -> Optional[bool]:
        if nx and key in self.data:
            return None
        self.data[key] = value
        self._touch(key)
        return True

    def delete(self, key: str) -> int:
        existed = self.data.pop(key, None) is not None
        self._touch(key)
        return int(existed)

    def incr(self, key: str) -> int:
        value = int(self.data.get(key, 0)) + 1
        self.data[key] = value
        self._touch(key)
        return value

    def zadd(self, key: str, mapping: Dict[str, float]) -> int:
        members = self.data.setdefault(key, {})
        members.update(mapping)
        return len(mapping)

    def zrevrange(self, key: str, start: int, end: int) -> List[str]:
        members = self.data.get(key, {})
        ordered = sorted(members, key=lambda member: members[member], reverse=True)
        return ordered[start:] if end == -1 else ordered[start:end + 1]

    def pipeline(self) -> FakePipeline:
        return FakePipeline(self)


class FlakyRedis(FakeRedis):
    """FakeRedis that refuses every call while `down` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.down = False

    def _check(self) -> None:
        if self.down:
            raise RedisConnectionError("connection refused")

    def get(self, key: str) -> Optional[str]:
        self._check()
        return super().get(key)

    def set(self, key: str, value: Any, nx: bool = False) -> Optional[bool]:
        self._check()
        return super().set(key, value, nx=nx)

    def incr(self, key: str) -> int:
        self._check()
        return super().incr(key)

    def zrevrange(self, key: str, start: int, end: int) -> List[str]:
        self._check()
        return super().zrevrange(key, start, end)

    def pipeline(self) -> FakePipeline:
        self._check()
        return super().pipeline()


@pytest.fixture
def limits() -> EngineLimits:
    return EngineLimits()


@pytest.fixture
def narrative() -> ScriptedNarrativeService:
    return ScriptedNarrativeService()


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def make_engine(store, narrative, limits, tmp_path):
    def _make(**overrides: Any) -> InterviewEngine:
        params: Dict[str, Any] = {
            "store": store,
            "rate_limiter": InMemoryRateLimiter(limits.max_calls_per_session),
            "narrative": narrative,
            "limits": limits,
            "archive": SessionArchive(tmp_path / "archive.jsonl"),
        }
        params.update(overrides)
        return InterviewEngine(**params)

    return _make


@pytest.fixture
def engine(make_engine) -> InterviewEngine:
    return make_engine()


@pytest.fixture
def completed_intake() -> IntakeFields:
    return IntakeFields(
        entry_trigger="Laid off and want to build something of my own",
        business_type_preference="productized service",
        onboarding_completed=True,
    )
