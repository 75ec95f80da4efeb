"""Per-session ceilings on orchestration calls."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

import redis
from redis import Redis
from redis.exceptions import RedisError

from .errors import RateLimitExceededError, StoreUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RateDecision:
    allowed: bool
    count: int
    ceiling: int


class RateLimiter(ABC):
    """Counts orchestration calls per session against a fixed ceiling."""

    def __init__(self, ceiling: int) -> None:
        if ceiling < 1:
            raise ValueError("Rate limit ceiling must be at least 1")
        self._ceiling = ceiling

    @property
    def ceiling(self) -> int:
        return self._ceiling

    @abstractmethod
    def check_and_increment(self, session_id: str) -> RateDecision:
        """Record one call and report whether it fits within the ceiling."""

    @abstractmethod
    def current(self, session_id: str) -> int:
        """Return the number of calls recorded so far."""

    def enforce(self, session_id: str) -> RateDecision:
        decision = self.check_and_increment(session_id)
        if not decision.allowed:
            logger.warning(
                "Session %s hit the call ceiling (%s/%s)",
                session_id,
                decision.count,
                decision.ceiling,
            )
            raise RateLimitExceededError(session_id, decision.ceiling)
        return decision


class InMemoryRateLimiter(RateLimiter):
    """Process-local counter; only correct for a single worker."""

    def __init__(self, ceiling: int) -> None:
        super().__init__(ceiling)
        self._counts: Dict[str, int] = {}
        self._lock = threading.Lock()

    def check_and_increment(self, session_id: str) -> RateDecision:
        with self._lock:
            count = self._counts.get(session_id, 0)
            if count >= self._ceiling:
                return RateDecision(False, count, self._ceiling)
            count += 1
            self._counts[session_id] = count
        return RateDecision(True, count, self._ceiling)

    def current(self, session_id: str) -> int:
        with self._lock:
            return self._counts.get(session_id, 0)


class RedisRateLimiter(RateLimiter):
    """Shared counter backed by Redis ``INCR`` so every worker sees one budget."""

    KEY_PREFIX = "founder_interview:calls:"

    def __init__(self, client: Redis, ceiling: int) -> None:
        super().__init__(ceiling)
        self._client = client

    @classmethod
    def from_url(cls, redis_url: str, ceiling: int) -> "RedisRateLimiter":
        client = redis.from_url(  # type: ignore[call-overload]
            redis_url,
            decode_responses=True,
        )
        return cls(client, ceiling)

    def _key(self, session_id: str) -> str:
        return f"{self.KEY_PREFIX}{session_id}"

    def check_and_increment(self, session_id: str) -> RateDecision:
        key = self._key(session_id)
        try:
            # INCR is atomic and the key never expires, so the count only grows.
            count = int(self._client.incr(key))
        except RedisError as exc:
            logger.exception("Rate limit counter unavailable for %s", session_id)
            raise StoreUnavailableError(f"Rate limit store unavailable: {exc}") from exc
        return RateDecision(count <= self._ceiling, count, self._ceiling)

    def current(self, session_id: str) -> int:
        try:
            raw: Optional[str] = self._client.get(self._key(session_id))
        except RedisError as exc:
            raise StoreUnavailableError(f"Rate limit store unavailable: {exc}") from exc
        return int(raw) if raw else 0
