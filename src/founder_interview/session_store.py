"""Persistence for interview sessions."""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import redis
from redis import Redis
from redis.exceptions import RedisError, WatchError

from .errors import (
    ConcurrentSessionUpdateError,
    SessionNotFoundError,
    StoreUnavailableError,
)
from .models import InterviewSession, utcnow

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """Stores one record per session and at most one active session per owner."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[InterviewSession]:
        """Load a session by id."""

    @abstractmethod
    def find_in_progress(self, owner_id: str) -> Optional[InterviewSession]:
        """Return the owner's in-progress session, if any."""

    @abstractmethod
    def create(self, session: InterviewSession) -> InterviewSession:
        """Persist a new session.

        When the owner already has an in-progress session that session is
        returned instead and ``session`` is discarded.
        """

    @abstractmethod
    def save(self, session: InterviewSession, expected_version: int) -> InterviewSession:
        """Persist ``session`` if the stored version still equals ``expected_version``."""

    @abstractmethod
    def list_for_owner(self, owner_id: str) -> List[InterviewSession]:
        """Return the owner's sessions, newest first."""


def _stamp(session: InterviewSession, expected_version: int) -> Dict[str, Any]:
    """Serialize ``session`` as it will look once the save succeeds."""

    stamped = InterviewSession.from_dict(session.to_dict())
    stamped.version = expected_version + 1
    stamped.updated_at = utcnow()
    return stamped.to_dict()


def _apply_stamp(session: InterviewSession, record: Dict[str, Any]) -> None:
    stamped = InterviewSession.from_dict(record)
    session.version = stamped.version
    session.updated_at = stamped.updated_at


class InMemorySessionStore(SessionStore):
    """Process-local store for single-instance deployments and tests."""

    def __init__(self) -> None:
        self._records: Dict[str, Dict[str, Any]] = {}
        self._active: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Optional[InterviewSession]:
        with self._lock:
            record = self._records.get(session_id)
        if record is None:
            return None
        return InterviewSession.from_dict(record)

    def find_in_progress(self, owner_id: str) -> Optional[InterviewSession]:
        with self._lock:
            session_id = self._active.get(owner_id)
        if session_id is None:
            return None
        session = self.get(session_id)
        if session is None or session.completed:
            return None
        return session

    def create(self, session: InterviewSession) -> InterviewSession:
        with self._lock:
            active_id = self._active.get(session.owner_id)
            if active_id is not None:
                existing = self._records.get(active_id)
                if existing is not None and existing["status"] == "in_progress":
                    return InterviewSession.from_dict(existing)
            record = _stamp(session, 0)
            self._records[session.id] = record
            self._active[session.owner_id] = session.id
        _apply_stamp(session, record)
        return session

    def save(self, session: InterviewSession, expected_version: int) -> InterviewSession:
        with self._lock:
            current = self._records.get(session.id)
            if current is None:
                raise SessionNotFoundError(f"Session {session.id} does not exist.")
            if current["version"] != expected_version:
                raise ConcurrentSessionUpdateError(
                    f"Session {session.id} is at version {current['version']}, "
                    f"expected {expected_version}."
                )
            record = _stamp(session, expected_version)
            self._records[session.id] = record
            if session.completed and self._active.get(session.owner_id) == session.id:
                del self._active[session.owner_id]
        _apply_stamp(session, record)
        return session

    def list_for_owner(self, owner_id: str) -> List[InterviewSession]:
        with self._lock:
            records = [
                record
                for record in self._records.values()
                if record["ownerId"] == owner_id
            ]
        sessions = [InterviewSession.from_dict(record) for record in records]
        sessions.sort(key=lambda item: item.created_at, reverse=True)
        return sessions


@contextmanager
def _redis_guard(operation: str, key: str) -> Iterator[None]:
    try:
        yield
    except RedisError as exc:
        logger.warning("Redis %s failed for %s: %s", operation, key, exc)
        raise StoreUnavailableError(
            f"Session store unavailable during {operation}: {exc}"
        ) from exc


class RedisSessionStore(SessionStore):
    """Shared store keeping each session as a JSON blob in Redis."""

    PREFIX = "founder_interview"

    def __init__(self, client: Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisSessionStore":
        client = redis.from_url(  # type: ignore[call-overload]
            redis_url,
            decode_responses=True,
        )
        return cls(client)

    def _session_key(self, session_id: str) -> str:
        return f"{self.PREFIX}:session:{session_id}"

    def _active_key(self, owner_id: str) -> str:
        return f"{self.PREFIX}:owner:{owner_id}:active"

    def _index_key(self, owner_id: str) -> str:
        return f"{self.PREFIX}:owner:{owner_id}:sessions"

    @staticmethod
    def _decode(raw: Any) -> Optional[Dict[str, Any]]:
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        record = json.loads(raw)
        if not isinstance(record, dict):
            return None
        return record

    def get(self, session_id: str) -> Optional[InterviewSession]:
        key = self._session_key(session_id)
        with _redis_guard("get", key):
            raw = self._client.get(key)
        record = self._decode(raw)
        if record is None:
            return None
        return InterviewSession.from_dict(record)

    def find_in_progress(self, owner_id: str) -> Optional[InterviewSession]:
        active_key = self._active_key(owner_id)
        with _redis_guard("lookup", active_key):
            session_id = self._client.get(active_key)
        if not session_id:
            return None
        session = self.get(str(session_id))
        if session is None or session.completed:
            return None
        return session

    def create(self, session: InterviewSession) -> InterviewSession:
        session_key = self._session_key(session.id)
        active_key = self._active_key(session.owner_id)
        record = _stamp(session, 0)
        with _redis_guard("create", session_key):
            self._client.set(session_key, json.dumps(record, ensure_ascii=False))
            # SET NX makes lookup-before-create safe across workers.
            claimed = self._client.set(active_key, session.id, nx=True)
        if not claimed:
            existing = self.find_in_progress(session.owner_id)
            with _redis_guard("create", session_key):
                if existing is not None:
                    self._client.delete(session_key)
                    return existing
                logger.info(
                    "Replacing stale active pointer for owner %s", session.owner_id
                )
                self._client.set(active_key, session.id)
        with _redis_guard("create", session_key):
            self._client.zadd(
                self._index_key(session.owner_id),
                {session.id: session.created_at.timestamp()},
            )
        _apply_stamp(session, record)
        return session

    def save(self, session: InterviewSession, expected_version: int) -> InterviewSession:
        session_key = self._session_key(session.id)
        active_key = self._active_key(session.owner_id)
        with _redis_guard("save", session_key), self._client.pipeline() as pipe:
            try:
                pipe.watch(session_key, active_key)
                current = self._decode(pipe.get(session_key))
                if current is None:
                    raise SessionNotFoundError(f"Session {session.id} does not exist.")
                if int(current.get("version", 0)) != expected_version:
                    raise ConcurrentSessionUpdateError(
                        f"Session {session.id} is at version {current.get('version')}, "
                        f"expected {expected_version}."
                    )
                active_id = pipe.get(active_key)
                record = _stamp(session, expected_version)
                pipe.multi()
                pipe.set(session_key, json.dumps(record, ensure_ascii=False))
                if session.completed and active_id == session.id:
                    pipe.delete(active_key)
                pipe.execute()
            except WatchError as exc:
                raise ConcurrentSessionUpdateError(
                    f"Session {session.id} changed while saving."
                ) from exc
        _apply_stamp(session, record)
        return session

    def list_for_owner(self, owner_id: str) -> List[InterviewSession]:
        index_key = self._index_key(owner_id)
        with _redis_guard("list", index_key):
            session_ids = self._client.zrevrange(index_key, 0, -1)
        sessions: List[InterviewSession] = []
        for session_id in session_ids:
            session = self.get(str(session_id))
            if session is not None:
                sessions.append(session)
        return sessions


class SessionArchive:
    """Appends finalized sessions to a JSONL archive."""

    def __init__(self, archive_path: Path) -> None:
        self._archive_path = archive_path
        self._archive_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def archive_path(self) -> Path:
        return self._archive_path

    def append(self, session: InterviewSession) -> None:
        lines = self._format_jsonl(session)
        with self._archive_path.open("a", encoding="utf-8") as handle:
            for entry in lines:
                handle.write(entry + "\n")

    @staticmethod
    def _format_jsonl(session: InterviewSession) -> List[str]:
        def _timestamp(dt: datetime) -> str:
            return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")

        meta: Dict[str, Dict[str, Any]] = {
            "_meta": {
                "session_id": session.id,
                "owner_id": session.owner_id,
                "mode": session.mode.value,
                "ts": _timestamp(utcnow()),
                "n_records": len(session.transcript) + 1,
                "fallback_topic": session.fallback_topic,
            }
        }
        lines = [json.dumps(meta, ensure_ascii=False)]
        for index, turn in enumerate(session.transcript, start=1):
            entry: Dict[str, Any] = {
                "speaker": turn.role.value,
                "message": turn.content,
                "q_index": index,
                "timestamp": _timestamp(turn.timestamp),
            }
            lines.append(json.dumps(entry, ensure_ascii=False))
        lines.append(
            json.dumps(
                {
                    "speaker": "summary",
                    "summary": session.summary,
                    "timestamp": _timestamp(session.updated_at),
                },
                ensure_ascii=False,
            )
        )
        return lines
