"""Interview orchestration: the two boundary operations of the engine."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional
from weakref import WeakValueDictionary

from .config import AppSettings, EngineLimits, InterviewMode
from .coverage import DEFAULT_TOPICS, CoverageGuard, load_topics
from .errors import (
    InsufficientDepthError,
    NarrativeServiceUnavailableError,
    OwnershipUnresolvedError,
    SessionCompletedError,
    SessionNotFoundError,
)
from .mode_selector import select_mode
from .models import IntakeFields, InterviewSession, TurnResult, TurnRole
from .narrative import NarrativeService
from .prompts import (
    DEFAULT_QUESTION,
    SUMMARY_SCHEMA_INSTRUCTIONS,
    build_question_instructions,
    render_intake_context,
)
from .rate_limiter import InMemoryRateLimiter, RateLimiter, RedisRateLimiter
from .session_store import (
    InMemorySessionStore,
    RedisSessionStore,
    SessionArchive,
    SessionStore,
)
from .summary import load_summary
from .turn_controller import (
    TurnAction,
    approaching_limit,
    can_finalize,
    plan_next_turn,
    record_answer,
)

logger = logging.getLogger(__name__)

IntakeSource = Callable[[str], Optional[IntakeFields]]


def _no_intake(_owner_id: str) -> Optional[IntakeFields]:
    return None


class InterviewEngine:
    """Runs bounded founder interviews on top of a narrative service."""

    def __init__(
        self,
        *,
        store: SessionStore,
        rate_limiter: RateLimiter,
        narrative: NarrativeService,
        limits: EngineLimits = EngineLimits(),
        coverage_guard: Optional[CoverageGuard] = None,
        archive: Optional[SessionArchive] = None,
        intake_source: IntakeSource = _no_intake,
    ) -> None:
        self._store = store
        self._rate_limiter = rate_limiter
        self._narrative = narrative
        self._limits = limits
        self._guard = coverage_guard or CoverageGuard()
        self._archive = archive
        self._intake_source = intake_source
        self._locks: WeakValueDictionary[str, asyncio.Lock] = WeakValueDictionary()

    @property
    def store(self) -> SessionStore:
        return self._store

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @staticmethod
    def _require_owner(owner_id: Optional[str]) -> str:
        owner = (owner_id or "").strip()
        if not owner:
            raise OwnershipUnresolvedError("No owner identity on the request.")
        return owner

    def get_session(self, owner_id: Optional[str], session_id: str) -> InterviewSession:
        owner = self._require_owner(owner_id)
        session = self._store.get(session_id)
        if session is None or session.owner_id != owner:
            raise SessionNotFoundError(f"Session {session_id} not found.")
        return session

    def calls_used(self, owner_id: Optional[str], session_id: str) -> int:
        """Orchestration calls already charged to the owner's session."""

        session = self.get_session(owner_id, session_id)
        return self._rate_limiter.current(session.id)

    async def _resolve_session(
        self,
        owner: str,
        session_id: Optional[str],
        intake: Optional[IntakeFields],
    ) -> InterviewSession:
        if session_id:
            return self.get_session(owner, session_id)

        async with self._lock_for(f"owner:{owner}"):
            existing = self._store.find_in_progress(owner)
            if existing is not None:
                return existing
            prior = intake if intake is not None else self._intake_source(owner)
            mode = select_mode(prior)
            session = InterviewSession(owner_id=owner, mode=mode)
            if mode is InterviewMode.GUIDED and prior is not None:
                session.append(TurnRole.SYSTEM, render_intake_context(prior))
            created = self._store.create(session)
            if created.id == session.id:
                logger.info(
                    "Started %s interview %s for owner %s",
                    mode.value,
                    created.id,
                    owner,
                )
            return created

    def _reload(self, session_id: str) -> InterviewSession:
        session = self._store.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found.")
        return session

    async def _call_narrative(self, call: Awaitable[str], *, purpose: str) -> str:
        try:
            return await call
        except NarrativeServiceUnavailableError:
            raise
        except Exception as exc:
            logger.exception("Narrative service %s call failed", purpose)
            raise NarrativeServiceUnavailableError(
                f"Narrative service {purpose} call failed: {exc}"
            ) from exc

    def _result(
        self,
        session: InterviewSession,
        question: Optional[str],
        *,
        force_complete: bool = False,
    ) -> TurnResult:
        return TurnResult(
            session_id=session.id,
            question=question,
            transcript=list(session.transcript),
            can_finalize=can_finalize(session, self._limits),
            mode=session.mode,
            force_complete=force_complete,
            approaching_limit=approaching_limit(session, self._limits),
        )

    async def request_next_turn(
        self,
        owner_id: Optional[str],
        session_id: Optional[str] = None,
        answer_text: Optional[str] = None,
        intake: Optional[IntakeFields] = None,
    ) -> TurnResult:
        """Record the latest answer (if any) and produce the next question."""

        owner = self._require_owner(owner_id)
        resolved = await self._resolve_session(owner, session_id, intake)
        if resolved.completed:
            raise SessionCompletedError(f"Session {resolved.id} is completed.")
        self._rate_limiter.enforce(resolved.id)

        async with self._lock_for(resolved.id):
            session = self._reload(resolved.id)
            if session.completed:
                raise SessionCompletedError(f"Session {session.id} is completed.")
            expected_version = session.version
            answered_now = record_answer(session, answer_text)
            plan = plan_next_turn(session, self._limits, self._guard)

            if plan.action is TurnAction.FORCE_COMPLETE:
                if answered_now:
                    self._store.save(session, expected_version)
                logger.info(
                    "Session %s exhausted its %s-question budget",
                    session.id,
                    plan.max_questions,
                )
                return self._result(session, None, force_complete=True)

            if plan.action is TurnAction.RESUME_PENDING:
                pending = session.last_turn
                assert pending is not None  # for type checkers
                return self._result(session, pending.content)

            if plan.action is TurnAction.ASK_FALLBACK and plan.fallback is not None:
                turn = session.add(self._guard.fallback_turn(plan.fallback))
                session.fallback_topic = plan.fallback.topic
                logger.warning(
                    "Session %s missing mandatory topic '%s'; asking fallback",
                    session.id,
                    plan.fallback.topic,
                )
            else:
                question = await self._next_question(session, plan.max_questions)
                turn = session.append(TurnRole.INTERVIEWER, question)

            self._store.save(session, expected_version)
            return self._result(session, turn.content)

    async def _next_question(self, session: InterviewSession, max_questions: int) -> str:
        instructions = build_question_instructions(
            session.mode,
            asked=session.interviewer_turns,
            max_questions=max_questions,
        )
        raw = await self._call_narrative(
            self._narrative.next_question(list(session.transcript), instructions),
            purpose="question",
        )
        question = (raw or "").strip()
        if not question:
            logger.warning(
                "Empty question from narrative service for %s; using default",
                session.id,
            )
            return DEFAULT_QUESTION
        return question

    async def request_summary(
        self,
        owner_id: Optional[str],
        session_id: Optional[str],
    ) -> Dict[str, Any]:
        """Summarize the transcript, validate it, and persist it on the session."""

        owner = self._require_owner(owner_id)
        if not session_id:
            raise SessionNotFoundError("A session id is required to summarize.")
        resolved = self.get_session(owner, session_id)
        self._rate_limiter.enforce(resolved.id)

        async with self._lock_for(resolved.id):
            session = self._reload(resolved.id)
            asked = session.interviewer_turns
            if asked < self._limits.min_depth:
                raise InsufficientDepthError(asked, self._limits.min_depth)
            expected_version = session.version
            raw = await self._call_narrative(
                self._narrative.summarize(
                    list(session.transcript), SUMMARY_SCHEMA_INSTRUCTIONS
                ),
                purpose="summary",
            )
            document = load_summary(raw or "")
            session.summary = document
            session.mark_completed()
            self._store.save(session, expected_version)
            logger.info("Stored summary for session %s", session.id)

        if self._archive is not None:
            try:
                self._archive.append(session)
            except OSError as exc:  # pragma: no cover - best effort
                logger.warning("Archiving session %s failed: %s", session.id, exc)
        return document


def build_engine(
    settings: AppSettings,
    *,
    narrative: Optional[NarrativeService] = None,
    intake_source: IntakeSource = _no_intake,
) -> InterviewEngine:
    """Assemble an engine from application settings."""

    limits = settings.limits
    store: SessionStore
    limiter: RateLimiter
    if settings.redis_url:
        store = RedisSessionStore.from_url(settings.redis_url)
        limiter = RedisRateLimiter.from_url(
            settings.redis_url, limits.max_calls_per_session
        )
    else:
        logger.warning(
            "No Redis URL configured; sessions and call counters are process-local."
        )
        store = InMemorySessionStore()
        limiter = InMemoryRateLimiter(limits.max_calls_per_session)

    if narrative is None:
        from .narrative import MAFNarrativeService

        narrative = MAFNarrativeService.from_settings(settings.model)

    topics = load_topics(settings.topics_file) if settings.topics_file else DEFAULT_TOPICS
    return InterviewEngine(
        store=store,
        rate_limiter=limiter,
        narrative=narrative,
        limits=limits,
        coverage_guard=CoverageGuard(topics),
        archive=SessionArchive(settings.archive_path),
        intake_source=intake_source,
    )
