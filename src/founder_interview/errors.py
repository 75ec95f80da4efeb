"""Error taxonomy surfaced by the interview engine."""

from __future__ import annotations

from typing import List, Optional, Sequence


class InterviewEngineError(RuntimeError):
    """Base class for distinguishable engine failures."""

    code = "engine_error"
    status_code = 500
    retryable = False
    user_message = "Something went wrong with the interview."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.user_message)

    def to_payload(self) -> dict[str, object]:
        return {
            "error": self.user_message,
            "detail": str(self),
            "code": self.code,
            "retryable": self.retryable,
        }


class OwnershipUnresolvedError(InterviewEngineError):
    """Raised when the caller's owner identity cannot be determined."""

    code = "ownership_unresolved"
    status_code = 401
    user_message = "Please sign in again to continue your interview."


class SessionNotFoundError(InterviewEngineError):
    """Raised when a session id is unknown or belongs to another owner."""

    code = "session_not_found"
    status_code = 404
    user_message = "We couldn't find that interview."


class SessionCompletedError(InterviewEngineError):
    """Raised when a next-turn call targets a finished session."""

    code = "session_completed"
    status_code = 409
    user_message = "This interview is already complete. Start a new one."


class RateLimitExceededError(InterviewEngineError):
    """Raised once a session has used up its orchestration call budget."""

    code = "rate_limited"
    status_code = 429
    user_message = (
        "This conversation has reached its limit. Please start a new interview."
    )

    def __init__(self, session_id: str, ceiling: int) -> None:
        self.session_id = session_id
        self.ceiling = ceiling
        super().__init__(
            f"Session {session_id} exceeded {ceiling} orchestration calls."
        )


class NarrativeServiceUnavailableError(InterviewEngineError):
    """Raised when the text generation backend fails or is throttled."""

    code = "backend_unavailable"
    status_code = 503
    retryable = True
    user_message = "The interview service is busy. Please try again in a moment."


class NarrativeQuotaExceededError(NarrativeServiceUnavailableError):
    """Raised when the text generation account has no credits left."""

    code = "backend_quota_exhausted"
    status_code = 402
    retryable = False
    user_message = "AI credits exhausted. Please add more credits to continue."


class MalformedOutputError(InterviewEngineError):
    """Base class for generation output that cannot be used."""

    code = "malformed_output"
    status_code = 502
    retryable = True
    user_message = "We couldn't read the interview summary. Please try again."


class SummaryParseError(MalformedOutputError):
    """Raised when the summary response is not valid JSON."""

    code = "summary_parse_failed"


class SummaryValidationError(MalformedOutputError):
    """Raised when the parsed summary does not match the document schema."""

    code = "summary_invalid"

    def __init__(self, issues: Sequence[str]) -> None:
        self.issues: List[str] = list(issues)
        super().__init__("Summary failed validation: " + "; ".join(self.issues))

    def to_payload(self) -> dict[str, object]:
        payload = super().to_payload()
        payload["issues"] = list(self.issues)
        return payload


class InsufficientDepthError(InterviewEngineError):
    """Raised when a summary is requested before enough questions were asked."""

    code = "insufficient_depth"
    status_code = 409
    user_message = "Answer a few more questions before we summarize."

    def __init__(self, asked: int, required: int) -> None:
        self.asked = asked
        self.required = required
        super().__init__(
            f"Summary requires {required} interviewer turns; only {asked} asked."
        )


class ConcurrentSessionUpdateError(InterviewEngineError):
    """Raised when a save loses an optimistic version check."""

    code = "concurrent_update"
    status_code = 409
    retryable = True
    user_message = "Your interview was updated elsewhere. Please retry."


class StoreUnavailableError(InterviewEngineError):
    """Raised when the session or counter store cannot be reached."""

    code = "store_unavailable"
    status_code = 503
    retryable = True
    user_message = "We couldn't reach your saved interview. Please try again in a moment."
