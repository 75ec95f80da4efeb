"""Configuration helpers for the founder interview engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from importlib import import_module
from pathlib import Path
from typing import Optional


class InterviewMode(str, Enum):
    """Interview strategies a session can be bound to."""

    GUIDED = "guided"
    COLD_START = "cold_start"

    @classmethod
    def from_string(
        cls,
        mode: str | None,
        default: Optional["InterviewMode"] = None,
    ) -> "InterviewMode":
        """Normalize arbitrary input into a valid mode."""
        if not mode:
            if default is None:
                raise ValueError("Interview mode is required.")
            return default
        normalized = mode.strip().lower().replace("-", "_").replace(" ", "_")
        for candidate in cls:
            if candidate.value == normalized:
                return candidate
        if default is not None:
            return default
        raise ValueError(f"Unsupported interview mode: {mode}")


@dataclass(frozen=True, slots=True)
class EngineLimits:
    """Budget and ceiling values enforced by the turn controller."""

    guided_max_questions: int = 7
    cold_start_max_questions: int = 8
    min_depth: int = 3
    max_calls_per_session: int = 15

    def max_questions(self, mode: InterviewMode) -> int:
        if mode is InterviewMode.GUIDED:
            return self.guided_max_questions
        return self.cold_start_max_questions


@dataclass(slots=True)
class ModelSettings:
    """Holds model-related configuration for the narrative service."""

    provider: str
    model: str
    endpoint: Optional[str]
    api_key: str
    api_version: Optional[str]


@dataclass(slots=True)
class AppSettings:
    """Top-level application settings loaded from environment variables."""

    model: ModelSettings
    limits: EngineLimits
    redis_url: Optional[str]
    archive_path: Path
    topics_file: Optional[Path]

    @classmethod
    def load(cls) -> "AppSettings":
        """Load settings from the environment or .env file."""
        _ensure_dotenv()
        provider = os.getenv("FOUNDER_INTERVIEW_MODEL_PROVIDER", "azure-openai")
        model = os.getenv("FOUNDER_INTERVIEW_MODEL")
        if not model:
            raise RuntimeError(
                "FOUNDER_INTERVIEW_MODEL environment variable is required."
            )
        endpoint = os.getenv("FOUNDER_INTERVIEW_MODEL_ENDPOINT")
        api_key = os.getenv("FOUNDER_INTERVIEW_MODEL_API_KEY")
        if not api_key:
            raise RuntimeError(
                "FOUNDER_INTERVIEW_MODEL_API_KEY environment variable is required."
            )
        api_version = os.getenv("FOUNDER_INTERVIEW_MODEL_API_VERSION")

        redis_url = os.getenv("FOUNDER_INTERVIEW_REDIS_URL", "")
        if not redis_url.strip():
            redis_url = None

        archive_path = Path(
            os.getenv(
                "FOUNDER_INTERVIEW_ARCHIVE_JSONL",
                str(Path("outputs") / "interviews.jsonl"),
            )
        )
        archive_path.parent.mkdir(parents=True, exist_ok=True)

        topics_raw = os.getenv("FOUNDER_INTERVIEW_TOPICS_FILE", "").strip()
        topics_file = Path(topics_raw) if topics_raw else None

        limits = EngineLimits(
            guided_max_questions=_int_env(
                "FOUNDER_INTERVIEW_GUIDED_MAX_QUESTIONS", 7, minimum=1
            ),
            cold_start_max_questions=_int_env(
                "FOUNDER_INTERVIEW_COLD_START_MAX_QUESTIONS", 8, minimum=1
            ),
            min_depth=_int_env("FOUNDER_INTERVIEW_MIN_DEPTH", 3, minimum=1),
            max_calls_per_session=_int_env(
                "FOUNDER_INTERVIEW_MAX_CALLS", 15, minimum=1
            ),
        )
        return cls(
            model=ModelSettings(
                provider=provider,
                model=model,
                endpoint=endpoint,
                api_key=api_key,
                api_version=api_version,
            ),
            limits=limits,
            redis_url=redis_url,
            archive_path=archive_path,
            topics_file=topics_file,
        )


def _int_env(name: str, default: int, *, minimum: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer") from exc
    if value < minimum:
        raise RuntimeError(f"{name} must be at least {minimum}")
    return value


def _ensure_dotenv() -> None:
    """Load dotenv variables and provide a helpful error if missing."""

    try:
        dotenv_module = import_module("dotenv")
    except ModuleNotFoundError as exc:  # pragma: no cover - optional dep
        raise RuntimeError(
            "python-dotenv is required. Install with `pip install "
            "python-dotenv`."
        ) from exc

    load_dotenv = getattr(dotenv_module, "load_dotenv")
    load_dotenv()
