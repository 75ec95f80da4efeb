"""Contract and default implementation of the narrative (text generation) service.

The engine never talks to a model directly. It asks a :class:`NarrativeService`
for two things: the next question for a transcript, and a JSON summary of a
finished transcript. Anything satisfying the protocol can be injected, which is
how the test suite swaps in deterministic doubles.

The default implementation sends chat payloads through a :class:`ChatBackend`.
:class:`AgentFrameworkBackend` is the production backend; it is the only code
that touches Microsoft Agent Framework, and it imports the framework lazily.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from importlib import import_module
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Protocol, Sequence

from .errors import NarrativeQuotaExceededError, NarrativeServiceUnavailableError
from .models import Turn, TurnRole
from .prompts import NEXT_QUESTION_INSTRUCTION, SYSTEM_PROMPT

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .config import ModelSettings

logger = logging.getLogger(__name__)

_ROLE_MAP = {
    TurnRole.SYSTEM: "system",
    TurnRole.INTERVIEWER: "assistant",
    TurnRole.INTERVIEWEE: "user",
}

# Provider aliases accepted in FOUNDER_INTERVIEW_PROVIDER.
_PROVIDER_ALIASES: Dict[str, str] = {
    "azure": "azure",
    "azure-openai": "azure",
    "azure_openai": "azure",
    "openai": "openai",
    "oai": "openai",
}

QUOTA_STATUS = 402


@dataclass(slots=True)
class ChatMessage:
    """Simple representation of a chat message compatible with this app."""

    role: str
    content: str


class NarrativeService(Protocol):
    async def next_question(
        self, transcript: Sequence[Turn], instructions: str
    ) -> str:
        """Return the literal text of the next interview question."""
        ...

    async def summarize(self, transcript: Sequence[Turn], schema: str) -> str:
        """Return raw summary text expected to contain the JSON document."""
        ...


class ChatBackend(Protocol):
    async def complete(self, messages: Sequence[ChatMessage]) -> str:
        """Return the assistant text for a chat payload."""
        ...


class MAFIntegrationError(RuntimeError):
    """Raised when the agent framework chat client cannot be built."""


def transcript_messages(transcript: Sequence[Turn]) -> List[ChatMessage]:
    return [
        ChatMessage(role=_ROLE_MAP[turn.role], content=turn.content)
        for turn in transcript
    ]


def merge_roles(messages: Iterable[ChatMessage]) -> List[ChatMessage]:
    """Fold runs of same-role messages into one message each.

    A guided session opens with the intake context right after the system
    prompt, and every request ends with an instruction right after the last
    answer. Chat templates want roles to alternate, so those pairs are joined.
    """

    folded: List[ChatMessage] = []
    for message in messages:
        if folded and folded[-1].role == message.role:
            joined = "\n\n".join(filter(None, (folded[-1].content, message.content)))
            folded[-1] = ChatMessage(role=message.role, content=joined)
        else:
            folded.append(ChatMessage(role=message.role, content=message.content))
    return folded


def _open_chat_client(settings: "ModelSettings") -> Any:
    family = _PROVIDER_ALIASES.get(settings.provider.lower())
    if family is None:
        raise MAFIntegrationError(
            f"Unknown model provider '{settings.provider}'; "
            f"expected one of {sorted(_PROVIDER_ALIASES)}."
        )
    module_name = f"agent_framework.{family}"
    try:
        module = import_module(module_name)
    except ModuleNotFoundError as exc:  # pragma: no cover - install problem
        raise MAFIntegrationError(
            f"Cannot import {module_name} ({exc.name or 'unknown module'} missing). "
            "Install the project with `pip install -e .`."
        ) from exc

    if family == "azure":
        return module.AzureOpenAIChatClient(
            api_key=settings.api_key,
            deployment_name=settings.model,
            endpoint=settings.endpoint,
            api_version=settings.api_version,
        )
    return module.OpenAIChatClient(
        api_key=settings.api_key,
        model_id=settings.model,
        base_url=settings.endpoint,
    )


class AgentFrameworkBackend:
    """Chat backend over a Microsoft Agent Framework chat client."""

    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, settings: "ModelSettings") -> "AgentFrameworkBackend":
        logger.info(
            "Using %s chat client for model %s", settings.provider, settings.model
        )
        return cls(_open_chat_client(settings))

    async def complete(self, messages: Sequence[ChatMessage]) -> str:
        framework = import_module("agent_framework")
        payload = [
            framework.ChatMessage(role=framework.Role(message.role), text=message.content)
            for message in merge_roles(messages)
        ]
        response = await self._client.get_response(messages=payload)
        return response.text or ""


def _http_status(exc: BaseException) -> Optional[int]:
    """Find an HTTP status on the exception or anything it was raised from."""

    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        for holder in (current, getattr(current, "response", None)):
            status = getattr(holder, "status_code", None)
            if isinstance(status, int):
                return status
        current = current.__cause__ or current.__context__
    return None


class MAFNarrativeService:
    """Narrative service backed by a Microsoft Agent Framework chat client."""

    def __init__(self, backend: ChatBackend) -> None:
        self._backend = backend

    @classmethod
    def from_settings(cls, settings: "ModelSettings") -> "MAFNarrativeService":
        return cls(AgentFrameworkBackend.from_settings(settings))

    async def next_question(
        self, transcript: Sequence[Turn], instructions: str
    ) -> str:
        payload: List[ChatMessage] = [
            ChatMessage(role="system", content=f"{SYSTEM_PROMPT}\n\n{instructions}")
        ]
        payload.extend(transcript_messages(transcript))
        payload.append(ChatMessage(role="user", content=NEXT_QUESTION_INSTRUCTION))
        return await self._complete(payload, purpose="question")

    async def summarize(self, transcript: Sequence[Turn], schema: str) -> str:
        payload: List[ChatMessage] = [ChatMessage(role="system", content=SYSTEM_PROMPT)]
        payload.extend(transcript_messages(transcript))
        payload.append(ChatMessage(role="user", content=schema))
        return await self._complete(payload, purpose="summary")

    async def _complete(self, payload: List[ChatMessage], *, purpose: str) -> str:
        try:
            text = await self._backend.complete(payload)
        except NarrativeServiceUnavailableError:
            raise
        except Exception as exc:
            status = _http_status(exc)
            if status == QUOTA_STATUS:
                logger.error("Model account out of credits during %s call", purpose)
                raise NarrativeQuotaExceededError(
                    f"Narrative {purpose} call rejected: quota exhausted ({exc})"
                ) from exc
            logger.warning(
                "Narrative %s call failed (status %s): %s", purpose, status, exc
            )
            raise NarrativeServiceUnavailableError(
                f"Narrative {purpose} call failed: {exc}"
            ) from exc
        logger.debug("Narrative %s response: %d chars", purpose, len(text))
        return text
