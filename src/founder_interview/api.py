"""FastAPI application exposing the interview engine over HTTP."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

import uvicorn
from fastapi import Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .config import AppSettings
from .engine import InterviewEngine, build_engine
from .errors import InterviewEngineError
from .models import IntakeFields

logger = logging.getLogger(__name__)


class IntakePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    entry_trigger: Optional[str] = Field(None, alias="entryTrigger")
    future_vision: Optional[str] = Field(None, alias="futureVision")
    desired_identity: Optional[str] = Field(None, alias="desiredIdentity")
    business_type_preference: Optional[str] = Field(
        None, alias="businessTypePreference"
    )
    energy_source: Optional[str] = Field(None, alias="energySource")
    learning_style: Optional[str] = Field(None, alias="learningStyle")
    commitment_level_text: Optional[str] = Field(None, alias="commitmentLevelText")
    onboarding_completed: bool = Field(False, alias="onboardingCompleted")

    def to_intake(self) -> IntakeFields:
        return IntakeFields.from_dict(self.model_dump())


class TurnRequest(BaseModel):
    session_id: Optional[str] = Field(None, alias="sessionId")
    answer_text: Optional[str] = Field(None, alias="answerText")
    intake: Optional[IntakePayload] = None


class SummaryRequest(BaseModel):
    session_id: str = Field(alias="sessionId")


def owner_from_header(x_owner_id: Optional[str] = Header(None)) -> Optional[str]:
    """Default owner resolver; upstream auth is expected to set ``X-Owner-Id``."""

    return x_owner_id


def create_app(
    settings: Optional[AppSettings] = None,
    *,
    engine: Optional[InterviewEngine] = None,
    allow_origins: Sequence[str] | None = None,
) -> FastAPI:
    """Create the FastAPI app; pass ``engine`` to bypass settings-based wiring."""

    if engine is None:
        if settings is None:
            raise ValueError("Either settings or an engine is required.")
        engine = build_engine(settings)
    interview_engine = engine

    app = FastAPI(title="Founder Interview Engine")

    origins = list(allow_origins) if allow_origins else ["*"]
    allow_credentials = origins != ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InterviewEngineError)
    async def engine_error_handler(
        request: Request, exc: InterviewEngineError
    ) -> JSONResponse:
        logger.info(
            "%s %s failed with %s: %s",
            request.method,
            request.url.path,
            exc.code,
            exc,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.post("/interview/turn")
    async def next_turn(
        payload: TurnRequest,
        owner_id: Optional[str] = Depends(owner_from_header),
    ) -> Dict[str, Any]:
        intake = payload.intake.to_intake() if payload.intake else None
        result = await interview_engine.request_next_turn(
            owner_id,
            session_id=payload.session_id,
            answer_text=payload.answer_text,
            intake=intake,
        )
        return result.to_dict()

    @app.post("/interview/summary")
    async def summary(
        payload: SummaryRequest,
        owner_id: Optional[str] = Depends(owner_from_header),
    ) -> Dict[str, Any]:
        document = await interview_engine.request_summary(owner_id, payload.session_id)
        return {"summary": document}

    @app.get("/interview/{session_id}")
    async def get_session(
        session_id: str,
        owner_id: Optional[str] = Depends(owner_from_header),
    ) -> Dict[str, Any]:
        record = interview_engine.get_session(owner_id, session_id).to_dict()
        record["callsUsed"] = interview_engine.calls_used(owner_id, session_id)
        return record

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


def run_api_server(
    settings: AppSettings,
    *,
    host: str = "127.0.0.1",
    port: int = 8081,
    allow_origins: Sequence[str] | None = None,
    log_level: str = "info",
) -> None:
    """Start the interview API under uvicorn."""

    app = create_app(settings, allow_origins=allow_origins)
    uvicorn.run(app, host=host, port=port, log_level=log_level)
