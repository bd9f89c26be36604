"""
Clone Lab Service - FastAPI Application.

HTTP transport over ``CloneLabService``. Terminal clone failures are
returned as outcome bodies; only unknown speakers and invalid input map to
error statuses.
"""

import time
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse

from ..config import Settings, get_settings
from ..errors import SpeakerNotFoundError
from ..logging import configure_logging
from ..models import (
    CloneOutcome,
    IdentityDecision,
    QualityMetrics,
    SpeakerProfile,
    WorkflowStatus,
)
from ..service import CloneLabService
from .schemas import BatchCloneResponse, MatchIdentityRequest, RegisterSpeakerRequest

logger = structlog.get_logger(__name__)

VERSION = "1.0.0"


def create_app(
    service: Optional[CloneLabService] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Create the API application.

    Args:
        service: Prebuilt service; built from settings at startup when omitted
        settings: Settings used for logging and service construction
    """
    settings = settings or (service.settings if service else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level, settings.log_json)
        owns_service = app.state.service is None
        if owns_service:
            app.state.service = CloneLabService.from_settings(settings)

        logger.info(
            "clone_lab_starting",
            port=settings.port,
            mode=app.state.service.mode.value,
        )

        yield

        logger.info("clone_lab_stopping")
        if owns_service:
            await app.state.service.close()

    app = FastAPI(
        title="Clone Lab Service",
        description="""
        Speaker voice cloning pipeline.

        Features:
        - Segment extraction and verified provider cloning
        - Batch cloning per source recording
        - Multi-dimensional quality scoring of generated audio
        - Cross-recording speaker identity matching
        """,
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.start_time = time.time()

    def get_service(request: Request) -> CloneLabService:
        svc = request.app.state.service
        if svc is None:
            raise HTTPException(status_code=503, detail="Service not ready")
        return svc

    @app.exception_handler(SpeakerNotFoundError)
    async def speaker_not_found_handler(request: Request, exc: SpeakerNotFoundError):
        return JSONResponse(status_code=404, content=exc.to_dict())

    # =========================================================================
    # Health
    # =========================================================================

    @app.get("/health")
    async def health_check(request: Request):
        svc = request.app.state.service
        return {
            "status": "healthy" if svc is not None else "starting",
            "service": settings.service_name,
            "version": VERSION,
            "mode": svc.mode.value if svc is not None else None,
            "uptime_seconds": round(time.time() - request.app.state.start_time, 2),
        }

    # =========================================================================
    # Speakers
    # =========================================================================

    @app.post("/v1/speakers", response_model=SpeakerProfile, status_code=201)
    async def register_speaker(body: RegisterSpeakerRequest, request: Request):
        """Register a detected speaker for cloning."""
        data = body.model_dump(exclude_none=True)
        speaker = SpeakerProfile(**data)
        return await get_service(request).register_speaker(speaker)

    @app.post("/v1/speakers/{speaker_id}/clone", response_model=CloneOutcome)
    async def clone_speaker(speaker_id: str, request: Request):
        """Run the cloning workflow for one speaker."""
        return await get_service(request).request_clone(speaker_id)

    @app.get("/v1/speakers/{speaker_id}/status", response_model=WorkflowStatus)
    async def speaker_status(speaker_id: str, request: Request):
        return await get_service(request).get_status(speaker_id)

    @app.post("/v1/sources/{source_id}/clone", response_model=BatchCloneResponse)
    async def clone_source(source_id: str, request: Request):
        """Clone every eligible speaker of a source recording."""
        outcomes = await get_service(request).batch_clone(source_id)
        return BatchCloneResponse(
            source_id=source_id,
            completed=sum(1 for o in outcomes if o.succeeded),
            failed=sum(1 for o in outcomes if not o.succeeded),
            outcomes=outcomes,
        )

    # =========================================================================
    # Analysis and Identity
    # =========================================================================

    @app.post("/v1/quality", response_model=QualityMetrics)
    async def analyze_quality(
        request: Request,
        file: UploadFile = File(..., description="Generated audio"),
        text: str = Form(..., description="Text the audio was generated from"),
        reference: Optional[UploadFile] = File(default=None, description="Reference audio"),
    ):
        """Score generated audio for production readiness."""
        audio = await file.read()
        if not audio:
            raise HTTPException(status_code=400, detail="Audio file is empty")
        reference_audio = await reference.read() if reference is not None else None

        return await get_service(request).analyze_quality(
            audio,
            text,
            reference=reference_audio or None,
            content_type=file.content_type,
        )

    @app.post("/v1/identities/match", response_model=IdentityDecision)
    async def match_identity(body: MatchIdentityRequest, request: Request):
        return await get_service(request).match_or_create_identity(
            body.accent, body.characteristics, body.quality_score
        )

    return app


def main() -> None:
    """Console entry point."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        create_app(settings=settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )
