from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from livecall.core.config import LIVEKIT_SETUP_URL
from livecall.core.telemetry import timed_step
from livecall.models.schemas import LiveKitStatusResponse
from livecall.services.livekit_service import LiveKitService


def get_routes(livekit: LiveKitService):
    router = APIRouter(prefix="/api", tags=["system"])

    @router.get("/livekit-status", response_model=LiveKitStatusResponse)
    async def livekit_status():
        with timed_step("system", "livekit_status"):
            missing = livekit.missing_settings()
            body = LiveKitStatusResponse(
                configured=not missing,
                missingVars=missing,
                setupUrl=LIVEKIT_SETUP_URL,
            )
            return JSONResponse(body.model_dump(), status_code=200 if not missing else 503)

    return router
