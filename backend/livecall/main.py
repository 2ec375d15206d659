from __future__ import annotations

import time
import uuid
from pathlib import Path
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from livecall.core.config import LiveKitConfig, settings
from livecall.core.errors import CallServiceError
from livecall.core.telemetry import configure_logging, log_event, timed_step
from livecall.routes import calls as call_routes
from livecall.routes import system as system_routes
from livecall.services.livekit_service import LiveKitService
from livecall.services.orchestrator import CallOrchestrator
from livecall.services.storage import CallRecordStore, SqliteCallRecordStore
from livecall.services.supabase_store import SupabaseCallRecordStore


def _build_store(sqlite_path: str | Path | None) -> CallRecordStore:
    if settings.SUPABASE_URL and (settings.SUPABASE_SERVICE_ROLE_KEY or settings.SUPABASE_ANON_KEY):
        return SupabaseCallRecordStore()
    return SqliteCallRecordStore(sqlite_path)


def create_app(
    *,
    store: Optional[CallRecordStore] = None,
    livekit: Optional[LiveKitService] = None,
    orchestrator: Optional[CallOrchestrator] = None,
    data_root: str | Path | None = None,
    sqlite_path: str | Path | None = None,
    allowed_origins: Optional[List[str]] = None,
) -> FastAPI:
    """Create the FastAPI app with injectable dependencies.

    Tests build isolated instances with a temporary data root, a throwaway
    SQLite file and a fake LiveKit service.
    """

    if data_root is not None:
        settings.DATA_ROOT = Path(data_root)
    if sqlite_path is not None:
        settings.SQLITE_PATH = Path(sqlite_path)

    configure_logging()

    local_store = store or _build_store(sqlite_path)
    local_livekit = livekit or LiveKitService(LiveKitConfig.from_settings())
    local_orchestrator = orchestrator or CallOrchestrator(local_livekit, local_store)

    app = FastAPI(title="livecall")
    app.state.store = local_store
    app.state.livekit = local_livekit
    app.state.orchestrator = local_orchestrator

    app.include_router(call_routes.get_routes(local_store, local_orchestrator))
    app.include_router(system_routes.get_routes(local_livekit))

    @app.exception_handler(CallServiceError)
    async def handle_call_service_error(request: Request, exc: CallServiceError) -> JSONResponse:
        log_event(
            "http",
            "call_service_error",
            status="warning" if exc.status_code < 500 else "error",
            details={
                "path": str(request.url.path),
                "status_code": exc.status_code,
                "error": exc.message,
            },
        )
        return JSONResponse(exc.payload, status_code=exc.status_code)

    origins = list(allowed_origins or settings.ALLOWED_ORIGINS) or ["*"]
    wildcard = origins == ["*"]
    local_dev = not wildcard and any("localhost" in origin or "127.0.0.1" in origin for origin in origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Local dev servers pick arbitrary ports.
        allow_origin_regex=r"https?://(?:localhost|127\.0\.0\.1):[0-9]+" if local_dev else None,
        allow_credentials=not wildcard,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_request_timing(request: Request, call_next):
        request.state.request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        path = request.url.path
        details = {"request_id": request.state.request_id, "client_ip": request.client.host if request.client else None}
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            details.update(status_code=500, error=f"{type(exc).__name__}: {exc}")
            log_event(
                "http",
                f"{request.method} {path}",
                status="error",
                duration_ms=(time.perf_counter() - started) * 1000.0,
                details=details,
            )
            raise
        details["status_code"] = response.status_code
        if path not in settings.LOG_SKIP_REQUEST_PATHS or response.status_code >= 400:
            log_event(
                "http",
                f"{request.method} {path}",
                status="warning" if response.status_code >= 500 else "ok",
                duration_ms=(time.perf_counter() - started) * 1000.0,
                details=details,
            )
        return response

    @app.get("/health")
    async def health() -> dict:
        with timed_step("http", "healthcheck"):
            return {"status": "ok"}

    @app.on_event("startup")
    async def startup_telemetry() -> None:
        missing = local_livekit.missing_settings()
        if missing:
            log_event(
                "system",
                "livekit_not_configured",
                status="warning",
                details={
                    "missing": missing,
                    "message": "Voice calling will not work until these are set.",
                },
            )
        log_event(
            "system",
            "startup",
            details={
                "livekit_configured": not missing,
                "livekit_agent_name": local_livekit.agent_name,
                "store": type(local_store).__name__,
                "log_level": settings.LOG_LEVEL,
            },
        )

    @app.on_event("shutdown")
    async def shutdown() -> None:
        await local_orchestrator.flush_pending_writes()

    return app


app = create_app()


def run() -> None:
    uvicorn.run(app, host=settings.APP_HOST, port=settings.APP_PORT)


if __name__ == "__main__":
    run()
