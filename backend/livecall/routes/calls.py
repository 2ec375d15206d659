from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Body, Query

from livecall.core.errors import CallRecordNotFoundError, CallServiceError, CallValidationError
from livecall.core.telemetry import timed_step
from livecall.models.schemas import (
    CallBundle,
    CallDetail,
    CallListResponse,
    CallOutputResponse,
    OutputUpdateResponse,
    Pagination,
    RoomStatusResponse,
    TeardownResponse,
)
from livecall.services.call_views import build_detail, summarize_record, to_iso_timestamp
from livecall.services.orchestrator import CallOrchestrator
from livecall.services.storage import CallRecordStore


def _int_param(name: str, raw: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise CallValidationError(f"Invalid pagination parameters. {name} must be an integer", payload={name: raw}) from None


def _store_fault(action: str, call_id: str | None, exc: Exception) -> CallServiceError:
    payload: Dict[str, Any] = {"details": str(exc) or type(exc).__name__}
    if call_id is not None:
        payload["call_id"] = call_id
    return CallServiceError(f"Failed to {action}", payload=payload)


def get_routes(store: CallRecordStore, orchestrator: CallOrchestrator):
    router = APIRouter(prefix="/api/calls", tags=["calls"])

    @router.post("", response_model=CallBundle, status_code=201)
    async def create_call(background_tasks: BackgroundTasks, payload: Dict[str, Any] = Body(default_factory=dict)):
        with timed_step("api", "create_call", details={"call_type": payload.get("callType")}):
            return await orchestrator.create_call(payload, background=background_tasks)

    # Declared before /{room_name} so "list" is never taken for a room name.
    @router.get("/list", response_model=CallListResponse)
    async def list_calls(
        page_raw: str = Query(default="1", alias="page"),
        limit_raw: str = Query(default="10", alias="limit"),
    ):
        page = _int_param("page", page_raw)
        limit = _int_param("limit", limit_raw)
        with timed_step("api", "list_calls", details={"page": page, "limit": limit}):
            try:
                records, has_more = store.list_page(page, limit)
            except CallServiceError:
                raise
            except Exception as exc:
                raise _store_fault("fetch calls list", None, exc) from exc
            offset = (page - 1) * limit
            return CallListResponse(
                calls=[summarize_record(record) for record in records],
                pagination=Pagination(page=page, limit=limit, hasMore=has_more, total=offset + len(records)),
            )

    @router.get("/{room_name}", response_model=RoomStatusResponse)
    async def get_call_status(room_name: str):
        with timed_step("api", "get_call_status", session_id=room_name):
            return await orchestrator.get_call_status(room_name)

    @router.delete("/{room_name}", response_model=TeardownResponse)
    async def end_call(room_name: str):
        with timed_step("api", "end_call", session_id=room_name):
            return await orchestrator.end_call(room_name)

    @router.get("/{room_name}/detail", response_model=CallDetail)
    async def get_call_detail(room_name: str):
        with timed_step("api", "get_call_detail", session_id=room_name):
            try:
                record = store.get(room_name)
            except Exception as exc:
                raise _store_fault("fetch call details", room_name, exc) from exc
            if record is None:
                raise CallRecordNotFoundError(room_name)
            return build_detail(record)

    @router.patch("/{room_name}/output", response_model=OutputUpdateResponse)
    async def update_call_output(room_name: str, payload: Any = Body(...)):
        with timed_step("api", "update_call_output", session_id=room_name):
            if not isinstance(payload, dict):
                raise CallValidationError("Output data must be a JSON object", payload={"call_id": room_name})
            output_data = payload.get("output_data")
            if not isinstance(output_data, dict):
                output_data = payload
            try:
                record = store.update_output(room_name, output_data)
            except Exception as exc:
                raise _store_fault("update call output", room_name, exc) from exc
            if record is None:
                raise CallRecordNotFoundError(room_name)
            return OutputUpdateResponse(
                call_id=room_name,
                updated_at=to_iso_timestamp(record.get("updated_at")),
            )

    @router.get("/{room_name}/output", response_model=CallOutputResponse)
    async def get_call_output(room_name: str):
        with timed_step("api", "get_call_output", session_id=room_name):
            try:
                record = store.get(room_name)
            except Exception as exc:
                raise _store_fault("fetch call output", room_name, exc) from exc
            if record is None:
                raise CallRecordNotFoundError(room_name)
            return CallOutputResponse(
                call_id=room_name,
                output_data=record.get("output_data"),
                updated_at=to_iso_timestamp(record.get("updated_at")),
            )

    return router
