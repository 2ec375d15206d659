from __future__ import annotations

import asyncio
import secrets
import string
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set, Union

from fastapi import BackgroundTasks
from pydantic import ValidationError

from livecall.core.errors import CallServiceError, CallValidationError, LiveKitNotConfiguredError
from livecall.core.telemetry import log_event, timed_step
from livecall.models.schemas import CallBundle, CallerMetadata, CreateCallRequest, RoomStatusResponse, TeardownResponse
from livecall.services.livekit_service import LiveKitService, RoomNotFoundError
from livecall.services.storage import CallRecordStore


CALL_TYPES = ("web", "phone")
_ID_ALPHABET = string.ascii_letters + string.digits
_CALLER_FIELDS = tuple(CallerMetadata.model_fields)


def _random_id(length: int) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def generate_room_name() -> str:
    return f"call-{_random_id(8)}"


def generate_participant_name() -> str:
    return f"user-{_random_id(6)}"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_call_metadata(call_type: str, phone_number: Optional[str], caller: CallerMetadata) -> Dict[str, Any]:
    fields = caller.model_dump()
    metadata: Dict[str, Any] = {
        "call_type": call_type,
        "phone_number": phone_number or None,
    }
    for key in _CALLER_FIELDS:
        metadata[key] = fields.get(key) or None
    metadata["phone_type"] = fields.get("phone_type") or call_type
    # Free-form tags ride along untouched.
    for key, value in fields.items():
        if key not in metadata:
            metadata[key] = value if value != "" else None
    metadata["created_at"] = _utc_now()
    return metadata


class CallOrchestrator:
    """Coordinate the call lifecycle: token + agent dispatch, room status, teardown."""

    def __init__(self, livekit: LiveKitService, store: CallRecordStore) -> None:
        self._livekit = livekit
        self._store = store
        self._pending_writes: Set[asyncio.Task] = set()

    @property
    def livekit(self) -> LiveKitService:
        return self._livekit

    def _parse_request(self, payload: Union[CreateCallRequest, Dict[str, Any]]) -> CreateCallRequest:
        if isinstance(payload, CreateCallRequest):
            request = payload
        else:
            try:
                request = CreateCallRequest.model_validate(payload or {})
            except ValidationError as exc:
                raise CallValidationError("Invalid request body", payload={"details": str(exc)}) from exc

        if request.call_type not in CALL_TYPES:
            raise CallValidationError("Invalid call type")
        if request.call_type == "phone" and not (request.phone_number or "").strip():
            raise CallValidationError("Phone number required for phone calls")
        return request

    async def create_call(
        self,
        payload: Union[CreateCallRequest, Dict[str, Any]],
        *,
        background: Optional[BackgroundTasks] = None,
    ) -> CallBundle:
        request = self._parse_request(payload)

        if not self._livekit.ready:
            missing = self._livekit.missing_settings()
            raise CallServiceError(
                f"LiveKit is not configured. Please set {', '.join(missing)}.",
                payload={"missingVars": missing},
            )

        call_type = request.call_type or "web"
        phone_number = (request.phone_number or "").strip() or None
        room_name = generate_room_name()
        participant_name = generate_participant_name()

        with timed_step("orchestrator", "create_call", session_id=room_name, details={"call_type": call_type}):
            metadata = build_call_metadata(call_type, phone_number, request.metadata)
            display_name = str(metadata.get("first_name") or ("Phone Caller" if call_type == "phone" else "Web Caller"))
            dispatch_metadata = {**metadata, "participant_name": participant_name}

            try:
                access_token = self._livekit.issue_token(
                    room_name,
                    participant_name,
                    name=display_name,
                    metadata=metadata,
                )
                dispatch = await self._livekit.create_dispatch(room_name, dispatch_metadata)
            except Exception as exc:
                raise CallServiceError(
                    "Failed to create call",
                    payload={"details": str(exc) or type(exc).__name__, "roomName": room_name},
                ) from exc

            self._schedule_record_write(room_name, dispatch_metadata, background)

        log_event(
            "orchestrator",
            "call_created",
            session_id=room_name,
            details={"call_type": call_type, "phone_number": phone_number, "dispatch_id": dispatch.get("id")},
        )
        return CallBundle(
            roomName=room_name,
            participantName=participant_name,
            callType=call_type,
            phoneNumber=phone_number,
            accessToken=access_token,
            liveKitUrl=self._livekit.url,
            agentName=self._livekit.agent_name,
            dispatchId=dispatch.get("id"),
            metadata=dispatch_metadata,
            timestamp=_utc_now(),
        )

    def _schedule_record_write(
        self,
        call_id: str,
        input_data: Dict[str, Any],
        background: Optional[BackgroundTasks],
    ) -> None:
        if background is not None:
            background.add_task(self.record_call_created, call_id, input_data)
            return
        task = asyncio.create_task(self.record_call_created(call_id, input_data))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def record_call_created(self, call_id: str, input_data: Dict[str, Any]) -> bool:
        """Best-effort insert of the call record; a failure leaves the call record-less."""
        try:
            self._store.create(call_id, input_data)
        except Exception as exc:
            log_event(
                "orchestrator",
                "call_record_write_failed",
                status="warning",
                session_id=call_id,
                details={"error": f"{type(exc).__name__}: {exc}"},
            )
            return False
        log_event("orchestrator", "call_record_saved", session_id=call_id)
        return True

    async def flush_pending_writes(self) -> None:
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    async def get_call_status(self, room_name: str) -> RoomStatusResponse:
        if not self._livekit.ready:
            raise LiveKitNotConfiguredError(
                "LiveKit not configured",
                payload={"roomName": room_name, "status": "not_available"},
            )

        with timed_step("orchestrator", "get_call_status", session_id=room_name):
            try:
                room = await self._livekit.find_room(room_name)
            except Exception as exc:
                raise CallServiceError(
                    "Failed to fetch room info",
                    payload={"details": str(exc) or type(exc).__name__, "roomName": room_name},
                ) from exc

        if room is None:
            # A freshly issued room only exists once the first participant joins.
            return RoomStatusResponse(
                roomName=room_name,
                participantCount=0,
                metadata=None,
                creationTime=None,
                status="pending",
                message="Room is being initialized",
            )
        return RoomStatusResponse(
            roomName=room_name,
            participantCount=int(room.get("num_participants") or 0),
            metadata=room.get("metadata"),
            creationTime=room.get("creation_time"),
            status="active",
        )

    async def end_call(self, room_name: str) -> TeardownResponse:
        if not self._livekit.ready:
            log_event("orchestrator", "end_call_unconfigured", status="error", session_id=room_name)
            raise LiveKitNotConfiguredError(
                "LiveKit not configured",
                payload={"roomName": room_name, "status": "cleanup_failed"},
            )

        try:
            with timed_step("orchestrator", "end_call", session_id=room_name):
                await self._livekit.delete_room(room_name)
        except RoomNotFoundError:
            log_event("orchestrator", "room_already_gone", session_id=room_name)
            return TeardownResponse(
                roomName=room_name,
                message="Room was already cleaned up or doesn't exist",
                timestamp=_utc_now(),
            )
        except Exception as exc:
            raise CallServiceError(
                "Failed to end call",
                payload={"details": str(exc) or type(exc).__name__, "roomName": room_name},
            ) from exc

        return TeardownResponse(
            roomName=room_name,
            message="Room deleted successfully. All participants disconnected.",
            timestamp=_utc_now(),
        )
