from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import httpx
from livekit import api

from livecall.core.config import LiveKitConfig, settings
from livecall.core.telemetry import log_event, timed_step


_ROOM_SERVICE = "/twirp/livekit.RoomService"
_DISPATCH_SERVICE = "/twirp/livekit.AgentDispatchService"


class LiveKitRequestError(Exception):
    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class RoomNotFoundError(LiveKitRequestError):
    pass


def _is_not_found(code: Optional[str], status_code: Optional[int], message: str) -> bool:
    if code == "not_found" or status_code == 404:
        return True
    lowered = message.lower()
    return "not found" in lowered or "roomnotfound" in lowered


def _as_int(value: Any) -> Optional[int]:
    # Twirp's JSON encoding renders int64 fields as strings.
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class LiveKitService:
    """Thin client for LiveKit control-plane operations.

    Room and dispatch calls go through LiveKit's Twirp JSON API with a short-lived
    server token. Participant tokens are signed locally and never touch the network.
    """

    def __init__(
        self,
        config: Optional[LiveKitConfig] = None,
        *,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config or LiveKitConfig.from_settings()
        self._timeout = timeout_seconds if timeout_seconds is not None else settings.LIVEKIT_HTTP_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def config(self) -> LiveKitConfig:
        return self._config

    @property
    def ready(self) -> bool:
        return self._config.configured

    @property
    def url(self) -> str:
        return self._config.url

    @property
    def agent_name(self) -> str:
        return self._config.agent_name

    def missing_settings(self) -> List[str]:
        return self._config.missing_settings()

    def issue_token(
        self,
        room_name: str,
        identity: str,
        *,
        name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        grants = api.VideoGrants(
            room_join=True,
            room=room_name,
            can_publish=True,
            can_publish_data=True,
            can_subscribe=True,
        )
        token = (
            api.AccessToken(self._config.api_key, self._config.api_secret)
            .with_identity(identity)
            .with_name(name or identity)
            .with_metadata(json.dumps(metadata or {}, separators=(",", ":")))
            .with_grants(grants)
        )
        with timed_step("livekit", "issue_token", session_id=room_name, details={"identity": identity}):
            return token.to_jwt()

    def _server_token(self, room_name: Optional[str] = None) -> str:
        grants = api.VideoGrants(
            room_list=True,
            room_create=True,
            room_admin=True,
            room=room_name or "",
        )
        return (
            api.AccessToken(self._config.api_key, self._config.api_secret)
            .with_grants(grants)
            .to_jwt()
        )

    async def _post(
        self,
        endpoint: str,
        payload: Dict[str, Any],
        *,
        room_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        url = f"{self._config.api_base_url}/{endpoint.lstrip('/')}"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._server_token(room_name)}",
            "User-Agent": "livecall-backend-livekit-service",
        }

        with timed_step("livekit", "api_request", session_id=room_name, details={"endpoint": endpoint}):
            try:
                async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                    response = await client.post(url, json=payload, headers=headers)
            except httpx.HTTPError as exc:
                log_event(
                    "livekit",
                    "api_request_error",
                    status="error",
                    session_id=room_name,
                    details={"endpoint": endpoint, "error": f"{type(exc).__name__}: {exc}"},
                )
                raise LiveKitRequestError(f"{type(exc).__name__}: {exc}") from exc

            if response.status_code >= 400:
                code: Optional[str] = None
                message = response.text[:800]
                try:
                    body = response.json()
                except ValueError:
                    body = None
                if isinstance(body, dict):
                    code = body.get("code")
                    message = body.get("msg") or message
                error_cls = RoomNotFoundError if _is_not_found(code, response.status_code, message) else LiveKitRequestError
                raise error_cls(message, code=code, status_code=response.status_code)

            if not response.content:
                return {}
            try:
                data = response.json()
            except ValueError as exc:
                raise LiveKitRequestError(f"Invalid JSON from {endpoint}: {response.text[:200]}") from exc
            return data if isinstance(data, dict) else {}

    async def create_dispatch(self, room_name: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        payload = {
            "agent_name": self._config.agent_name,
            "room": room_name,
            "metadata": json.dumps(metadata, separators=(",", ":")),
        }
        result = await self._post(f"{_DISPATCH_SERVICE}/CreateDispatch", payload, room_name=room_name)
        log_event(
            "livekit",
            "agent_dispatched",
            session_id=room_name,
            details={"agent_name": self._config.agent_name, "dispatch_id": result.get("id")},
        )
        return result

    async def list_rooms(self) -> List[Dict[str, Any]]:
        result = await self._post(f"{_ROOM_SERVICE}/ListRooms", {})
        rooms = result.get("rooms") or []
        return [self._normalize_room(room) for room in rooms if isinstance(room, dict)]

    async def find_room(self, room_name: str) -> Optional[Dict[str, Any]]:
        for room in await self.list_rooms():
            if room.get("name") == room_name:
                return room
        return None

    async def delete_room(self, room_name: str) -> None:
        await self._post(f"{_ROOM_SERVICE}/DeleteRoom", {"room": room_name}, room_name=room_name)

    @staticmethod
    def _normalize_room(room: Dict[str, Any]) -> Dict[str, Any]:
        num_participants = room.get("num_participants", room.get("numParticipants"))
        creation_time = room.get("creation_time", room.get("creationTime"))
        return {
            "sid": room.get("sid"),
            "name": room.get("name"),
            "num_participants": _as_int(num_participants) or 0,
            "metadata": room.get("metadata") or None,
            "creation_time": _as_int(creation_time),
        }
