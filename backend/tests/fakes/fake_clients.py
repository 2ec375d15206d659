from __future__ import annotations

from typing import Any, Dict, List, Optional

from livecall.services.livekit_service import RoomNotFoundError


class FakeLiveKitService:
    """In-memory stand-in for LiveKitService; rooms appear when a test says so."""

    rooms: Dict[str, Dict[str, Any]]
    tokens: List[Dict[str, Any]]
    dispatches: List[Dict[str, Any]]
    deleted: List[str]

    def __init__(
        self,
        *,
        configured: bool = True,
        url: str = "wss://livekit.example.test",
        agent_name: str = "voice-assistant",
        dispatch_error: Optional[Exception] = None,
        list_error: Optional[Exception] = None,
        delete_error: Optional[Exception] = None,
    ) -> None:
        self.configured = configured
        self._url = url
        self._agent_name = agent_name
        self.dispatch_error = dispatch_error
        self.list_error = list_error
        self.delete_error = delete_error
        self.rooms = {}
        self.tokens = []
        self.dispatches = []
        self.deleted = []

    @property
    def ready(self) -> bool:
        return self.configured

    @property
    def url(self) -> str:
        return self._url

    @property
    def agent_name(self) -> str:
        return self._agent_name

    def missing_settings(self) -> List[str]:
        if self.configured:
            return []
        return ["LIVEKIT_URL", "LIVEKIT_API_KEY", "LIVEKIT_API_SECRET"]

    def issue_token(
        self,
        room_name: str,
        identity: str,
        *,
        name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        self.tokens.append({"room": room_name, "identity": identity, "name": name, "metadata": metadata})
        return f"token-{room_name}-{identity}"

    async def create_dispatch(self, room_name: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        if self.dispatch_error is not None:
            raise self.dispatch_error
        self.dispatches.append({"room": room_name, "metadata": metadata})
        return {"id": f"AD_{len(self.dispatches)}", "room": room_name, "agent_name": self._agent_name}

    def open_room(self, room_name: str, participants: int = 1, metadata: Optional[str] = None) -> None:
        self.rooms[room_name] = {
            "sid": f"RM_{room_name}",
            "name": room_name,
            "num_participants": participants,
            "metadata": metadata,
            "creation_time": 1705312800,
        }

    async def list_rooms(self) -> List[Dict[str, Any]]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.rooms.values())

    async def find_room(self, room_name: str) -> Optional[Dict[str, Any]]:
        for room in await self.list_rooms():
            if room["name"] == room_name:
                return room
        return None

    async def delete_room(self, room_name: str) -> None:
        if self.delete_error is not None:
            raise self.delete_error
        if room_name not in self.rooms:
            raise RoomNotFoundError("requested room does not exist", code="not_found", status_code=404)
        del self.rooms[room_name]
        self.deleted.append(room_name)


class FailingCallRecordStore:
    """Store whose every operation raises, for exercising fault paths."""

    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error or RuntimeError("database unavailable")

    def create(self, call_id: str, input_data: Dict[str, Any]) -> Dict[str, Any]:
        raise self.error

    def update_output(self, call_id: str, output_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        raise self.error

    def get(self, call_id: str) -> Optional[Dict[str, Any]]:
        raise self.error

    def list_page(self, page: int = 1, limit: int = 10):
        raise self.error
