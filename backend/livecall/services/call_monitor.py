from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Union

from livecall.core.config import settings
from livecall.core.telemetry import log_event
from livecall.services.call_api_client import CallApiClient


EndCallback = Callable[[str], Union[None, Awaitable[None]]]

_DISCONNECTED = "disconnected"


class CallMonitor:
    """Watch one live call and end it when either liveness source says it is over.

    Two independent triggers feed ``end_call``: transport notifications pushed in
    through ``handle_transport_event`` and a periodic status poll against the API.
    ``end_call`` is safe to call any number of times; only the first call tears
    the room down and notifies ``on_ended``.
    """

    def __init__(
        self,
        api: CallApiClient,
        room_name: str,
        *,
        on_ended: Optional[EndCallback] = None,
        poll_interval_seconds: Optional[float] = None,
    ) -> None:
        self._api = api
        self._room_name = room_name
        self._on_ended = on_ended
        self._interval = (
            poll_interval_seconds
            if poll_interval_seconds is not None
            else settings.CALL_STATUS_POLL_INTERVAL_SECONDS
        )
        self._poll_task: Optional[asyncio.Task] = None
        self._seen_active = False
        self._ended = False
        self.end_reason: Optional[str] = None

    @property
    def room_name(self) -> str:
        return self._room_name

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def seen_active(self) -> bool:
        return self._seen_active

    def start(self) -> None:
        if self._poll_task is None and not self._ended:
            self._poll_task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def wait_ended(self) -> None:
        if self._poll_task is not None:
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass

    async def handle_transport_event(self, event: str, state: Optional[str] = None) -> None:
        """Feed a transport notification: a ``disconnected`` event or a state change."""
        if event == _DISCONNECTED or (event == "connection_state_changed" and state == _DISCONNECTED):
            await self.end_call(reason="transport_disconnected")

    async def check_status(self) -> bool:
        """Run one authoritative status check; returns True if the call was ended."""
        try:
            status_code, body = await self._api.get_status(self._room_name)
        except Exception as exc:
            log_event(
                "monitor",
                "status_check_error",
                status="warning",
                session_id=self._room_name,
                details={"error": f"{type(exc).__name__}: {exc}"},
            )
            return False

        status = body.get("status") if isinstance(body, dict) else None
        if status == "active":
            self._seen_active = True
            return False
        if status_code == 404 or status == "ended":
            await self.end_call(reason="room_gone")
            return True
        if status == "pending" and self._seen_active:
            # The room existed and has since disappeared.
            await self.end_call(reason="room_closed")
            return True
        return False

    async def _poll_loop(self) -> None:
        while not self._ended:
            await asyncio.sleep(self._interval)
            if self._ended:
                break
            if await self.check_status():
                break

    async def end_call(self, *, reason: str = "user_ended") -> None:
        if self._ended:
            return
        self._ended = True
        self.end_reason = reason
        log_event("monitor", "end_call", session_id=self._room_name, details={"reason": reason})

        try:
            await self._api.end_call(self._room_name)
        except Exception as exc:
            log_event(
                "monitor",
                "teardown_error",
                status="warning",
                session_id=self._room_name,
                details={"error": f"{type(exc).__name__}: {exc}"},
            )

        await self.stop()
        if self._on_ended is not None:
            result: Any = self._on_ended(self._room_name)
            if inspect.isawaitable(result):
                await result
