from __future__ import annotations

from typing import Any, Dict, Optional

import httpx


class CallApiError(Exception):
    def __init__(self, status_code: int, payload: Any) -> None:
        detail = payload.get("error") if isinstance(payload, dict) else payload
        super().__init__(f"HTTP {status_code}: {detail}")
        self.status_code = status_code
        self.payload = payload


def has_live_credentials(bundle: Dict[str, Any]) -> bool:
    """True when a call bundle carries a usable endpoint and token."""
    return bool(bundle.get("liveKitUrl") and bundle.get("accessToken"))


class CallApiClient:
    """Async client for the call HTTP API, used by operator tooling and the call monitor."""

    def __init__(
        self,
        base_url: str = "http://localhost:3001",
        *,
        timeout_seconds: float = 20.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout_seconds)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "CallApiClient":
        return self

    async def __aexit__(self, *_exc: Any) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        return await self._client.request(method, path, **kwargs)

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return {"error": response.text[:200]}

    def _expect(self, response: httpx.Response, *ok_codes: int) -> Any:
        payload = self._json(response)
        if response.status_code not in ok_codes:
            raise CallApiError(response.status_code, payload)
        return payload

    async def create_call(
        self,
        call_type: str = "web",
        *,
        phone_number: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"callType": call_type, "metadata": metadata or {}}
        if phone_number:
            body["phoneNumber"] = phone_number
        return self._expect(await self._request("POST", "/api/calls", json=body), 201)

    async def get_status(self, room_name: str) -> tuple[int, Dict[str, Any]]:
        """Return the raw status code and body; callers decide what 404/503 mean."""
        response = await self._request("GET", f"/api/calls/{room_name}")
        return response.status_code, self._json(response)

    async def end_call(self, room_name: str) -> Dict[str, Any]:
        return self._expect(await self._request("DELETE", f"/api/calls/{room_name}"), 200)

    async def get_detail(self, room_name: str) -> Optional[Dict[str, Any]]:
        response = await self._request("GET", f"/api/calls/{room_name}/detail")
        if response.status_code == 404:
            return None
        return self._expect(response, 200)

    async def update_output(self, room_name: str, output_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        response = await self._request("PATCH", f"/api/calls/{room_name}/output", json={"output_data": output_data})
        if response.status_code == 404:
            return None
        return self._expect(response, 200)

    async def get_output(self, room_name: str) -> Optional[Dict[str, Any]]:
        response = await self._request("GET", f"/api/calls/{room_name}/output")
        if response.status_code == 404:
            return None
        return self._expect(response, 200)

    async def list_calls(self, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        response = await self._request("GET", "/api/calls/list", params={"page": page, "limit": limit})
        return self._expect(response, 200)

    async def livekit_status(self) -> Dict[str, Any]:
        return self._expect(await self._request("GET", "/api/livekit-status"), 200, 503)
