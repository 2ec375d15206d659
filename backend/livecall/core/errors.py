from __future__ import annotations

from typing import Any, Dict, Optional


class CallServiceError(Exception):
    """An already-classified failure carrying the HTTP status and body to return."""

    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload: Dict[str, Any] = {"error": message, **(payload or {})}


class CallValidationError(CallServiceError):
    status_code = 400


class LiveKitNotConfiguredError(CallServiceError):
    status_code = 503


class CallRecordNotFoundError(CallServiceError):
    status_code = 404

    def __init__(self, call_id: str) -> None:
        super().__init__("Call record not found", payload={"call_id": call_id})
