"""Read-only views over stored call records.

Everything here is a pure transform of a record dict as returned by a
``CallRecordStore``; nothing mutates the store or touches LiveKit.
"""
from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dateutil.parser import isoparse

from livecall.core.telemetry import log_event
from livecall.models.schemas import (
    CallDetail,
    CallSummary,
    CollectedDataEntry,
    CollectedDataView,
    ConversationMessage,
    EmptyOutputView,
    MessageHistoryView,
    OutputView,
    RawOutputView,
    TranscriptView,
)


NOT_AVAILABLE = "N/A"
_AGENT_ROLES = {"assistant", "agent"}
_RESPONSE_METADATA_SEPARATOR = " && "


def _format_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_iso(value: str) -> Optional[datetime]:
    text = value.strip()
    if not text:
        return None
    try:
        return isoparse(text)
    except (ValueError, OverflowError):
        return None


def to_iso_timestamp(value: Any) -> str:
    """Normalize a stored timestamp to ISO-8601 UTC, falling back to now."""
    parsed: Optional[datetime] = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = _parse_iso(value)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        # Numeric values are epoch milliseconds.
        try:
            parsed = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            parsed = None

    if parsed is None:
        if value is not None:
            log_event(
                "views",
                "invalid_timestamp",
                status="warning",
                details={"value": repr(value)[:80], "type": type(value).__name__},
            )
        parsed = datetime.now(timezone.utc)
    return _format_iso(parsed)


def derive_status(output_data: Any) -> str:
    if output_data is None:
        return "pending"
    if isinstance(output_data, dict):
        outcome = output_data.get("outcome")
        if outcome:
            return str(outcome)
    return "completed"


def summarize_record(record: Dict[str, Any]) -> CallSummary:
    input_data = record.get("input_data") or {}
    output_data = record.get("output_data")
    full_name = f"{input_data.get('first_name') or ''} {input_data.get('last_name') or ''}".strip()
    return CallSummary(
        call_id=str(record.get("call_id")),
        customer_name=full_name or NOT_AVAILABLE,
        call_type=str(input_data.get("call_type") or input_data.get("phone_type") or NOT_AVAILABLE),
        phone_number=str(input_data["phone_number"]) if input_data.get("phone_number") else None,
        postal_code=str(input_data.get("postal_code") or NOT_AVAILABLE),
        created_at=to_iso_timestamp(record.get("created_at")),
        has_output=output_data is not None,
        status=derive_status(output_data),
    )


def _label(key: str) -> str:
    return re.sub(r"\b\w", lambda match: match.group(0).upper(), key.replace("_", " "))


def _display_value(value: Any) -> str:
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if value is None or isinstance(value, (dict, list)):
        return json.dumps(value, indent=2, default=str)
    return str(value)


def _transcript_messages(turns: List[Any]) -> List[ConversationMessage]:
    messages: List[ConversationMessage] = []
    for turn in turns:
        if not isinstance(turn, dict):
            continue
        user_message = turn.get("user_message")
        if user_message:
            messages.append(ConversationMessage(speaker="customer", text=str(user_message)))
        response = str(turn.get("response") or "")
        response = response.split(_RESPONSE_METADATA_SEPARATOR)[0].strip()
        if response:
            messages.append(ConversationMessage(speaker="agent", text=response))
    return messages


def _history_messages(history: List[Any]) -> List[ConversationMessage]:
    messages: List[ConversationMessage] = []
    for entry in history:
        if not isinstance(entry, dict):
            continue
        role = str(entry.get("role") or "").lower()
        text = entry.get("content") or entry.get("message") or entry.get("text") or "No content"
        timestamp = entry.get("timestamp")
        messages.append(
            ConversationMessage(
                speaker="agent" if role in _AGENT_ROLES else "customer",
                text=str(text),
                timestamp=str(timestamp) if timestamp else None,
            )
        )
    return messages


def resolve_output_view(output_data: Any) -> OutputView:
    """Pick one display shape for an output blob.

    Writers don't tag the shape, so this checks in a fixed order: collected
    data, then transcript turns, then generic message history, then raw JSON.
    A blob carrying several shapes renders as the first one found.
    """
    if output_data is None:
        return EmptyOutputView()
    if not isinstance(output_data, dict):
        return RawOutputView(raw=json.dumps(output_data, indent=2, default=str))

    collected = output_data.get("collected_data")
    if isinstance(collected, dict):
        return CollectedDataView(
            entries=[
                CollectedDataEntry(key=str(key), label=_label(str(key)), value=_display_value(value))
                for key, value in collected.items()
            ]
        )

    transcripts = output_data.get("call_transcripts")
    if isinstance(transcripts, list) and transcripts:
        return TranscriptView(messages=_transcript_messages(transcripts))

    history = output_data.get("llm_call_history")
    if isinstance(history, list) and history:
        return MessageHistoryView(messages=_history_messages(history))

    return RawOutputView(raw=json.dumps(output_data, indent=2, default=str))


def build_detail(record: Dict[str, Any]) -> CallDetail:
    output_data = record.get("output_data")
    return CallDetail(
        call_id=str(record.get("call_id")),
        input_data=record.get("input_data") or {},
        output_data=output_data,
        created_at=to_iso_timestamp(record.get("created_at")),
        updated_at=to_iso_timestamp(record.get("updated_at")),
        status=derive_status(output_data),
        output_view=resolve_output_view(output_data),
    )
