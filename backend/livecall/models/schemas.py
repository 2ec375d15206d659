from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


CallType = Literal["web", "phone"]
RoomStatus = Literal["pending", "active", "ended", "not_available", "cleanup_failed"]


class CallerMetadata(BaseModel):
    """Caller-supplied fields of any JSON type; unknown tags are kept as-is."""

    model_config = ConfigDict(extra="allow")

    first_name: Optional[Any] = None
    last_name: Optional[Any] = None
    street_address: Optional[Any] = None
    city: Optional[Any] = None
    postal_code: Optional[Any] = None
    phone_type: Optional[Any] = None
    request_type: Optional[Any] = None
    call_direction: Optional[Any] = None
    company_name: Optional[Any] = None
    electricity_recommended_supplier: Optional[Any] = None
    electricity_quote_annual_cost: Optional[Any] = None
    gas_recommended_supplier: Optional[Any] = None
    gas_quote_annual_cost: Optional[Any] = None


class CreateCallRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    call_type: Optional[str] = Field(default=None, alias="callType")
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")
    metadata: CallerMetadata = Field(default_factory=CallerMetadata)


class CallBundle(BaseModel):
    roomName: str
    participantName: str
    callType: CallType
    phoneNumber: Optional[str] = None
    accessToken: str
    liveKitUrl: str
    agentName: str
    dispatchId: Optional[str] = None
    metadata: Dict[str, Any]
    status: Literal["created"] = "created"
    timestamp: str


class RoomStatusResponse(BaseModel):
    roomName: str
    participantCount: int = 0
    metadata: Optional[str] = None
    creationTime: Optional[int] = None
    status: RoomStatus
    message: Optional[str] = None


class TeardownResponse(BaseModel):
    roomName: str
    status: Literal["ended"] = "ended"
    message: str
    timestamp: str


class LiveKitStatusResponse(BaseModel):
    configured: bool
    missingVars: List[str] = Field(default_factory=list)
    setupUrl: str


class OutputUpdateResponse(BaseModel):
    success: bool = True
    call_id: str
    updated_at: Optional[str] = None


class CallOutputResponse(BaseModel):
    call_id: str
    output_data: Optional[Dict[str, Any]] = None
    updated_at: Optional[str] = None


class CallSummary(BaseModel):
    call_id: str
    customer_name: str
    call_type: str
    phone_number: Optional[str] = None
    postal_code: str
    created_at: str
    has_output: bool
    status: str


class Pagination(BaseModel):
    page: int
    limit: int
    hasMore: bool
    total: int


class CallListResponse(BaseModel):
    calls: List[CallSummary]
    pagination: Pagination


class CollectedDataEntry(BaseModel):
    key: str
    label: str
    value: str


class ConversationMessage(BaseModel):
    speaker: Literal["customer", "agent"]
    text: str
    timestamp: Optional[str] = None


class CollectedDataView(BaseModel):
    kind: Literal["collected_data"] = "collected_data"
    entries: List[CollectedDataEntry]


class TranscriptView(BaseModel):
    kind: Literal["transcript"] = "transcript"
    messages: List[ConversationMessage]


class MessageHistoryView(BaseModel):
    kind: Literal["message_history"] = "message_history"
    messages: List[ConversationMessage]


class RawOutputView(BaseModel):
    kind: Literal["raw"] = "raw"
    raw: str


class EmptyOutputView(BaseModel):
    kind: Literal["none"] = "none"


OutputView = Union[CollectedDataView, TranscriptView, MessageHistoryView, RawOutputView, EmptyOutputView]


class CallDetail(BaseModel):
    call_id: str
    input_data: Dict[str, Any]
    output_data: Optional[Dict[str, Any]] = None
    created_at: str
    updated_at: str
    status: str
    output_view: OutputView = Field(discriminator="kind")
