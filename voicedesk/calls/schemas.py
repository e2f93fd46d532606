"""Call request and response models."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from voicedesk.database.models import CallStatus, WebhookEventType


class CallCreate(BaseModel):
    bot_id: UUID
    to_number: str = Field(..., min_length=3)
    from_number: Optional[str] = Field(
        None, description="Defaults to a number whose outbound bot is ``bot_id``"
    )
    metadata: dict[str, Any] = Field(default_factory=dict)


class CallResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID
    bot_id: UUID
    initiated_by_id: Optional[UUID] = None
    retell_call_id: str
    from_number: Optional[str] = None
    to_number: Optional[str] = None
    status: CallStatus
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    disconnection_reason: Optional[str] = None
    recording_url: Optional[str] = None
    created_at: Optional[datetime] = None


class CallAnalyticsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    summary: Optional[str] = None
    sentiment: Optional[str] = None
    success_evaluation: Optional[str] = None
    custom_analysis: Optional[dict[str, Any]] = None
    e2e_latency_p50: Optional[float] = None
    e2e_latency_p90: Optional[float] = None
    e2e_latency_p95: Optional[float] = None
    e2e_latency_p99: Optional[float] = None
    llm_latency_p50: Optional[float] = None
    llm_latency_p90: Optional[float] = None
    asr_latency_p50: Optional[float] = None
    tts_latency_p50: Optional[float] = None
    kb_latency_p50: Optional[float] = None
    network_latency_p50: Optional[float] = None


class WebhookLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    call_id: Optional[UUID] = None
    organization_id: Optional[str] = None
    event_type: WebhookEventType
    processed: bool
    error: Optional[str] = None
    payload: Optional[Any] = None
    created_at: Optional[datetime] = None


class CallDetailResponse(CallResponse):
    transcript: Optional[str] = None
    transcript_object: Optional[Any] = None
    public_log_url: Optional[str] = None
    transfer_destination: Optional[str] = None
    call_cost: Optional[Any] = None
    analytics: Optional[CallAnalyticsResponse] = None
    webhook_logs: list[WebhookLogResponse] = Field(default_factory=list)


class CallListResponse(BaseModel):
    calls: list[CallResponse]
    total: int


class WebhookLogListResponse(BaseModel):
    logs: list[WebhookLogResponse]
    total: int
