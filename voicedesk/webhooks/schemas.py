"""Inbound webhook payloads.

Lifecycle events come straight from the voice platform and are decoded
tolerantly: unknown keys are kept, every field is optional.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class LatencyStats(BaseModel):
    model_config = ConfigDict(extra="allow")

    p50: Optional[float] = None
    p90: Optional[float] = None
    p95: Optional[float] = None
    p99: Optional[float] = None


class CallAnalysisPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    call_summary: Optional[str] = None
    user_sentiment: Optional[str] = None
    sentiment: Optional[str] = None
    call_successful: Optional[Any] = None
    custom_analysis_data: Optional[dict[str, Any]] = None


class CallPayload(BaseModel):
    """The ``call`` object of a lifecycle event."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    call_id: Optional[str] = None
    agent_id: Optional[str] = None
    call_status: Optional[str] = None
    from_number: Optional[str] = None
    to_number: Optional[str] = None
    call_metadata: Optional[dict[str, Any]] = Field(default=None, alias="metadata")

    start_timestamp: Optional[float] = None
    end_timestamp: Optional[float] = None

    transcript: Optional[Any] = None
    transcript_object: Optional[Any] = None
    transcript_with_tool_calls: Optional[Any] = None

    recording_url: Optional[str] = None
    recording_multi_channel_url: Optional[str] = None
    scrubbed_recording_url: Optional[str] = None
    public_log_url: Optional[str] = None
    knowledge_base_url: Optional[str] = None

    disconnection_reason: Optional[str] = None
    opt_out_sensitive_data_storage: Optional[bool] = None
    call_transfer: Optional[dict[str, Any]] = None

    llm_token_count: Optional[Any] = None
    llm_token_usage: Optional[Any] = None
    call_cost: Optional[Any] = None

    call_analysis: Optional[CallAnalysisPayload] = None
    latency: Optional[dict[str, Optional[LatencyStats]]] = None

    @property
    def organization_id(self) -> Optional[str]:
        metadata = self.call_metadata or {}
        value = metadata.get("organizationId") or metadata.get("organization_id")
        return str(value) if value else None


class LifecycleEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    event: Optional[str] = None
    call: CallPayload = Field(default_factory=CallPayload)


class ToolCallRequest(BaseModel):
    """Body of the tool-call webhook."""

    model_config = ConfigDict(extra="allow")

    call_id: str
    tool_call_id: Optional[str] = None
    tool_name: str
    arguments: Any = None


class ToolCallResponse(BaseModel):
    result: str
    tool_call_id: Optional[str] = None
    error: Optional[bool] = None
