"""Tolerant models for voice platform payloads.

The platform adds fields without notice, so every model accepts unknown keys
and every field is optional. Code that consumes a field supplies its own
default.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class RemoteModel(BaseModel):
    """Base for decoded platform payloads."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class ResponseEngine(RemoteModel):
    type: Optional[str] = None
    llm_id: Optional[str] = None


class RemoteAgent(RemoteModel):
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None
    voice_id: Optional[str] = None
    response_engine: Optional[ResponseEngine] = None
    webhook_url: Optional[str] = None
    language: Optional[str] = None
    last_modification_timestamp: Optional[int] = None

    @property
    def llm_id(self) -> Optional[str]:
        """LLM id when the agent is backed by a platform-hosted LLM."""
        if self.response_engine and self.response_engine.type == "retell-llm":
            return self.response_engine.llm_id
        return None


class KnowledgeBaseLink(RemoteModel):
    knowledge_base_id: Optional[str] = None
    top_k: Optional[int] = None
    filter_score: Optional[float] = None


class RemoteLlm(RemoteModel):
    llm_id: Optional[str] = None
    model: Optional[str] = None
    general_prompt: Optional[str] = None
    begin_message: Optional[str] = None
    general_tools: Optional[list[dict[str, Any]]] = None
    knowledge_base_ids: Optional[list[Any]] = None


class RemotePhoneNumber(RemoteModel):
    phone_number: Optional[str] = None
    phone_number_pretty: Optional[str] = None
    inbound_agent_id: Optional[str] = None
    outbound_agent_id: Optional[str] = None
    nickname: Optional[str] = None
    area_code: Optional[int] = None


class RemoteKnowledgeBase(RemoteModel):
    knowledge_base_id: Optional[str] = None
    knowledge_base_name: Optional[str] = None
    status: Optional[str] = None
    enable_auto_refresh: Optional[bool] = None


class RemoteCall(RemoteModel):
    call_id: Optional[str] = None
    agent_id: Optional[str] = None
    call_type: Optional[str] = None
    call_status: Optional[str] = None
    direction: Optional[str] = None
    from_number: Optional[str] = None
    to_number: Optional[str] = None
    call_metadata: Optional[dict[str, Any]] = Field(default=None, alias="metadata")
    start_timestamp: Optional[int] = None
    end_timestamp: Optional[int] = None
    duration_ms: Optional[int] = None

    @property
    def organization_id(self) -> Optional[str]:
        metadata = self.call_metadata or {}
        value = metadata.get("organizationId") or metadata.get("organization_id")
        return str(value) if value else None


class MalformedEntry(BaseModel):
    """A list entry that could not be decoded into its model.

    List helpers return these in place of the entry so one bad item does not
    fail the whole listing.
    """

    raw: Any = None
    error: str

    def label(self, *keys: str) -> str:
        """First present identifier among ``keys`` in the raw entry."""
        if isinstance(self.raw, dict):
            for key in keys:
                if self.raw.get(key) is not None:
                    return str(self.raw[key])
        return "<malformed entry>"
