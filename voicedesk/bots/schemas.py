"""Bot schemas for API requests and responses."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class BotCreate(BaseModel):
    """Schema for provisioning a new bot."""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    voice_id: str = Field(..., min_length=1)
    model: str = "gpt-4.1"
    general_prompt: str = Field(..., min_length=1)
    begin_message: Optional[str] = None
    webhook_url: Optional[str] = None
    language: str = "en-US"

    # Advanced voice settings
    voice_temperature: Optional[float] = Field(None, ge=0, le=2)
    voice_speed: Optional[float] = Field(None, ge=0.5, le=2)
    responsiveness: Optional[float] = Field(None, ge=0, le=1)
    interruption_sensitivity: Optional[float] = Field(None, ge=0, le=1)
    enable_backchannel: Optional[bool] = None
    ambient_sound: Optional[str] = None
    boosted_keywords: list[str] = Field(default_factory=list)
    normalize_for_speech: Optional[bool] = None
    opt_out_sensitive_data_storage: Optional[bool] = None

    custom_tools: list[dict[str, Any]] = Field(default_factory=list)


class BotUpdate(BaseModel):
    """Schema for editing a bot. Only the fields sent are applied."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    voice_id: Optional[str] = None
    model: Optional[str] = None
    general_prompt: Optional[str] = None
    begin_message: Optional[str] = None
    webhook_url: Optional[str] = None
    language: Optional[str] = None
    is_active: Optional[bool] = None

    voice_temperature: Optional[float] = Field(None, ge=0, le=2)
    voice_speed: Optional[float] = Field(None, ge=0.5, le=2)
    responsiveness: Optional[float] = Field(None, ge=0, le=1)
    interruption_sensitivity: Optional[float] = Field(None, ge=0, le=1)
    enable_backchannel: Optional[bool] = None
    ambient_sound: Optional[str] = None
    boosted_keywords: Optional[list[str]] = None
    normalize_for_speech: Optional[bool] = None
    opt_out_sensitive_data_storage: Optional[bool] = None

    custom_tools: Optional[list[dict[str, Any]]] = None


class BotResponse(BaseModel):
    """Schema for bot response."""

    id: UUID
    organization_id: UUID
    retell_agent_id: str
    retell_llm_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    is_active: bool
    voice_id: Optional[str] = None
    model: Optional[str] = None
    general_prompt: Optional[str] = None
    begin_message: Optional[str] = None
    webhook_url: Optional[str] = None
    language: Optional[str] = None
    voice_temperature: Optional[float] = None
    voice_speed: Optional[float] = None
    responsiveness: Optional[float] = None
    interruption_sensitivity: Optional[float] = None
    enable_backchannel: Optional[bool] = None
    ambient_sound: Optional[str] = None
    boosted_keywords: Optional[list[str]] = None
    normalize_for_speech: Optional[bool] = None
    opt_out_sensitive_data_storage: Optional[bool] = None
    custom_tools: Optional[list[dict[str, Any]]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BotListResponse(BaseModel):
    bots: list[BotResponse]
    total: int


class BotDeleteResponse(BaseModel):
    success: bool = True
    remote_agent_deleted: bool
    remote_llm_deleted: bool


class BotAssignmentRequest(BaseModel):
    user_id: UUID


class BotAssignmentResponse(BaseModel):
    id: UUID
    bot_id: UUID
    user_id: UUID
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
