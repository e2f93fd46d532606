"""Knowledge base schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class KnowledgeBaseCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    texts: list[str] = Field(..., min_length=1, description="At least one text chunk is required")
    enable_auto_refresh: bool = False


class KnowledgeBaseUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    texts: Optional[list[str]] = Field(None, min_length=1)
    enable_auto_refresh: Optional[bool] = None


class KnowledgeBaseResponse(BaseModel):
    id: UUID
    organization_id: UUID
    retell_knowledge_base_id: str
    name: str
    texts: list[str] = Field(default_factory=list)
    enable_auto_refresh: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class KnowledgeBaseAssign(BaseModel):
    knowledge_base_id: UUID
    top_k: int = Field(3, ge=1, le=20)
    filter_score: float = Field(0.5, ge=0, le=1)


class BotKnowledgeBaseResponse(BaseModel):
    id: UUID
    bot_id: UUID
    knowledge_base_id: UUID
    top_k: int
    filter_score: float
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
