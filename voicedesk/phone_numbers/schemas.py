"""Phone number schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class PhoneNumberPurchase(BaseModel):
    area_code: Optional[int] = Field(None, ge=200, le=999)
    nickname: Optional[str] = None
    bot_id: Optional[UUID] = None


class PhoneNumberImport(BaseModel):
    phone_number: str
    termination_uri: Optional[str] = None
    nickname: Optional[str] = None
    bot_id: Optional[UUID] = None


class PhoneNumberUpdate(BaseModel):
    nickname: Optional[str] = None
    is_active: Optional[bool] = None
    inbound_bot_id: Optional[UUID] = None
    outbound_bot_id: Optional[UUID] = None


class PhoneNumberAssign(BaseModel):
    """Assign to a customer, or clear the assignment with ``user_id: null``."""

    user_id: Optional[UUID] = None


class PhoneNumberResponse(BaseModel):
    id: UUID
    organization_id: UUID
    number: str
    retell_phone_number_id: Optional[str] = None
    nickname: Optional[str] = None
    is_active: bool
    inbound_bot_id: Optional[UUID] = None
    outbound_bot_id: Optional[UUID] = None
    assigned_user_id: Optional[UUID] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PhoneNumberListResponse(BaseModel):
    numbers: list[PhoneNumberResponse]
    total: int
