"""Phone number API routes."""

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.auth.dependencies import UserContext, get_current_user, require_admin
from voicedesk.config import Settings, get_settings
from voicedesk.database.session import get_db
from voicedesk.errors import ValidationError
from voicedesk.phone_numbers.schemas import (
    PhoneNumberAssign,
    PhoneNumberImport,
    PhoneNumberListResponse,
    PhoneNumberPurchase,
    PhoneNumberResponse,
    PhoneNumberUpdate,
)
from voicedesk.phone_numbers.service import PhoneNumberService

router = APIRouter(prefix="/phone-numbers", tags=["phone-numbers"])


@router.get("", response_model=PhoneNumberListResponse)
async def list_phone_numbers(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(get_current_user),
):
    """List numbers: the organization's for admins, assigned ones for customers."""
    numbers = await PhoneNumberService(db, settings).list_for_user(user)
    return PhoneNumberListResponse(
        numbers=[PhoneNumberResponse.model_validate(n) for n in numbers],
        total=len(numbers),
    )


@router.post("", response_model=PhoneNumberResponse, status_code=status.HTTP_201_CREATED)
async def add_phone_number(
    action: Literal["purchase", "import"] = Query("purchase"),
    body: dict = Body(default_factory=dict),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(require_admin),
):
    """Purchase a new number or import an existing one."""
    schema = PhoneNumberPurchase if action == "purchase" else PhoneNumberImport
    try:
        data = schema.model_validate(body)
    except PydanticValidationError as e:
        raise ValidationError("Invalid input", details={"errors": e.errors(include_url=False, include_context=False)}) from e

    service = PhoneNumberService(db, settings)
    if action == "purchase":
        phone = await service.purchase(user, data)
    else:
        phone = await service.import_number(user, data)
    return PhoneNumberResponse.model_validate(phone)


@router.get("/{phone_number_id}", response_model=PhoneNumberResponse)
async def get_phone_number(
    phone_number_id: UUID,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(get_current_user),
):
    phone = await PhoneNumberService(db, settings).get(user, phone_number_id)
    return PhoneNumberResponse.model_validate(phone)


@router.patch("/{phone_number_id}", response_model=PhoneNumberResponse)
async def update_phone_number(
    phone_number_id: UUID,
    data: PhoneNumberUpdate,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(require_admin),
):
    phone = await PhoneNumberService(db, settings).update(user, phone_number_id, data)
    return PhoneNumberResponse.model_validate(phone)


@router.delete("/{phone_number_id}")
async def delete_phone_number(
    phone_number_id: UUID,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(require_admin),
):
    remote_deleted = await PhoneNumberService(db, settings).delete(user, phone_number_id)
    return {"success": True, "remote_deleted": remote_deleted}


@router.post("/{phone_number_id}/assign", response_model=PhoneNumberResponse)
async def assign_phone_number(
    phone_number_id: UUID,
    request: PhoneNumberAssign,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(require_admin),
):
    """Assign the number to a customer, or unassign it."""
    phone = await PhoneNumberService(db, settings).assign(user, phone_number_id, request.user_id)
    return PhoneNumberResponse.model_validate(phone)
