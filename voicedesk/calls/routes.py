"""Call API routes."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.auth.dependencies import UserContext, get_current_user, require_admin
from voicedesk.calls.schemas import (
    CallCreate,
    CallDetailResponse,
    CallListResponse,
    CallResponse,
    WebhookLogListResponse,
    WebhookLogResponse,
)
from voicedesk.calls.service import CallService
from voicedesk.config import Settings, get_settings
from voicedesk.database.models import CallStatus
from voicedesk.database.session import get_db

router = APIRouter(tags=["calls"])


@router.post("/calls", response_model=CallResponse, status_code=status.HTTP_201_CREATED)
async def create_call(
    data: CallCreate,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(get_current_user),
):
    """Place an outbound call with one of the caller's bots."""
    call = await CallService(db, settings).initiate(user, data)
    return CallResponse.model_validate(call)


@router.get("/calls", response_model=CallListResponse)
async def list_calls(
    status_filter: Optional[CallStatus] = Query(None, alias="status"),
    bot_id: Optional[UUID] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(get_current_user),
):
    calls, total = await CallService(db, settings).list_for_user(
        user, status=status_filter, bot_id=bot_id, limit=limit, offset=offset
    )
    return CallListResponse(calls=[CallResponse.model_validate(c) for c in calls], total=total)


@router.get("/calls/{call_id}", response_model=CallDetailResponse)
async def get_call(
    call_id: UUID,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(get_current_user),
):
    """Call details including analytics and the webhook audit trail."""
    call = await CallService(db, settings).detail(user, call_id)
    return CallDetailResponse.model_validate(call)


@router.get("/webhook-logs", response_model=WebhookLogListResponse)
async def list_webhook_logs(
    processed: Optional[bool] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(require_admin),
):
    """Recent webhook deliveries for the organization, rejected ones included."""
    logs = await CallService(db, settings).webhook_logs(user, processed=processed, limit=limit)
    return WebhookLogListResponse(
        logs=[WebhookLogResponse.model_validate(log) for log in logs],
        total=len(logs),
    )
