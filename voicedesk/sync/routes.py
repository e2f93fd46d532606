"""Admin-triggered reconciliation routes."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.auth.dependencies import UserContext, require_admin
from voicedesk.config import Settings, get_settings
from voicedesk.database.session import get_db
from voicedesk.sync.reconciler import BotReconciler, PhoneNumberReconciler, SyncResult

router = APIRouter(tags=["sync"])


class SyncResponse(BaseModel):
    success: bool = True
    message: str
    results: SyncResult


@router.post("/bots/sync", response_model=SyncResponse)
async def sync_bots(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(require_admin),
):
    """Import or refresh every agent on the organization's platform account."""
    result = await BotReconciler(db, settings).sync(user.organization_id, acting_user_id=user.user_id)
    return SyncResponse(message=result.message, results=result)


@router.post("/phone-numbers/sync", response_model=SyncResponse)
async def sync_phone_numbers(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(require_admin),
):
    """Import or refresh every phone number on the organization's platform account."""
    result = await PhoneNumberReconciler(db, settings).sync(user.organization_id)
    return SyncResponse(message=result.message, results=result)
