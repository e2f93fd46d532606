"""Bot API routes."""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.auth.dependencies import UserContext, get_current_user, require_admin
from voicedesk.bots.schemas import (
    BotAssignmentRequest,
    BotAssignmentResponse,
    BotCreate,
    BotDeleteResponse,
    BotListResponse,
    BotResponse,
    BotUpdate,
)
from voicedesk.bots.service import BotService
from voicedesk.config import Settings, get_settings
from voicedesk.database.session import get_db

router = APIRouter(prefix="/bots", tags=["bots"])


@router.get("", response_model=BotListResponse)
async def list_bots(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(get_current_user),
):
    """List bots: every organization bot for admins, assigned bots for customers."""
    bots = await BotService(db, settings).list_for_user(user)
    return BotListResponse(bots=[BotResponse.model_validate(b) for b in bots], total=len(bots))


@router.post("", response_model=BotResponse, status_code=status.HTTP_201_CREATED)
async def create_bot(
    data: BotCreate,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(get_current_user),
):
    """Provision a bot on the voice platform and store it."""
    bot = await BotService(db, settings).create(user, data)
    return BotResponse.model_validate(bot)


@router.get("/{bot_id}", response_model=BotResponse)
async def get_bot(
    bot_id: UUID,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(get_current_user),
):
    bot = await BotService(db, settings).get(user, bot_id)
    return BotResponse.model_validate(bot)


@router.patch("/{bot_id}", response_model=BotResponse)
async def update_bot(
    bot_id: UUID,
    data: BotUpdate,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(get_current_user),
):
    """Update a bot. Remote changes are applied first."""
    bot = await BotService(db, settings).update(user, bot_id, data)
    return BotResponse.model_validate(bot)


@router.delete("/{bot_id}", response_model=BotDeleteResponse)
async def delete_bot(
    bot_id: UUID,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(get_current_user),
):
    """Delete a bot and, best-effort, its remote agent and LLM."""
    outcome = await BotService(db, settings).delete(user, bot_id)
    return BotDeleteResponse(**outcome)


@router.get("/{bot_id}/assignments", response_model=list[BotAssignmentResponse])
async def list_assignments(
    bot_id: UUID,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(require_admin),
):
    assignments = await BotService(db, settings).list_assignments(user, bot_id)
    return [BotAssignmentResponse.model_validate(a) for a in assignments]


@router.post(
    "/{bot_id}/assignments",
    response_model=BotAssignmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def assign_bot(
    bot_id: UUID,
    request: BotAssignmentRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(require_admin),
):
    """Let a customer use this bot."""
    assignment = await BotService(db, settings).assign(user, bot_id, request.user_id)
    return BotAssignmentResponse.model_validate(assignment)


@router.delete("/{bot_id}/assignments/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unassign_bot(
    bot_id: UUID,
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(require_admin),
):
    await BotService(db, settings).unassign(user, bot_id, user_id)
