"""Standalone tool endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.config import Settings, get_settings
from voicedesk.database.session import get_db
from voicedesk.tools.availability import AvailabilityQuery, AvailabilityService
from voicedesk.tools.definitions import BUILTIN_TOOLS

router = APIRouter(prefix="/tools", tags=["tools"])


class AvailabilityRequest(AvailabilityQuery):
    organization_id: UUID
    customer_id: Optional[UUID] = Field(None, description="Narrow the search to one hotel's inventory")


@router.post("/availability")
async def check_availability(
    request: AvailabilityRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Room availability for direct function-calling setups."""
    return await AvailabilityService(db, settings).check(
        request.organization_id,
        request,
        customer_id=request.customer_id,
    )


@router.get("/definitions")
async def list_tool_definitions():
    """Definitions of the built-in tools, ready to paste into a bot's ``custom_tools``."""
    return {"tools": list(BUILTIN_TOOLS.values())}
