"""Inbound webhooks from the voice platform."""

import json
from typing import Any, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.config import Settings, get_settings
from voicedesk.database.models import Organization, WebhookEventType
from voicedesk.database.session import get_db
from voicedesk.errors import (
    SignatureInvalid,
    ValidationError,
    VoiceDeskError,
    WebhookNotConfigured,
)
from voicedesk.tools.dispatcher import ToolCallDispatcher
from voicedesk.webhooks.lifecycle import CallLifecycleProcessor, event_type_for
from voicedesk.webhooks.schemas import ToolCallRequest, ToolCallResponse
from voicedesk.webhooks.signature import verify_signature

logger = structlog.get_logger()

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SIGNATURE_HEADER = "x-retell-signature"


def _organization_ref(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict) or not isinstance(payload.get("call"), dict):
        return None
    metadata = payload["call"].get("metadata")
    if not isinstance(metadata, dict):
        return None
    value = metadata.get("organizationId") or metadata.get("organization_id")
    return str(value) if value else None


async def resolve_webhook_secret(
    db: AsyncSession, settings: Settings, organization_ref: Optional[str]
) -> str:
    """The organization's own webhook secret when it has one, else the shared secret."""
    if organization_ref:
        try:
            organization_id = UUID(organization_ref)
        except ValueError:
            organization_id = None
        if organization_id is not None:
            result = await db.execute(
                select(Organization.retell_webhook_secret).where(Organization.id == organization_id)
            )
            secret = result.scalar_one_or_none()
            if secret:
                return secret
    return settings.retell_webhook_secret


@router.post("/retell")
async def lifecycle_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Apply a call lifecycle event after verifying its signature."""
    raw_body = await request.body()
    processor = CallLifecycleProcessor(db)

    try:
        payload = json.loads(raw_body) if raw_body else None
    except (json.JSONDecodeError, UnicodeDecodeError):
        payload = None
    organization_ref = _organization_ref(payload)

    secret = await resolve_webhook_secret(db, settings, organization_ref)
    if not secret:
        logger.error("Webhook secret not configured", organization_id=organization_ref)
        raise WebhookNotConfigured()

    if not verify_signature(raw_body, request.headers.get(SIGNATURE_HEADER), secret):
        event = payload.get("event") if isinstance(payload, dict) else None
        await processor.reject(
            payload,
            "Invalid signature",
            event_type_for(event if isinstance(event, str) else None),
            organization_ref,
        )
        raise SignatureInvalid()

    if not isinstance(payload, dict):
        await processor.reject(
            {"raw": raw_body.decode("utf-8", errors="replace")},
            "Body is not a JSON object",
            WebhookEventType.UNKNOWN,
            organization_ref,
        )
        raise ValidationError("Invalid payload")

    event_type = await processor.process(payload)
    return {"success": True, "event": event_type.value}


@router.post("/tool-call", response_model=ToolCallResponse, response_model_exclude_none=True)
async def tool_call_webhook(
    request: ToolCallRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Execute a function call made by an agent during a live call."""
    try:
        return await ToolCallDispatcher(db, settings).dispatch(request)
    except VoiceDeskError:
        raise
    except Exception:
        logger.exception("Tool execution failed", tool=request.tool_name, retell_call_id=request.call_id)
        await db.rollback()
        return JSONResponse(
            status_code=500,
            content={
                "result": "Error executing tool",
                "tool_call_id": request.tool_call_id,
                "error": True,
            },
        )
