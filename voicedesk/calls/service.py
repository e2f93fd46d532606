"""Outbound call initiation and call history."""

from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from voicedesk.auth.dependencies import UserContext
from voicedesk.bots.service import BotService
from voicedesk.calls.schemas import CallCreate
from voicedesk.config import Settings
from voicedesk.database.models import (
    Call,
    CallStatus,
    PhoneNumber,
    WebhookLog,
)
from voicedesk.errors import EntityNotFound, RemoteApiError, ValidationError
from voicedesk.phone_numbers.formatting import format_phone_number
from voicedesk.retell.credentials import CredentialResolver

logger = structlog.get_logger()


def call_scope(user: UserContext):
    """Organization calls for admins, the customer's own calls otherwise."""
    query = select(Call).where(Call.organization_id == user.organization_id)
    if not user.is_admin:
        query = query.where(Call.initiated_by_id == user.user_id)
    return query


class CallService:
    def __init__(self, db: AsyncSession, settings: Settings) -> None:
        self.db = db
        self.settings = settings
        self.credentials = CredentialResolver(db, settings)
        self.logger = logger.bind(service="call")

    async def _outbound_number(self, user: UserContext, bot_id: UUID) -> str:
        result = await self.db.execute(
            select(PhoneNumber.number)
            .where(
                PhoneNumber.organization_id == user.organization_id,
                PhoneNumber.outbound_bot_id == bot_id,
                PhoneNumber.is_active.is_(True),
            )
            .order_by(PhoneNumber.created_at)
            .limit(1)
        )
        number = result.scalar_one_or_none()
        if not number:
            raise ValidationError(
                "No outbound phone number is bound to this bot",
                details={"bot_id": str(bot_id)},
            )
        return number

    async def initiate(self, user: UserContext, data: CallCreate) -> Call:
        """Place an outbound call and record it as ``PENDING``.

        The organization id travels in the call metadata so lifecycle
        webhooks can be routed back to the tenant.
        """
        bot = await BotService(self.db, self.settings).get(user, data.bot_id)
        if not bot.is_active:
            raise ValidationError("Bot is not active", details={"bot_id": str(bot.id)})

        to_number = format_phone_number(data.to_number)
        if data.from_number:
            from_number = format_phone_number(data.from_number)
        else:
            from_number = await self._outbound_number(user, bot.id)

        client = await self.credentials.client_for(user.organization_id)
        remote = await client.create_phone_call(
            {
                "from_number": from_number,
                "to_number": to_number,
                "override_agent_id": bot.retell_agent_id,
                "metadata": {
                    **data.metadata,
                    "organizationId": str(user.organization_id),
                    "userId": str(user.user_id),
                    "botId": str(bot.id),
                },
            }
        )
        if not remote.call_id:
            raise RemoteApiError(200, "create-phone-call returned no call_id", path="/v2/create-phone-call")

        call = Call(
            organization_id=user.organization_id,
            bot_id=bot.id,
            initiated_by_id=user.user_id,
            retell_call_id=remote.call_id,
            from_number=from_number,
            to_number=to_number,
            status=CallStatus.PENDING,
        )
        self.db.add(call)
        await self.db.commit()
        await self.db.refresh(call)

        self.logger.info(
            "Call initiated",
            call_id=str(call.id),
            retell_call_id=call.retell_call_id,
            bot_id=str(bot.id),
        )
        return call

    async def list_for_user(
        self,
        user: UserContext,
        status: Optional[CallStatus] = None,
        bot_id: Optional[UUID] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Call], int]:
        query = call_scope(user)
        if status is not None:
            query = query.where(Call.status == status)
        if bot_id is not None:
            query = query.where(Call.bot_id == bot_id)

        total = await self.db.execute(select(func.count()).select_from(query.subquery()))
        result = await self.db.execute(
            query.order_by(Call.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all()), total.scalar_one()

    async def detail(self, user: UserContext, call_id: UUID) -> Call:
        """The call with its analytics row and webhook audit trail loaded."""
        result = await self.db.execute(
            call_scope(user)
            .where(Call.id == call_id)
            .options(selectinload(Call.analytics), selectinload(Call.webhook_logs))
        )
        call = result.scalar_one_or_none()
        if not call:
            raise EntityNotFound("Call", call_id)
        return call

    async def webhook_logs(
        self,
        user: UserContext,
        processed: Optional[bool] = None,
        limit: int = 50,
    ) -> list[WebhookLog]:
        query = select(WebhookLog).where(WebhookLog.organization_id == str(user.organization_id))
        if processed is not None:
            query = query.where(WebhookLog.processed.is_(processed))
        result = await self.db.execute(query.order_by(WebhookLog.created_at.desc()).limit(limit))
        return list(result.scalars().all())
