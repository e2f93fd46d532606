"""Phone number service."""

from typing import Any, Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.auth.dependencies import UserContext
from voicedesk.config import Settings
from voicedesk.database.models import Bot, PhoneNumber, User, UserRole
from voicedesk.errors import ConflictError, CredentialMissing, EntityNotFound, RemoteApiError
from voicedesk.phone_numbers.formatting import format_phone_number
from voicedesk.phone_numbers.schemas import (
    PhoneNumberImport,
    PhoneNumberPurchase,
    PhoneNumberUpdate,
)
from voicedesk.retell.client import RetellClient
from voicedesk.retell.credentials import CredentialResolver
from voicedesk.retell.schemas import RemotePhoneNumber

logger = structlog.get_logger()


class PhoneNumberService:
    """Service for phone number operations."""

    def __init__(self, db: AsyncSession, settings: Settings) -> None:
        self.db = db
        self.settings = settings
        self.credentials = CredentialResolver(db, settings)
        self.logger = logger.bind(service="phone_number")

    async def list_for_user(self, user: UserContext) -> list[PhoneNumber]:
        query = select(PhoneNumber).where(PhoneNumber.organization_id == user.organization_id)
        if not user.is_admin:
            query = query.where(PhoneNumber.assigned_user_id == user.user_id)
        result = await self.db.execute(query.order_by(PhoneNumber.created_at.desc()))
        return list(result.scalars().all())

    async def get(self, user: UserContext, phone_number_id: UUID) -> PhoneNumber:
        query = select(PhoneNumber).where(
            PhoneNumber.id == phone_number_id,
            PhoneNumber.organization_id == user.organization_id,
        )
        if not user.is_admin:
            query = query.where(PhoneNumber.assigned_user_id == user.user_id)
        result = await self.db.execute(query)
        phone = result.scalar_one_or_none()
        if not phone:
            raise EntityNotFound("Phone number", phone_number_id)
        return phone

    async def _bot(self, organization_id: UUID, bot_id: Optional[UUID]) -> Optional[Bot]:
        if bot_id is None:
            return None
        result = await self.db.execute(
            select(Bot).where(Bot.id == bot_id, Bot.organization_id == organization_id)
        )
        bot = result.scalar_one_or_none()
        if not bot:
            raise EntityNotFound("Bot", bot_id)
        return bot

    async def _ensure_unclaimed(self, number: str) -> None:
        result = await self.db.execute(select(PhoneNumber.id).where(PhoneNumber.number == number))
        if result.scalar_one_or_none():
            raise ConflictError("Phone number already exists", details={"phone_number": number})

    async def _persist(
        self,
        user: UserContext,
        remote: RemotePhoneNumber,
        nickname: Optional[str],
        bot: Optional[Bot],
    ) -> PhoneNumber:
        if not remote.phone_number:
            raise RemoteApiError(200, "phone number response has no phone_number")

        number = format_phone_number(remote.phone_number)
        await self._ensure_unclaimed(number)

        phone = PhoneNumber(
            organization_id=user.organization_id,
            number=number,
            retell_phone_number_id=number,
            nickname=nickname or remote.nickname,
            inbound_bot_id=bot.id if bot else None,
            outbound_bot_id=bot.id if bot else None,
            is_active=True,
        )
        self.db.add(phone)
        await self.db.commit()
        await self.db.refresh(phone)
        return phone

    async def _release(self, client: RetellClient, number: Optional[str]) -> None:
        """Best-effort removal of a remote number whose local row could not be written."""
        if not number:
            self.logger.error("Cannot release remote number without phone_number")
            return
        try:
            await client.delete_phone_number(number)
            self.logger.warning("Released remote number after local failure", phone_number=number)
        except RemoteApiError as e:
            self.logger.error("Remote number release failed", phone_number=number, error=e.message)

    async def _persist_or_release(
        self,
        client: RetellClient,
        user: UserContext,
        remote: RemotePhoneNumber,
        nickname: Optional[str],
        bot: Optional[Bot],
    ) -> PhoneNumber:
        try:
            return await self._persist(user, remote, nickname, bot)
        except Exception:
            await self.db.rollback()
            await self._release(client, remote.phone_number)
            raise

    async def purchase(self, user: UserContext, data: PhoneNumberPurchase) -> PhoneNumber:
        """Buy a new number on the platform, optionally bound to a bot."""
        bot = await self._bot(user.organization_id, data.bot_id)
        client = await self.credentials.client_for(user.organization_id)

        payload: dict[str, Any] = {}
        if data.area_code:
            payload["area_code"] = data.area_code
        if data.nickname:
            payload["nickname"] = data.nickname
        if bot:
            payload["inbound_agent_id"] = bot.retell_agent_id
            payload["outbound_agent_id"] = bot.retell_agent_id

        remote = await client.create_phone_number(payload)
        phone = await self._persist_or_release(client, user, remote, data.nickname, bot)
        self.logger.info("Phone number purchased", phone_number=phone.number)
        return phone

    async def import_number(self, user: UserContext, data: PhoneNumberImport) -> PhoneNumber:
        """Register a number the organization already owns with the platform."""
        number = format_phone_number(data.phone_number)
        await self._ensure_unclaimed(number)
        bot = await self._bot(user.organization_id, data.bot_id)
        client = await self.credentials.client_for(user.organization_id)

        payload: dict[str, Any] = {"phone_number": number}
        if data.termination_uri:
            payload["termination_uri"] = data.termination_uri
        if data.nickname:
            payload["nickname"] = data.nickname
        if bot:
            payload["inbound_agent_id"] = bot.retell_agent_id
            payload["outbound_agent_id"] = bot.retell_agent_id

        remote = await client.import_phone_number(payload)
        if not remote.phone_number:
            remote.phone_number = number
        phone = await self._persist_or_release(client, user, remote, data.nickname, bot)
        self.logger.info("Phone number imported", phone_number=phone.number)
        return phone

    async def update(
        self, user: UserContext, phone_number_id: UUID, data: PhoneNumberUpdate
    ) -> PhoneNumber:
        """Apply changes; bot bindings are pushed to the platform first."""
        phone = await self.get(user, phone_number_id)
        changes = data.model_dump(exclude_unset=True)

        remote_patch: dict[str, Any] = {}
        for field, remote_field in (
            ("inbound_bot_id", "inbound_agent_id"),
            ("outbound_bot_id", "outbound_agent_id"),
        ):
            if field in changes:
                bot = await self._bot(user.organization_id, changes[field])
                remote_patch[remote_field] = bot.retell_agent_id if bot else None
        if changes.get("nickname") is not None:
            remote_patch["nickname"] = changes["nickname"]

        if remote_patch:
            client = await self.credentials.client_for(user.organization_id)
            await client.update_phone_number(phone.retell_phone_number_id or phone.number, remote_patch)

        for field, value in changes.items():
            if field == "is_active" and value is None:
                continue
            setattr(phone, field, value)

        await self.db.commit()
        await self.db.refresh(phone)
        self.logger.info("Phone number updated", phone_number=phone.number, fields=sorted(changes))
        return phone

    async def delete(self, user: UserContext, phone_number_id: UUID) -> bool:
        """Release the number remotely (best-effort), then delete it locally.

        Returns whether the remote release succeeded.
        """
        phone = await self.get(user, phone_number_id)
        remote_deleted = False

        try:
            client = await self.credentials.client_for(user.organization_id)
            await client.delete_phone_number(phone.retell_phone_number_id or phone.number)
            remote_deleted = True
        except (RemoteApiError, CredentialMissing) as e:
            self.logger.error("Remote phone number deletion failed", phone_number=phone.number, error=e.message)

        await self.db.delete(phone)
        await self.db.commit()
        self.logger.info("Phone number deleted", phone_number=phone.number, remote_deleted=remote_deleted)
        return remote_deleted

    async def assign(
        self, user: UserContext, phone_number_id: UUID, customer_id: Optional[UUID]
    ) -> PhoneNumber:
        phone = await self.get(user, phone_number_id)

        if customer_id is not None:
            customer = await self.db.get(User, customer_id)
            if (
                not customer
                or customer.organization_id != user.organization_id
                or customer.role != UserRole.CUSTOMER
            ):
                raise EntityNotFound("Customer", customer_id)

        phone.assigned_user_id = customer_id
        await self.db.commit()
        await self.db.refresh(phone)
        self.logger.info(
            "Phone number assignment changed",
            phone_number=phone.number,
            user_id=str(customer_id) if customer_id else None,
        )
        return phone
