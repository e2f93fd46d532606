"""Bot provisioning, editing and removal."""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.auth.dependencies import UserContext
from voicedesk.bots.schemas import BotCreate, BotUpdate
from voicedesk.config import Settings
from voicedesk.database.models import Bot, BotAssignment, PhoneNumber, User, UserRole
from voicedesk.errors import ConflictError, CredentialMissing, EntityNotFound, RemoteApiError
from voicedesk.retell.credentials import CredentialResolver
from voicedesk.tools.definitions import to_general_tool

logger = structlog.get_logger()

# Local field -> remote agent field
AGENT_FIELDS = {
    "name": "agent_name",
    "voice_id": "voice_id",
    "language": "language",
    "webhook_url": "webhook_url",
    "voice_temperature": "voice_temperature",
    "voice_speed": "voice_speed",
    "responsiveness": "responsiveness",
    "interruption_sensitivity": "interruption_sensitivity",
    "enable_backchannel": "enable_backchannel",
    "ambient_sound": "ambient_sound",
    "boosted_keywords": "boosted_keywords",
    "normalize_for_speech": "normalize_for_speech",
    "opt_out_sensitive_data_storage": "opt_out_sensitive_data_storage",
}

LLM_FIELDS = ("model", "general_prompt", "begin_message")


def bot_scope(user: UserContext):
    """Bots the caller may see: the whole organization for admins, assigned bots otherwise."""
    query = select(Bot).where(Bot.organization_id == user.organization_id)
    if not user.is_admin:
        query = query.where(
            Bot.id.in_(select(BotAssignment.bot_id).where(BotAssignment.user_id == user.user_id))
        )
    return query


class BotService:
    """Service for bot operations."""

    def __init__(self, db: AsyncSession, settings: Settings) -> None:
        self.db = db
        self.settings = settings
        self.credentials = CredentialResolver(db, settings)
        self.logger = logger.bind(service="bot")

    async def list_for_user(self, user: UserContext) -> list[Bot]:
        result = await self.db.execute(bot_scope(user).order_by(Bot.created_at.desc()))
        return list(result.scalars().all())

    async def get(self, user: UserContext, bot_id: UUID) -> Bot:
        """Get a bot visible to ``user`` or raise ``EntityNotFound``."""
        result = await self.db.execute(bot_scope(user).where(Bot.id == bot_id))
        bot = result.scalar_one_or_none()
        if not bot:
            raise EntityNotFound("Bot", bot_id)
        return bot

    def _general_tools(self, custom_tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return [to_general_tool(t, self.settings.tool_call_url) for t in custom_tools]

    async def create(self, user: UserContext, data: BotCreate) -> Bot:
        """Create the LLM and agent remotely, then persist the bot."""
        client = await self.credentials.client_for(user.organization_id)
        begin_message = data.begin_message or self.settings.default_begin_message

        llm_payload: dict[str, Any] = {
            "model": data.model,
            "general_prompt": data.general_prompt,
            "begin_message": begin_message,
        }
        if data.custom_tools:
            llm_payload["general_tools"] = self._general_tools(data.custom_tools)
        llm = await client.create_llm(llm_payload)
        if not llm.llm_id:
            raise RemoteApiError(200, "create-retell-llm returned no llm_id", path="/create-retell-llm")

        webhook_url = data.webhook_url or self.settings.webhook_url
        agent_payload: dict[str, Any] = {
            "response_engine": {"type": "retell-llm", "llm_id": llm.llm_id},
            "voice_id": data.voice_id,
            "agent_name": data.name,
            "webhook_url": webhook_url,
            "language": data.language,
        }
        for field in (
            "voice_temperature",
            "voice_speed",
            "responsiveness",
            "interruption_sensitivity",
            "enable_backchannel",
            "ambient_sound",
            "normalize_for_speech",
            "opt_out_sensitive_data_storage",
        ):
            value = getattr(data, field)
            if value is not None:
                agent_payload[field] = value
        if data.boosted_keywords:
            agent_payload["boosted_keywords"] = data.boosted_keywords

        agent = await client.create_agent(agent_payload)
        if not agent.agent_id:
            raise RemoteApiError(200, "create-agent returned no agent_id", path="/create-agent")

        bot = Bot(
            organization_id=user.organization_id,
            created_by_id=user.user_id,
            retell_agent_id=agent.agent_id,
            retell_llm_id=llm.llm_id,
            name=data.name,
            description=data.description,
            voice_id=data.voice_id,
            model=data.model,
            general_prompt=data.general_prompt,
            begin_message=begin_message,
            webhook_url=webhook_url,
            language=data.language,
            voice_temperature=data.voice_temperature,
            voice_speed=data.voice_speed,
            responsiveness=data.responsiveness,
            interruption_sensitivity=data.interruption_sensitivity,
            enable_backchannel=bool(data.enable_backchannel),
            ambient_sound=data.ambient_sound,
            boosted_keywords=data.boosted_keywords,
            normalize_for_speech=True if data.normalize_for_speech is None else data.normalize_for_speech,
            opt_out_sensitive_data_storage=bool(data.opt_out_sensitive_data_storage),
            custom_tools=data.custom_tools,
            is_active=True,
        )
        self.db.add(bot)
        await self.db.flush()

        if not user.is_admin:
            self.db.add(BotAssignment(bot_id=bot.id, user_id=user.user_id))

        await self.db.commit()
        await self.db.refresh(bot)

        self.logger.info(
            "Bot created",
            bot_id=str(bot.id),
            agent_id=agent.agent_id,
            llm_id=llm.llm_id,
        )
        return bot

    async def update(self, user: UserContext, bot_id: UUID, data: BotUpdate) -> Bot:
        """Patch the remote agent and LLM first; touch the database only if both succeed."""
        bot = await self.get(user, bot_id)
        changes = data.model_dump(exclude_unset=True)

        agent_patch = {
            remote: changes[local]
            for local, remote in AGENT_FIELDS.items()
            if local in changes and changes[local] != getattr(bot, local)
        }

        llm_patch: dict[str, Any] = {}
        if bot.retell_llm_id:
            for field in LLM_FIELDS:
                if changes.get(field) is not None and changes[field] != getattr(bot, field):
                    llm_patch[field] = changes[field]
            if "custom_tools" in changes and changes["custom_tools"] is not None:
                llm_patch["general_tools"] = self._general_tools(changes["custom_tools"])

        if agent_patch or llm_patch:
            client = await self.credentials.client_for(user.organization_id)
            if agent_patch:
                await client.update_agent(bot.retell_agent_id, agent_patch)
            if llm_patch:
                await client.update_llm(bot.retell_llm_id, llm_patch)

        for field, value in changes.items():
            if value is None and field in ("name", "voice_id", "model", "general_prompt", "language"):
                continue
            setattr(bot, field, value)

        await self.db.commit()
        await self.db.refresh(bot)

        self.logger.info(
            "Bot updated",
            bot_id=str(bot.id),
            agent_fields=sorted(agent_patch),
            llm_fields=sorted(llm_patch),
        )
        return bot

    async def delete(self, user: UserContext, bot_id: UUID) -> dict[str, bool]:
        """Remove remote resources best-effort, then the local bot."""
        bot = await self.get(user, bot_id)
        outcome = {"remote_agent_deleted": False, "remote_llm_deleted": False}

        try:
            client = await self.credentials.client_for(user.organization_id)
        except CredentialMissing:
            self.logger.warning("Skipping remote deletion, no credential", bot_id=str(bot.id))
            client = None

        if client is not None:
            try:
                await client.delete_agent(bot.retell_agent_id)
                outcome["remote_agent_deleted"] = True
            except RemoteApiError as e:
                self.logger.error(
                    "Remote agent deletion failed",
                    bot_id=str(bot.id),
                    agent_id=bot.retell_agent_id,
                    remote_status=e.remote_status,
                )

            if bot.retell_llm_id:
                try:
                    await client.delete_llm(bot.retell_llm_id)
                    outcome["remote_llm_deleted"] = True
                except RemoteApiError as e:
                    self.logger.error(
                        "Remote LLM deletion failed",
                        bot_id=str(bot.id),
                        llm_id=bot.retell_llm_id,
                        remote_status=e.remote_status,
                    )

        # Phone bindings are weak references
        await self.db.execute(
            update(PhoneNumber).where(PhoneNumber.inbound_bot_id == bot.id).values(inbound_bot_id=None)
        )
        await self.db.execute(
            update(PhoneNumber).where(PhoneNumber.outbound_bot_id == bot.id).values(outbound_bot_id=None)
        )

        await self.db.delete(bot)
        await self.db.commit()

        self.logger.info("Bot deleted", bot_id=str(bot_id), **outcome)
        return outcome

    async def assign(self, user: UserContext, bot_id: UUID, customer_id: UUID) -> BotAssignment:
        """Allow a customer of the same organization to use a bot."""
        bot = await self.get(user, bot_id)

        customer = await self.db.get(User, customer_id)
        if (
            not customer
            or customer.organization_id != user.organization_id
            or customer.role != UserRole.CUSTOMER
        ):
            raise EntityNotFound("Customer", customer_id)

        existing = await self.db.execute(
            select(BotAssignment).where(
                BotAssignment.bot_id == bot.id,
                BotAssignment.user_id == customer_id,
            )
        )
        if existing.scalar_one_or_none():
            raise ConflictError("Customer is already assigned to this bot")

        assignment = BotAssignment(bot_id=bot.id, user_id=customer_id)
        self.db.add(assignment)
        await self.db.commit()
        await self.db.refresh(assignment)

        self.logger.info("Bot assigned", bot_id=str(bot.id), user_id=str(customer_id))
        return assignment

    async def unassign(self, user: UserContext, bot_id: UUID, customer_id: UUID) -> None:
        bot = await self.get(user, bot_id)
        result = await self.db.execute(
            select(BotAssignment).where(
                BotAssignment.bot_id == bot.id,
                BotAssignment.user_id == customer_id,
            )
        )
        assignment = result.scalar_one_or_none()
        if not assignment:
            raise EntityNotFound("Assignment", customer_id)

        await self.db.delete(assignment)
        await self.db.commit()
        self.logger.info("Bot unassigned", bot_id=str(bot.id), user_id=str(customer_id))

    async def list_assignments(self, user: UserContext, bot_id: UUID) -> list[BotAssignment]:
        bot = await self.get(user, bot_id)
        result = await self.db.execute(
            select(BotAssignment)
            .where(BotAssignment.bot_id == bot.id)
            .order_by(BotAssignment.created_at)
        )
        return list(result.scalars().all())
