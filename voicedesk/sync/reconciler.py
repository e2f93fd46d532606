"""Pull remote agents and phone numbers into local storage.

Each remote item is reconciled and committed on its own. A failing item is
rolled back, recorded in ``SyncResult.errors`` and counted as skipped; the
loop carries on with the next item. Only failure to list the remote
collection (or to resolve a credential) aborts a sync.
"""

from typing import Optional, Sequence, Union
from uuid import UUID

import structlog
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.config import Settings
from voicedesk.database.models import Bot, PhoneNumber
from voicedesk.errors import RemoteApiError, ValidationError
from voicedesk.phone_numbers.formatting import format_phone_number
from voicedesk.retell.client import RetellClient
from voicedesk.retell.credentials import CredentialResolver
from voicedesk.retell.schemas import MalformedEntry, RemoteAgent, RemotePhoneNumber

logger = structlog.get_logger()


class SyncResult(BaseModel):
    """Outcome of one reconciliation run."""

    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)

    @property
    def message(self) -> str:
        return (
            f"Sync completed: {self.created} created, "
            f"{self.updated} updated, {self.skipped} skipped"
        )

    def record_error(self, label: str, error: Exception) -> None:
        self.errors.append(f"{label}: {error}")
        self.skipped += 1


class BotReconciler:
    """Upsert remote agents as local bots."""

    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.settings = settings
        self.logger = logger.bind(service="reconciler", entity="bot")

    async def sync(self, organization_id: UUID, acting_user_id: Optional[UUID] = None) -> SyncResult:
        """Fetch the organization's agents and reconcile them."""
        client = await CredentialResolver(self.db, self.settings).client_for(organization_id)
        agents = await client.list_agents()
        self.logger.info("Fetched remote agents", organization_id=str(organization_id), count=len(agents))
        return await self.reconcile(organization_id, agents, client, acting_user_id)

    async def reconcile(
        self,
        organization_id: UUID,
        agents: Sequence[Union[RemoteAgent, MalformedEntry]],
        client: RetellClient,
        acting_user_id: Optional[UUID] = None,
    ) -> SyncResult:
        result = SyncResult()

        for agent in agents:
            if isinstance(agent, MalformedEntry):
                label = agent.label("agent_id")
                self.logger.warning("Skipping malformed agent", agent=label, error=agent.error)
                result.record_error(label, ValidationError(f"Malformed remote agent ({agent.error})"))
                continue

            label = agent.agent_name or agent.agent_id or "<missing agent_id>"
            try:
                created = await self._upsert(organization_id, agent, client, acting_user_id)
                await self.db.commit()
            except Exception as e:
                await self.db.rollback()
                self.logger.warning("Agent sync failed", agent=label, error=str(e))
                result.record_error(label, e)
                continue

            if created:
                result.created += 1
            else:
                result.updated += 1

        self.logger.info(
            "Bot sync finished",
            organization_id=str(organization_id),
            created=result.created,
            updated=result.updated,
            skipped=result.skipped,
        )
        return result

    async def _llm_settings(self, client: RetellClient, agent: RemoteAgent) -> dict:
        llm_settings = {
            "model": self.settings.default_bot_model,
            "general_prompt": self.settings.default_general_prompt,
            "begin_message": self.settings.default_begin_message,
        }
        if not agent.llm_id:
            return llm_settings

        try:
            llm = await client.get_llm(agent.llm_id)
        except RemoteApiError as e:
            # Defaults are good enough for an import
            self.logger.warning("Could not fetch LLM details", llm_id=agent.llm_id, error=e.message)
            return llm_settings

        llm_settings["model"] = llm.model or llm_settings["model"]
        llm_settings["general_prompt"] = llm.general_prompt or llm_settings["general_prompt"]
        llm_settings["begin_message"] = llm.begin_message or llm_settings["begin_message"]
        return llm_settings

    async def _upsert(
        self,
        organization_id: UUID,
        agent: RemoteAgent,
        client: RetellClient,
        acting_user_id: Optional[UUID],
    ) -> bool:
        """Reconcile one agent. Returns True when a bot was created."""
        if not agent.agent_id:
            raise ValidationError("Remote agent has no agent_id")

        result = await self.db.execute(select(Bot).where(Bot.retell_agent_id == agent.agent_id))
        bot = result.scalar_one_or_none()

        if bot is not None and bot.organization_id != organization_id:
            raise ValidationError("Agent is already linked to another organization")

        llm_settings = await self._llm_settings(client, agent)

        if bot is not None:
            bot.name = agent.agent_name or bot.name
            bot.voice_id = agent.voice_id or bot.voice_id
            bot.webhook_url = agent.webhook_url or bot.webhook_url
            bot.retell_llm_id = agent.llm_id or bot.retell_llm_id
            bot.model = llm_settings["model"]
            bot.general_prompt = llm_settings["general_prompt"]
            bot.begin_message = llm_settings["begin_message"]
            bot.is_active = True
            await self.db.flush()
            self.logger.info("Updated bot", bot_id=str(bot.id), agent_id=agent.agent_id)
            return False

        bot = Bot(
            organization_id=organization_id,
            created_by_id=acting_user_id,
            retell_agent_id=agent.agent_id,
            retell_llm_id=agent.llm_id,
            name=agent.agent_name or f"Imported Bot {agent.agent_id[:8]}",
            description="Imported from voice platform",
            voice_id=agent.voice_id or self.settings.default_voice_id,
            webhook_url=agent.webhook_url,
            language=agent.language or "en-US",
            is_active=True,
            custom_tools=[],
            boosted_keywords=[],
            **llm_settings,
        )
        self.db.add(bot)
        await self.db.flush()
        self.logger.info("Created bot", bot_id=str(bot.id), agent_id=agent.agent_id)
        return True


class PhoneNumberReconciler:
    """Upsert remote phone numbers, claiming them for the syncing organization."""

    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.settings = settings
        self.logger = logger.bind(service="reconciler", entity="phone_number")

    async def sync(self, organization_id: UUID) -> SyncResult:
        """Fetch the organization's phone numbers and reconcile them."""
        client = await CredentialResolver(self.db, self.settings).client_for(organization_id)
        numbers = await client.list_phone_numbers()
        self.logger.info(
            "Fetched remote phone numbers", organization_id=str(organization_id), count=len(numbers)
        )
        return await self.reconcile(organization_id, numbers)

    async def _agent_map(self, organization_id: UUID) -> dict[str, UUID]:
        result = await self.db.execute(
            select(Bot.retell_agent_id, Bot.id).where(Bot.organization_id == organization_id)
        )
        return {agent_id: bot_id for agent_id, bot_id in result.all()}

    async def reconcile(
        self,
        organization_id: UUID,
        numbers: Sequence[Union[RemotePhoneNumber, MalformedEntry]],
    ) -> SyncResult:
        result = SyncResult()
        agent_map = await self._agent_map(organization_id)

        for remote in numbers:
            if isinstance(remote, MalformedEntry):
                label = remote.label("phone_number")
                self.logger.warning("Skipping malformed phone number", phone_number=label, error=remote.error)
                result.record_error(label, ValidationError(f"Malformed remote phone number ({remote.error})"))
                continue

            label = remote.phone_number or "<missing phone_number>"
            try:
                created = await self._upsert(organization_id, remote, agent_map)
                await self.db.commit()
            except Exception as e:
                await self.db.rollback()
                self.logger.warning("Phone number sync failed", phone_number=label, error=str(e))
                result.record_error(label, e)
                continue

            if created:
                result.created += 1
            else:
                result.updated += 1

        self.logger.info(
            "Phone number sync finished",
            organization_id=str(organization_id),
            created=result.created,
            updated=result.updated,
            skipped=result.skipped,
        )
        return result

    @staticmethod
    def _resolve_bot(agent_map: dict[str, UUID], agent_id: Optional[str]) -> Optional[UUID]:
        if not agent_id:
            return None
        return agent_map.get(agent_id)

    async def _upsert(
        self,
        organization_id: UUID,
        remote: RemotePhoneNumber,
        agent_map: dict[str, UUID],
    ) -> bool:
        if not remote.phone_number:
            raise ValidationError("Remote phone number has no phone_number")

        number = format_phone_number(remote.phone_number)
        inbound_bot_id = self._resolve_bot(agent_map, remote.inbound_agent_id)
        outbound_bot_id = self._resolve_bot(agent_map, remote.outbound_agent_id)

        result = await self.db.execute(select(PhoneNumber).where(PhoneNumber.number == number))
        phone = result.scalar_one_or_none()

        if phone is not None:
            if phone.organization_id != organization_id:
                self.logger.info(
                    "Claiming phone number",
                    phone_number=number,
                    previous_organization_id=str(phone.organization_id),
                    organization_id=str(organization_id),
                )
                phone.organization_id = organization_id
                phone.assigned_user_id = None
            phone.retell_phone_number_id = number
            phone.inbound_bot_id = inbound_bot_id
            phone.outbound_bot_id = outbound_bot_id
            if not phone.nickname:
                phone.nickname = remote.nickname
            await self.db.flush()
            return False

        phone = PhoneNumber(
            organization_id=organization_id,
            number=number,
            retell_phone_number_id=number,
            nickname=remote.nickname,
            inbound_bot_id=inbound_bot_id,
            outbound_bot_id=outbound_bot_id,
            is_active=True,
        )
        self.db.add(phone)
        await self.db.flush()
        return True
