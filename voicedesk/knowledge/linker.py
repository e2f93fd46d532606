"""Keep a bot's remote LLM knowledge base list equal to its local assignments.

Every change recomputes the complete ``knowledge_base_ids`` list from the
local rows and pushes it with one ``update-retell-llm`` call. The local row
is only written (or removed) after that push succeeds.
"""

from typing import Any, Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.config import Settings
from voicedesk.database.models import Bot, BotKnowledgeBase, KnowledgeBase
from voicedesk.errors import ConflictError, EntityNotFound, ValidationError
from voicedesk.retell.credentials import CredentialResolver

logger = structlog.get_logger()


def link_entry(knowledge_base_id: str, top_k: int, filter_score: float) -> dict[str, Any]:
    return {
        "knowledge_base_id": knowledge_base_id,
        "top_k": top_k,
        "filter_score": filter_score,
    }


class KnowledgeBaseLinker:
    """Assign and unassign knowledge bases to bots."""

    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.settings = settings
        self.credentials = CredentialResolver(db, settings)
        self.logger = logger.bind(service="kb_linker")

    async def _bot(self, organization_id: UUID, bot_id: UUID) -> Bot:
        result = await self.db.execute(
            select(Bot).where(Bot.id == bot_id, Bot.organization_id == organization_id)
        )
        bot = result.scalar_one_or_none()
        if not bot:
            raise EntityNotFound("Bot", bot_id)
        return bot

    async def current_links(
        self,
        bot_id: UUID,
        exclude_assignment_id: Optional[UUID] = None,
        exclude_knowledge_base_id: Optional[UUID] = None,
    ) -> list[dict[str, Any]]:
        """Remote list entries for the bot's assignments, oldest first."""
        query = (
            select(BotKnowledgeBase, KnowledgeBase.retell_knowledge_base_id)
            .join(KnowledgeBase, KnowledgeBase.id == BotKnowledgeBase.knowledge_base_id)
            .where(BotKnowledgeBase.bot_id == bot_id)
            .order_by(BotKnowledgeBase.created_at)
        )
        if exclude_assignment_id is not None:
            query = query.where(BotKnowledgeBase.id != exclude_assignment_id)
        if exclude_knowledge_base_id is not None:
            query = query.where(BotKnowledgeBase.knowledge_base_id != exclude_knowledge_base_id)

        result = await self.db.execute(query)
        return [
            link_entry(remote_id, assignment.top_k, assignment.filter_score)
            for assignment, remote_id in result.all()
        ]

    async def push(self, bot: Bot, links: list[dict[str, Any]]) -> None:
        """Replace the remote LLM's knowledge base list with ``links``."""
        if not bot.retell_llm_id:
            raise ValidationError(
                "Bot does not have an associated LLM ID",
                details={"bot_id": str(bot.id)},
            )
        client = await self.credentials.client_for(bot.organization_id)
        await client.update_llm(bot.retell_llm_id, {"knowledge_base_ids": links})
        self.logger.info(
            "Pushed knowledge base list",
            bot_id=str(bot.id),
            llm_id=bot.retell_llm_id,
            count=len(links),
        )

    async def assign(
        self,
        organization_id: UUID,
        bot_id: UUID,
        knowledge_base_id: UUID,
        top_k: int = 3,
        filter_score: float = 0.5,
    ) -> BotKnowledgeBase:
        if not 1 <= top_k <= 20:
            raise ValidationError("top_k must be between 1 and 20")
        if not 0 <= filter_score <= 1:
            raise ValidationError("filter_score must be between 0 and 1")

        bot = await self._bot(organization_id, bot_id)

        result = await self.db.execute(
            select(KnowledgeBase).where(
                KnowledgeBase.id == knowledge_base_id,
                KnowledgeBase.organization_id == organization_id,
            )
        )
        knowledge_base = result.scalar_one_or_none()
        if not knowledge_base:
            raise EntityNotFound("Knowledge base", knowledge_base_id)

        existing = await self.db.execute(
            select(BotKnowledgeBase.id).where(
                BotKnowledgeBase.bot_id == bot.id,
                BotKnowledgeBase.knowledge_base_id == knowledge_base.id,
            )
        )
        if existing.scalar_one_or_none():
            raise ConflictError("Knowledge base already assigned to this bot")

        links = await self.current_links(bot.id)
        links.append(link_entry(knowledge_base.retell_knowledge_base_id, top_k, filter_score))
        await self.push(bot, links)

        assignment = BotKnowledgeBase(
            bot_id=bot.id,
            knowledge_base_id=knowledge_base.id,
            top_k=top_k,
            filter_score=filter_score,
        )
        self.db.add(assignment)
        await self.db.commit()
        await self.db.refresh(assignment)

        self.logger.info(
            "Knowledge base assigned",
            bot_id=str(bot.id),
            knowledge_base_id=str(knowledge_base.id),
        )
        return assignment

    async def unassign(self, organization_id: UUID, bot_id: UUID, assignment_id: UUID) -> None:
        bot = await self._bot(organization_id, bot_id)

        result = await self.db.execute(
            select(BotKnowledgeBase).where(
                BotKnowledgeBase.id == assignment_id,
                BotKnowledgeBase.bot_id == bot.id,
            )
        )
        assignment = result.scalar_one_or_none()
        if not assignment:
            raise EntityNotFound("Assignment", assignment_id)

        links = await self.current_links(bot.id, exclude_assignment_id=assignment.id)
        await self.push(bot, links)

        await self.db.delete(assignment)
        await self.db.commit()

        self.logger.info("Knowledge base unassigned", bot_id=str(bot.id), assignment_id=str(assignment_id))

    async def list_assignments(self, organization_id: UUID, bot_id: UUID) -> list[BotKnowledgeBase]:
        bot = await self._bot(organization_id, bot_id)
        result = await self.db.execute(
            select(BotKnowledgeBase)
            .where(BotKnowledgeBase.bot_id == bot.id)
            .order_by(BotKnowledgeBase.created_at)
        )
        return list(result.scalars().all())

    async def detach_everywhere(self, knowledge_base: KnowledgeBase) -> int:
        """Push every affected bot's list without ``knowledge_base``.

        Used before deleting a knowledge base. Returns the number of bots updated.
        """
        result = await self.db.execute(
            select(Bot)
            .join(BotKnowledgeBase, BotKnowledgeBase.bot_id == Bot.id)
            .where(BotKnowledgeBase.knowledge_base_id == knowledge_base.id)
        )
        bots = list(result.scalars().unique().all())
        for bot in bots:
            links = await self.current_links(bot.id, exclude_knowledge_base_id=knowledge_base.id)
            await self.push(bot, links)
        return len(bots)
