"""Knowledge base service."""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.config import Settings
from voicedesk.database.models import KnowledgeBase
from voicedesk.errors import EntityNotFound, RemoteApiError
from voicedesk.knowledge.linker import KnowledgeBaseLinker
from voicedesk.knowledge.schemas import KnowledgeBaseCreate, KnowledgeBaseUpdate
from voicedesk.retell.credentials import CredentialResolver

logger = structlog.get_logger()


class KnowledgeBaseService:
    """Service for knowledge base operations."""

    def __init__(self, db: AsyncSession, settings: Settings) -> None:
        self.db = db
        self.settings = settings
        self.credentials = CredentialResolver(db, settings)
        self.logger = logger.bind(service="knowledge_base")

    async def list_for_organization(self, organization_id: UUID) -> list[KnowledgeBase]:
        result = await self.db.execute(
            select(KnowledgeBase)
            .where(KnowledgeBase.organization_id == organization_id)
            .order_by(KnowledgeBase.created_at.desc())
        )
        return list(result.scalars().all())

    async def get(self, organization_id: UUID, knowledge_base_id: UUID) -> KnowledgeBase:
        result = await self.db.execute(
            select(KnowledgeBase).where(
                KnowledgeBase.id == knowledge_base_id,
                KnowledgeBase.organization_id == organization_id,
            )
        )
        knowledge_base = result.scalar_one_or_none()
        if not knowledge_base:
            raise EntityNotFound("Knowledge base", knowledge_base_id)
        return knowledge_base

    async def create(self, organization_id: UUID, data: KnowledgeBaseCreate) -> KnowledgeBase:
        client = await self.credentials.client_for(organization_id)
        remote = await client.create_knowledge_base(
            {
                "knowledge_base_name": data.name,
                "texts": data.texts,
                "enable_auto_refresh": data.enable_auto_refresh,
            }
        )
        if not remote.knowledge_base_id:
            raise RemoteApiError(
                200, "create-knowledge-base returned no knowledge_base_id", path="/create-knowledge-base"
            )

        knowledge_base = KnowledgeBase(
            organization_id=organization_id,
            retell_knowledge_base_id=remote.knowledge_base_id,
            name=data.name,
            texts=data.texts,
            enable_auto_refresh=data.enable_auto_refresh,
        )
        self.db.add(knowledge_base)
        await self.db.commit()
        await self.db.refresh(knowledge_base)

        self.logger.info(
            "Knowledge base created",
            knowledge_base_id=str(knowledge_base.id),
            remote_id=remote.knowledge_base_id,
        )
        return knowledge_base

    async def update(
        self, organization_id: UUID, knowledge_base_id: UUID, data: KnowledgeBaseUpdate
    ) -> KnowledgeBase:
        knowledge_base = await self.get(organization_id, knowledge_base_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        remote_patch: dict[str, Any] = {}
        if "name" in changes:
            remote_patch["knowledge_base_name"] = changes["name"]
        if "texts" in changes:
            remote_patch["texts"] = changes["texts"]
        if "enable_auto_refresh" in changes:
            remote_patch["enable_auto_refresh"] = changes["enable_auto_refresh"]

        if remote_patch:
            client = await self.credentials.client_for(organization_id)
            await client.update_knowledge_base(knowledge_base.retell_knowledge_base_id, remote_patch)

        for field, value in changes.items():
            setattr(knowledge_base, field, value)

        await self.db.commit()
        await self.db.refresh(knowledge_base)
        self.logger.info("Knowledge base updated", knowledge_base_id=str(knowledge_base.id))
        return knowledge_base

    async def delete(self, organization_id: UUID, knowledge_base_id: UUID) -> None:
        """Detach from every bot remotely, delete remotely, then delete locally."""
        knowledge_base = await self.get(organization_id, knowledge_base_id)

        detached = await KnowledgeBaseLinker(self.db, self.settings).detach_everywhere(knowledge_base)

        client = await self.credentials.client_for(organization_id)
        await client.delete_knowledge_base(knowledge_base.retell_knowledge_base_id)

        await self.db.delete(knowledge_base)
        await self.db.commit()

        self.logger.info(
            "Knowledge base deleted",
            knowledge_base_id=str(knowledge_base_id),
            bots_updated=detached,
        )
