"""Knowledge base API routes."""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.auth.dependencies import UserContext, get_current_user, require_admin
from voicedesk.config import Settings, get_settings
from voicedesk.database.session import get_db
from voicedesk.knowledge.linker import KnowledgeBaseLinker
from voicedesk.knowledge.schemas import (
    BotKnowledgeBaseResponse,
    KnowledgeBaseAssign,
    KnowledgeBaseCreate,
    KnowledgeBaseResponse,
    KnowledgeBaseUpdate,
)
from voicedesk.knowledge.service import KnowledgeBaseService

router = APIRouter(tags=["knowledge"])


@router.get("/knowledge-bases", response_model=list[KnowledgeBaseResponse])
async def list_knowledge_bases(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(get_current_user),
):
    knowledge_bases = await KnowledgeBaseService(db, settings).list_for_organization(user.organization_id)
    return [KnowledgeBaseResponse.model_validate(kb) for kb in knowledge_bases]


@router.post(
    "/knowledge-bases",
    response_model=KnowledgeBaseResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_knowledge_base(
    data: KnowledgeBaseCreate,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(require_admin),
):
    """Create a knowledge base on the voice platform and store it."""
    knowledge_base = await KnowledgeBaseService(db, settings).create(user.organization_id, data)
    return KnowledgeBaseResponse.model_validate(knowledge_base)


@router.get("/knowledge-bases/{knowledge_base_id}", response_model=KnowledgeBaseResponse)
async def get_knowledge_base(
    knowledge_base_id: UUID,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(get_current_user),
):
    knowledge_base = await KnowledgeBaseService(db, settings).get(user.organization_id, knowledge_base_id)
    return KnowledgeBaseResponse.model_validate(knowledge_base)


@router.patch("/knowledge-bases/{knowledge_base_id}", response_model=KnowledgeBaseResponse)
async def update_knowledge_base(
    knowledge_base_id: UUID,
    data: KnowledgeBaseUpdate,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(require_admin),
):
    knowledge_base = await KnowledgeBaseService(db, settings).update(
        user.organization_id, knowledge_base_id, data
    )
    return KnowledgeBaseResponse.model_validate(knowledge_base)


@router.delete("/knowledge-bases/{knowledge_base_id}")
async def delete_knowledge_base(
    knowledge_base_id: UUID,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(require_admin),
):
    await KnowledgeBaseService(db, settings).delete(user.organization_id, knowledge_base_id)
    return {"success": True}


# =====================
# Bot assignments
# =====================


@router.get("/bots/{bot_id}/knowledge-bases", response_model=list[BotKnowledgeBaseResponse])
async def list_bot_knowledge_bases(
    bot_id: UUID,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(require_admin),
):
    assignments = await KnowledgeBaseLinker(db, settings).list_assignments(user.organization_id, bot_id)
    return [BotKnowledgeBaseResponse.model_validate(a) for a in assignments]


@router.post(
    "/bots/{bot_id}/knowledge-bases",
    response_model=BotKnowledgeBaseResponse,
    status_code=status.HTTP_201_CREATED,
)
async def assign_knowledge_base(
    bot_id: UUID,
    data: KnowledgeBaseAssign,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(require_admin),
):
    """Attach a knowledge base to a bot and push the full list to its LLM."""
    assignment = await KnowledgeBaseLinker(db, settings).assign(
        user.organization_id,
        bot_id,
        data.knowledge_base_id,
        top_k=data.top_k,
        filter_score=data.filter_score,
    )
    return BotKnowledgeBaseResponse.model_validate(assignment)


@router.delete("/bots/{bot_id}/knowledge-bases/{assignment_id}")
async def unassign_knowledge_base(
    bot_id: UUID,
    assignment_id: UUID,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserContext = Depends(require_admin),
):
    await KnowledgeBaseLinker(db, settings).unassign(user.organization_id, bot_id, assignment_id)
    return {"success": True}
