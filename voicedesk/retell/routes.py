"""Voice platform credential status for admins."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.auth.dependencies import UserContext, require_admin
from voicedesk.database.models import Organization
from voicedesk.database.session import get_db
from voicedesk.errors import EntityNotFound
from voicedesk.retell.credentials import CredentialResolver, get_credential_resolver, mask_secret

logger = structlog.get_logger()

router = APIRouter(prefix="/platform", tags=["platform"])


class CredentialsUpdate(BaseModel):
    """Empty strings clear a stored value."""

    retell_api_key: Optional[str] = Field(None, max_length=255)
    retell_webhook_secret: Optional[str] = Field(None, max_length=255)


@router.get("/status")
async def platform_status(
    resolver: CredentialResolver = Depends(get_credential_resolver),
    user: UserContext = Depends(require_admin),
):
    """Which credential the organization resolves to, and whether it works."""
    return await resolver.probe(user.organization_id)


@router.put("/credentials")
async def update_credentials(
    data: CredentialsUpdate,
    db: AsyncSession = Depends(get_db),
    user: UserContext = Depends(require_admin),
):
    organization = await db.get(Organization, user.organization_id)
    if organization is None:
        raise EntityNotFound("Organization", user.organization_id)

    changes = data.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(organization, field, value or None)
    await db.commit()

    logger.info(
        "Platform credentials updated",
        organization_id=str(organization.id),
        fields=sorted(changes),
        key_preview=mask_secret(organization.retell_api_key),
    )
    return {
        "success": True,
        "api_key_preview": mask_secret(organization.retell_api_key),
        "webhook_secret_configured": bool(organization.retell_webhook_secret),
    }
