"""Per-tenant platform credential resolution."""

from dataclasses import dataclass
from typing import Any, Optional, Union
from uuid import UUID

import structlog
from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.config import Settings, get_settings
from voicedesk.database.models import Organization
from voicedesk.database.session import get_db
from voicedesk.errors import CredentialMissing, RemoteApiError
from voicedesk.retell.client import RetellClient

logger = structlog.get_logger()

SOURCE_ORGANIZATION = "organization"
SOURCE_FALLBACK = "fallback"


def mask_secret(value: Optional[str]) -> str:
    """Preview a secret for operators: first 4 and last 4 characters."""
    if not value:
        return "not_set"
    if len(value) < 9:
        return "*" * len(value)
    return f"{value[:4]}...{value[-4:]}"


@dataclass(frozen=True)
class Credential:
    """Resolved platform API key and where it came from."""

    api_key: str
    source: str

    @property
    def preview(self) -> str:
        return mask_secret(self.api_key)

    def __repr__(self) -> str:
        return f"Credential(source={self.source!r}, api_key={self.preview!r})"


class CredentialResolver:
    """Resolve the platform credential for a tenant.

    Lookup order is the organization's stored key, then the process-wide
    fallback key from settings. Each call to ``client_for`` builds a fresh
    ``RetellClient``.
    """

    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.settings = settings
        self.logger = logger.bind(service="credentials")

    async def _stored_key(self, organization_id: Union[UUID, str]) -> Optional[str]:
        if not isinstance(organization_id, UUID):
            try:
                organization_id = UUID(str(organization_id))
            except ValueError:
                return None
        result = await self.db.execute(
            select(Organization.retell_api_key).where(Organization.id == organization_id)
        )
        return result.scalar_one_or_none()

    async def resolve(self, organization_id: Union[UUID, str]) -> Credential:
        """Return the credential for ``organization_id`` or raise ``CredentialMissing``."""
        stored = await self._stored_key(organization_id)
        if stored:
            return Credential(api_key=stored, source=SOURCE_ORGANIZATION)

        if self.settings.retell_api_key:
            return Credential(api_key=self.settings.retell_api_key, source=SOURCE_FALLBACK)

        self.logger.warning("No platform credential", organization_id=str(organization_id))
        raise CredentialMissing(str(organization_id))

    async def client_for(self, organization_id: Union[UUID, str]) -> RetellClient:
        credential = await self.resolve(organization_id)
        return RetellClient(
            api_key=credential.api_key,
            base_url=self.settings.retell_base_url,
            timeout=self.settings.retell_timeout_seconds,
        )

    async def describe(self, organization_id: Union[UUID, str]) -> dict[str, Any]:
        """Operator-facing view of the credential, never the raw key."""
        try:
            credential = await self.resolve(organization_id)
        except CredentialMissing:
            return {"configured": False, "source": None, "key_preview": mask_secret(None)}
        return {
            "configured": True,
            "source": credential.source,
            "key_preview": credential.preview,
        }

    async def probe(self, organization_id: Union[UUID, str]) -> dict[str, Any]:
        """Check that the resolved key works by listing a few calls."""
        status = await self.describe(organization_id)
        if not status["configured"]:
            return {**status, "reachable": False, "error": "Voice platform API key not configured"}

        client = await self.client_for(organization_id)
        try:
            calls = await client.list_calls(limit=5)
        except RemoteApiError as e:
            self.logger.warning(
                "Platform probe failed",
                organization_id=str(organization_id),
                remote_status=e.remote_status,
            )
            return {**status, "reachable": False, "error": e.message, "remote_status": e.remote_status}

        return {**status, "reachable": True, "recent_calls": len(calls)}


def get_credential_resolver(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> CredentialResolver:
    """FastAPI dependency building a resolver for the request session."""
    return CredentialResolver(db, settings)
