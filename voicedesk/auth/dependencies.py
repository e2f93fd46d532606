"""Authentication dependencies."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID
import hashlib
import hmac
import secrets

from fastapi import Depends, HTTPException, Header, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.config import Settings, get_settings
from voicedesk.database.session import get_db
from voicedesk.database.models import User, APIKey, UserRole, CustomerType

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class UserContext:
    """Tenant and role of the caller."""

    user_id: UUID
    organization_id: UUID
    role: UserRole
    customer_type: CustomerType

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @classmethod
    def from_user(cls, user: User) -> "UserContext":
        return cls(
            user_id=user.id,
            organization_id=user.organization_id,
            role=user.role,
            customer_type=user.customer_type,
        )


def hash_api_key(api_key: str, pepper: Optional[str] = None) -> str:
    """
    Hash an API key with HMAC-SHA256 and the configured pepper.

    The hash is deterministic so it can be used for lookups.
    """
    if pepper is None:
        pepper = get_settings().api_key_pepper
    return hmac.new(
        pepper.encode(),
        api_key.encode(),
        hashlib.sha256
    ).hexdigest()


API_KEY_PREFIX = "vd_live_"


def generate_api_key(pepper: Optional[str] = None) -> tuple[str, str]:
    """
    Generate a new API key.

    Returns (raw_key, key_hash). Only the hash is stored.
    """
    raw_key = f"{API_KEY_PREFIX}{secrets.token_urlsafe(32)}"
    return raw_key, hash_api_key(raw_key, pepper)


async def get_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    authorization: Optional[str] = Header(None),
) -> Optional[str]:
    """Extract API key from headers."""
    # Check X-API-Key header first
    if x_api_key:
        return x_api_key

    # Check Authorization header (Bearer token)
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:]

    return None


async def get_current_user(
    api_key: Optional[str] = Depends(get_api_key),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> UserContext:
    """Resolve the caller from an API key.

    With ``enforce_auth`` off, requests without a key act as the oldest
    admin user (development only).
    """
    if not api_key:
        if not settings.enforce_auth:
            logger.warning("No API key provided, using development admin (ENFORCE_AUTH=false)")
            result = await db.execute(
                select(User)
                .where(User.role == UserRole.ADMIN)
                .order_by(User.created_at)
                .limit(1)
            )
            user = result.scalar_one_or_none()
            if user:
                return UserContext.from_user(user)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    api_key_hash = hash_api_key(api_key, settings.api_key_pepper)

    query = select(APIKey).where(
        APIKey.key_hash == api_key_hash,
        APIKey.revoked_at.is_(None),
    )
    result = await db.execute(query)
    key_record = result.scalar_one_or_none()

    if not key_record or not key_record.is_active:
        logger.warning("Invalid API key attempt", api_key_prefix=api_key[:4] + "...")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    if key_record.expires_at:
        expires_at = key_record.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at < datetime.now(timezone.utc):
            logger.warning("Expired API key used", key_id=str(key_record.id))
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="API key expired",
            )

    user = await db.get(User, key_record.user_id)
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    key_record.last_used_at = datetime.now(timezone.utc)
    await db.commit()

    return UserContext.from_user(user)


async def require_admin(
    user: UserContext = Depends(get_current_user),
) -> UserContext:
    """Only organization admins may continue."""
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user
