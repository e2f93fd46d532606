"""Caller resolution from API keys."""

from voicedesk.auth.dependencies import (
    UserContext,
    generate_api_key,
    get_api_key,
    get_current_user,
    hash_api_key,
    require_admin,
)

__all__ = [
    "UserContext",
    "generate_api_key",
    "get_api_key",
    "get_current_user",
    "hash_api_key",
    "require_admin",
]
