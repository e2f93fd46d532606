"""Voice platform gateway, credentials and payload models."""

from voicedesk.retell.client import RetellClient
from voicedesk.retell.credentials import (
    Credential,
    CredentialResolver,
    get_credential_resolver,
    mask_secret,
)
from voicedesk.retell.schemas import (
    MalformedEntry,
    RemoteAgent,
    RemoteCall,
    RemoteKnowledgeBase,
    RemoteLlm,
    RemotePhoneNumber,
    ResponseEngine,
)

__all__ = [
    "MalformedEntry",
    "RetellClient",
    "Credential",
    "CredentialResolver",
    "get_credential_resolver",
    "mask_secret",
    "RemoteAgent",
    "RemoteCall",
    "RemoteKnowledgeBase",
    "RemoteLlm",
    "RemotePhoneNumber",
    "ResponseEngine",
]
