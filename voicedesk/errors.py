"""Error taxonomy shared by the gateway, webhooks and admin APIs."""

from typing import Any, Dict, Optional


class VoiceDeskError(Exception):
    """Base exception rendered as a JSON error response."""

    status_code: int = 400

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to response body."""
        body: Dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class CredentialMissing(VoiceDeskError):
    """No platform API key for the tenant and no fallback key."""

    status_code = 400

    def __init__(self, organization_id: Optional[str] = None):
        super().__init__(
            "Voice platform API key not configured. Please add it in admin settings.",
            details={"organization_id": organization_id} if organization_id else None,
        )
        self.organization_id = organization_id


class RemoteApiError(VoiceDeskError):
    """Non-2xx response (or transport failure) from the voice platform.

    ``remote_status`` is 0 when the request never produced a response.
    """

    status_code = 502

    def __init__(self, remote_status: int, raw_body: str, path: Optional[str] = None):
        self.remote_status = remote_status
        self.raw_body = raw_body
        self.path = path
        super().__init__(
            f"Voice platform API error {remote_status}",
            details={"status": remote_status, "body": raw_body[:1000], "path": path},
        )


class SignatureInvalid(VoiceDeskError):
    """Inbound webhook failed signature verification."""

    status_code = 401

    def __init__(self):
        super().__init__("Invalid signature")


class WebhookNotConfigured(VoiceDeskError):
    """Webhook secret is missing from the server configuration."""

    status_code = 500

    def __init__(self):
        super().__init__("Webhook not configured")


class EntityNotFound(VoiceDeskError):
    """Scoped lookup found no row."""

    status_code = 404

    def __init__(self, entity: str, entity_id: Any = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found")


class ValidationError(VoiceDeskError):
    """Request body or business fields failed validation."""

    status_code = 400


class ConflictError(VoiceDeskError):
    """Resource already exists."""

    status_code = 409
