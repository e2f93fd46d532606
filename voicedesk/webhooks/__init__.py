"""Lifecycle and tool-call webhooks."""

from voicedesk.webhooks.lifecycle import CallLifecycleProcessor, usage_minutes
from voicedesk.webhooks.signature import compute_signature, verify_signature

__all__ = [
    "CallLifecycleProcessor",
    "usage_minutes",
    "compute_signature",
    "verify_signature",
]
