"""Calls: outbound initiation, history and webhook audit."""

from voicedesk.calls.service import CallService, call_scope

__all__ = ["CallService", "call_scope"]
