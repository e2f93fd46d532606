"""Remote-to-local reconciliation of agents and phone numbers."""

from voicedesk.sync.reconciler import BotReconciler, PhoneNumberReconciler, SyncResult

__all__ = ["BotReconciler", "PhoneNumberReconciler", "SyncResult"]
