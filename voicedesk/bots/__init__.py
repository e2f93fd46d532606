"""Bot provisioning and access."""

from voicedesk.bots.service import BotService, bot_scope

__all__ = ["BotService", "bot_scope"]
