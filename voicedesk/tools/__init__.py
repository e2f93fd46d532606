"""Tools callable by agents during live calls."""

from voicedesk.tools.availability import AvailabilityQuery, AvailabilityService
from voicedesk.tools.builtin import BuiltinTools, confirmation_number
from voicedesk.tools.definitions import BUILTIN_TOOLS, find_tool, to_general_tool
from voicedesk.tools.dispatcher import ToolCallDispatcher

__all__ = [
    "AvailabilityQuery",
    "AvailabilityService",
    "BuiltinTools",
    "confirmation_number",
    "BUILTIN_TOOLS",
    "find_tool",
    "to_general_tool",
    "ToolCallDispatcher",
]
