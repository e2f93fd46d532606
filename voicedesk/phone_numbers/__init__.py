"""Phone number management."""

from voicedesk.phone_numbers.formatting import format_phone_number
from voicedesk.phone_numbers.service import PhoneNumberService

__all__ = ["PhoneNumberService", "format_phone_number"]
