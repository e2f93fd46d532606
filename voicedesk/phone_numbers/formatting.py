"""Phone number normalisation."""

import re

from voicedesk.errors import ValidationError

_NON_DIGITS = re.compile(r"\D")


def format_phone_number(phone: str) -> str:
    """Normalise a phone number to E.164 (``+`` followed by 8-15 digits)."""
    digits = _NON_DIGITS.sub("", phone or "")
    if not 8 <= len(digits) <= 15:
        raise ValidationError(
            "Invalid phone number",
            details={"phone_number": phone, "expected": "E.164, e.g. +14155551234"},
        )
    return f"+{digits}"
