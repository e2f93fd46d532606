"""Orders and reservations captured from calls."""

from voicedesk.bookings.service import BookingService, customer_records

__all__ = ["BookingService", "customer_records"]
