"""Database layer: ORM models and async session management."""

from voicedesk.database.session import (
    get_db,
    engine,
    build_engine,
    AsyncSessionLocal,
    init_db,
    close_db,
)
from voicedesk.database.models import (
    Base,
    Organization,
    User,
    APIKey,
    Bot,
    BotAssignment,
    PhoneNumber,
    Call,
    WebhookLog,
    CallAnalytics,
    Order,
    Reservation,
    RoomType,
    RoomAvailability,
    KnowledgeBase,
    BotKnowledgeBase,
    UserRole,
    CustomerType,
    CallStatus,
    WebhookEventType,
    OrderStatus,
    ReservationStatus,
)

__all__ = [
    # Session
    "get_db",
    "engine",
    "build_engine",
    "AsyncSessionLocal",
    "init_db",
    "close_db",
    # Models
    "Base",
    "Organization",
    "User",
    "APIKey",
    "Bot",
    "BotAssignment",
    "PhoneNumber",
    "Call",
    "WebhookLog",
    "CallAnalytics",
    "Order",
    "Reservation",
    "RoomType",
    "RoomAvailability",
    "KnowledgeBase",
    "BotKnowledgeBase",
    # Enums
    "UserRole",
    "CustomerType",
    "CallStatus",
    "WebhookEventType",
    "OrderStatus",
    "ReservationStatus",
]
