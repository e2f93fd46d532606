"""Database models for VoiceDesk."""

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import (
    Column,
    String,
    Text,
    Boolean,
    Integer,
    Float,
    Date,
    DateTime,
    ForeignKey,
    JSON,
    Enum,
    Index,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class UserRole(str, PyEnum):
    """User role within an organization."""
    ADMIN = "ADMIN"
    CUSTOMER = "CUSTOMER"


class CustomerType(str, PyEnum):
    """Business type of a customer user."""
    GENERAL = "GENERAL"
    RESTAURANT = "RESTAURANT"
    HOTEL = "HOTEL"


class CallStatus(str, PyEnum):
    """Call lifecycle status."""
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    ENDED = "ENDED"
    ANALYZED = "ANALYZED"


class WebhookEventType(str, PyEnum):
    """Lifecycle webhook event kinds."""
    CALL_STARTED = "CALL_STARTED"
    CALL_ENDED = "CALL_ENDED"
    CALL_ANALYZED = "CALL_ANALYZED"
    UNKNOWN = "UNKNOWN"


class OrderStatus(str, PyEnum):
    """Restaurant order status."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    READY = "READY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class ReservationStatus(str, PyEnum):
    """Hotel reservation status."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    CANCELLED = "CANCELLED"


class Organization(Base):
    """Tenant."""
    __tablename__ = "organizations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), unique=True, nullable=False, index=True)

    # Platform credential overrides
    retell_api_key = Column(String(255))
    retell_webhook_secret = Column(String(255))

    # Usage (billing-relevant, only ever incremented)
    monthly_call_minutes = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    users = relationship("User", back_populates="organization", passive_deletes=True)
    bots = relationship("Bot", back_populates="organization", passive_deletes=True)


class User(Base):
    """Admin or customer user of an organization."""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255))
    role = Column(Enum(UserRole), nullable=False, default=UserRole.CUSTOMER)
    customer_type = Column(Enum(CustomerType), nullable=False, default=CustomerType.GENERAL)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    organization = relationship("Organization", back_populates="users")
    api_keys = relationship("APIKey", back_populates="user", passive_deletes=True)


class APIKey(Base):
    """Hashed API key used by the dashboard session layer."""
    __tablename__ = "api_keys"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    key_hash = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True)
    last_used_at = Column(DateTime(timezone=True))
    revoked_at = Column(DateTime(timezone=True))
    expires_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=utcnow)

    user = relationship("User", back_populates="api_keys")


class Bot(Base):
    """Voice agent backed by a remote agent and LLM configuration."""
    __tablename__ = "bots"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    created_by_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"))

    # Remote identifiers
    retell_agent_id = Column(String(100), nullable=False, unique=True, index=True)
    retell_llm_id = Column(String(100))

    # Basic info
    name = Column(String(255), nullable=False)
    description = Column(Text)
    is_active = Column(Boolean, default=True)

    # Voice / LLM
    voice_id = Column(String(100))
    model = Column(String(100))
    general_prompt = Column(Text)
    begin_message = Column(Text)
    webhook_url = Column(Text)
    language = Column(String(20), default="en-US")

    # Advanced voice settings
    voice_temperature = Column(Float)
    voice_speed = Column(Float)
    responsiveness = Column(Float)
    interruption_sensitivity = Column(Float)
    enable_backchannel = Column(Boolean, default=False)
    ambient_sound = Column(String(100))
    boosted_keywords = Column(JSON, default=list)
    normalize_for_speech = Column(Boolean, default=True)
    opt_out_sensitive_data_storage = Column(Boolean, default=False)

    # OpenAI-style tool definitions: [{"type": "function", "function": {...}}]
    custom_tools = Column(JSON, default=list)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    organization = relationship("Organization", back_populates="bots")
    assignments = relationship("BotAssignment", back_populates="bot", passive_deletes=True)
    knowledge_bases = relationship("BotKnowledgeBase", back_populates="bot", passive_deletes=True)

    __table_args__ = (
        Index("ix_bots_organization", "organization_id"),
    )


class BotAssignment(Base):
    """Customer allowed to use a bot."""
    __tablename__ = "bot_assignments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    bot_id = Column(Uuid, ForeignKey("bots.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    bot = relationship("Bot", back_populates="assignments")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("bot_id", "user_id", name="uq_bot_assignment"),
    )


class PhoneNumber(Base):
    """Phone number owned by an organization."""
    __tablename__ = "phone_numbers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    number = Column(String(20), unique=True, nullable=False, index=True)  # E.164
    retell_phone_number_id = Column(String(100), index=True)
    nickname = Column(String(255))
    is_active = Column(Boolean, default=True)

    # Weak bot bindings, cleared when the bot goes away
    inbound_bot_id = Column(Uuid, ForeignKey("bots.id", ondelete="SET NULL"))
    outbound_bot_id = Column(Uuid, ForeignKey("bots.id", ondelete="SET NULL"))
    assigned_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"))

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)


class Call(Base):
    """Call record driven by lifecycle webhooks."""
    __tablename__ = "calls"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    bot_id = Column(Uuid, ForeignKey("bots.id", ondelete="CASCADE"), nullable=False)
    initiated_by_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"))

    retell_call_id = Column(String(100), unique=True, nullable=False, index=True)
    from_number = Column(String(20))
    to_number = Column(String(20))

    status = Column(Enum(CallStatus), nullable=False, default=CallStatus.PENDING)
    started_at = Column(DateTime(timezone=True))
    ended_at = Column(DateTime(timezone=True))
    duration_ms = Column(Integer)

    # Conversation
    transcript = Column(Text)
    transcript_object = Column(JSON)
    transcript_with_tool_calls = Column(JSON)

    # Recording / debugging
    recording_url = Column(Text)
    recording_multi_channel_url = Column(Text)
    scrubbed_recording_url = Column(Text)
    public_log_url = Column(Text)
    knowledge_base_url = Column(Text)

    # Call flow
    disconnection_reason = Column(String(100))
    transfer_destination = Column(String(50))

    # Cost
    llm_token_usage = Column(JSON)
    call_cost = Column(JSON)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    bot = relationship("Bot")
    initiated_by = relationship("User")
    analytics = relationship(
        "CallAnalytics", back_populates="call", uselist=False, passive_deletes=True
    )
    webhook_logs = relationship(
        "WebhookLog", back_populates="call", passive_deletes=True, order_by="WebhookLog.created_at"
    )

    __table_args__ = (
        Index("ix_calls_org_created", "organization_id", "created_at"),
        Index("ix_calls_status", "status"),
    )


class WebhookLog(Base):
    """Append-only audit record of a received lifecycle event.

    ``organization_id`` is a plain string so rejected events referencing an
    unknown or malformed tenant id can still be recorded.
    """
    __tablename__ = "webhook_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    call_id = Column(Uuid, ForeignKey("calls.id", ondelete="CASCADE"), nullable=True)
    organization_id = Column(String(64), index=True)
    event_type = Column(Enum(WebhookEventType), nullable=False)
    payload = Column(JSON)
    processed = Column(Boolean, nullable=False, default=False)
    error = Column(Text)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    call = relationship("Call", back_populates="webhook_logs")


class CallAnalytics(Base):
    """Post-call analysis, one row per call."""
    __tablename__ = "call_analytics"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    call_id = Column(
        Uuid, ForeignKey("calls.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    summary = Column(Text)
    sentiment = Column(String(50))
    success_evaluation = Column(String(50))
    custom_analysis = Column(JSON)

    e2e_latency_p50 = Column(Float)
    e2e_latency_p90 = Column(Float)
    e2e_latency_p95 = Column(Float)
    e2e_latency_p99 = Column(Float)
    llm_latency_p50 = Column(Float)
    llm_latency_p90 = Column(Float)
    llm_latency_p95 = Column(Float)
    llm_latency_p99 = Column(Float)
    asr_latency_p50 = Column(Float)
    asr_latency_p90 = Column(Float)
    asr_latency_p95 = Column(Float)
    asr_latency_p99 = Column(Float)
    tts_latency_p50 = Column(Float)
    tts_latency_p90 = Column(Float)
    tts_latency_p95 = Column(Float)
    tts_latency_p99 = Column(Float)
    kb_latency_p50 = Column(Float)
    kb_latency_p90 = Column(Float)
    kb_latency_p95 = Column(Float)
    kb_latency_p99 = Column(Float)
    network_latency_p50 = Column(Float)
    network_latency_p90 = Column(Float)
    network_latency_p95 = Column(Float)
    network_latency_p99 = Column(Float)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    call = relationship("Call", back_populates="analytics")


class Order(Base):
    """Restaurant order taken during a call."""
    __tablename__ = "orders"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    call_id = Column(Uuid, ForeignKey("calls.id", ondelete="SET NULL"), unique=True)

    customer_name = Column(String(255), nullable=False)
    customer_phone = Column(String(50))
    items = Column(Text, nullable=False)
    total_amount = Column(Float)
    delivery_address = Column(Text)
    notes = Column(Text)
    status = Column(Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    __table_args__ = (
        Index("ix_orders_customer_created", "customer_id", "created_at"),
    )


class RoomType(Base):
    """Hotel room inventory."""
    __tablename__ = "room_types"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    customer_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"))

    name = Column(String(255), nullable=False)
    description = Column(Text)
    price_per_night = Column(Float, nullable=False, default=0)
    max_guests = Column(Integer, nullable=False, default=2)
    total_rooms = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)


class RoomAvailability(Base):
    """Per-night override for a room type (stop sell)."""
    __tablename__ = "room_availability"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    room_type_id = Column(
        Uuid, ForeignKey("room_types.id", ondelete="CASCADE"), nullable=False
    )
    date = Column(Date, nullable=False)
    is_blocked = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("room_type_id", "date", name="uq_room_availability_day"),
    )


class Reservation(Base):
    """Hotel reservation."""
    __tablename__ = "reservations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    call_id = Column(Uuid, ForeignKey("calls.id", ondelete="SET NULL"), unique=True)
    room_type_id = Column(Uuid, ForeignKey("room_types.id", ondelete="SET NULL"))

    guest_name = Column(String(255), nullable=False)
    guest_phone = Column(String(50))
    guest_email = Column(String(255))
    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)
    room_type = Column(String(255))
    number_of_guests = Column(Integer, nullable=False, default=1)
    special_requests = Column(Text)
    status = Column(Enum(ReservationStatus), nullable=False, default=ReservationStatus.PENDING)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    __table_args__ = (
        Index("ix_reservations_room_dates", "room_type_id", "check_in", "check_out"),
    )


class KnowledgeBase(Base):
    """Knowledge base mirrored from the voice platform."""
    __tablename__ = "knowledge_bases"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    retell_knowledge_base_id = Column(String(100), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    texts = Column(JSON, default=list)
    enable_auto_refresh = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    bots = relationship("BotKnowledgeBase", back_populates="knowledge_base", passive_deletes=True)


class BotKnowledgeBase(Base):
    """Bot ↔ knowledge base assignment with retrieval parameters."""
    __tablename__ = "bot_knowledge_bases"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    bot_id = Column(Uuid, ForeignKey("bots.id", ondelete="CASCADE"), nullable=False)
    knowledge_base_id = Column(
        Uuid, ForeignKey("knowledge_bases.id", ondelete="CASCADE"), nullable=False
    )
    top_k = Column(Integer, nullable=False, default=3)
    filter_score = Column(Float, nullable=False, default=0.5)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    bot = relationship("Bot", back_populates="knowledge_bases")
    knowledge_base = relationship("KnowledgeBase", back_populates="bots")

    __table_args__ = (
        UniqueConstraint("bot_id", "knowledge_base_id", name="uq_bot_knowledge_base"),
    )
