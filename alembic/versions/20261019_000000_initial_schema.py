"""Initial VoiceDesk schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

Tenants, users and API keys; bots, phone numbers and knowledge bases
mirrored from the voice platform; calls with their webhook audit log and
analytics; orders, reservations and room inventory.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


user_role = sa.Enum('ADMIN', 'CUSTOMER', name='userrole')
customer_type = sa.Enum('GENERAL', 'RESTAURANT', 'HOTEL', name='customertype')
call_status = sa.Enum('PENDING', 'IN_PROGRESS', 'ENDED', 'ANALYZED', name='callstatus')
webhook_event_type = sa.Enum(
    'CALL_STARTED', 'CALL_ENDED', 'CALL_ANALYZED', 'UNKNOWN', name='webhookeventtype'
)
order_status = sa.Enum(
    'PENDING', 'CONFIRMED', 'PREPARING', 'READY', 'DELIVERED', 'CANCELLED', name='orderstatus'
)
reservation_status = sa.Enum(
    'PENDING', 'CONFIRMED', 'CHECKED_IN', 'CHECKED_OUT', 'CANCELLED', name='reservationstatus'
)


def upgrade() -> None:
    """Create all tables."""

    # =========================================================================
    # Tenants
    # =========================================================================
    op.create_table(
        'organizations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(100), nullable=False),
        sa.Column('retell_api_key', sa.String(255), nullable=True),
        sa.Column('retell_webhook_secret', sa.String(255), nullable=True),
        sa.Column('monthly_call_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_organizations_slug', 'organizations', ['slug'], unique=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'organization_id', sa.Uuid(),
            sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('role', user_role, nullable=False),
        sa.Column('customer_type', customer_type, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_users_organization_id', 'users', ['organization_id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'api_keys',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('key_hash', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_api_keys_key_hash', 'api_keys', ['key_hash'], unique=True)

    # =========================================================================
    # Bots
    # =========================================================================
    op.create_table(
        'bots',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'organization_id', sa.Uuid(),
            sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('created_by_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('retell_agent_id', sa.String(100), nullable=False),
        sa.Column('retell_llm_id', sa.String(100), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('voice_id', sa.String(100), nullable=True),
        sa.Column('model', sa.String(100), nullable=True),
        sa.Column('general_prompt', sa.Text(), nullable=True),
        sa.Column('begin_message', sa.Text(), nullable=True),
        sa.Column('webhook_url', sa.Text(), nullable=True),
        sa.Column('language', sa.String(20), nullable=True),
        sa.Column('voice_temperature', sa.Float(), nullable=True),
        sa.Column('voice_speed', sa.Float(), nullable=True),
        sa.Column('responsiveness', sa.Float(), nullable=True),
        sa.Column('interruption_sensitivity', sa.Float(), nullable=True),
        sa.Column('enable_backchannel', sa.Boolean(), nullable=True),
        sa.Column('ambient_sound', sa.String(100), nullable=True),
        sa.Column('boosted_keywords', sa.JSON(), nullable=True),
        sa.Column('normalize_for_speech', sa.Boolean(), nullable=True),
        sa.Column('opt_out_sensitive_data_storage', sa.Boolean(), nullable=True),
        sa.Column('custom_tools', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_bots_retell_agent_id', 'bots', ['retell_agent_id'], unique=True)
    op.create_index('ix_bots_organization', 'bots', ['organization_id'])

    op.create_table(
        'bot_assignments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('bot_id', sa.Uuid(), sa.ForeignKey('bots.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('bot_id', 'user_id', name='uq_bot_assignment'),
    )

    # =========================================================================
    # Phone numbers
    # =========================================================================
    op.create_table(
        'phone_numbers',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'organization_id', sa.Uuid(),
            sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('number', sa.String(20), nullable=False),
        sa.Column('retell_phone_number_id', sa.String(100), nullable=True),
        sa.Column('nickname', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('inbound_bot_id', sa.Uuid(), sa.ForeignKey('bots.id', ondelete='SET NULL'), nullable=True),
        sa.Column('outbound_bot_id', sa.Uuid(), sa.ForeignKey('bots.id', ondelete='SET NULL'), nullable=True),
        sa.Column('assigned_user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_phone_numbers_organization_id', 'phone_numbers', ['organization_id'])
    op.create_index('ix_phone_numbers_number', 'phone_numbers', ['number'], unique=True)
    op.create_index('ix_phone_numbers_retell_phone_number_id', 'phone_numbers', ['retell_phone_number_id'])

    # =========================================================================
    # Calls
    # =========================================================================
    op.create_table(
        'calls',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'organization_id', sa.Uuid(),
            sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('bot_id', sa.Uuid(), sa.ForeignKey('bots.id', ondelete='CASCADE'), nullable=False),
        sa.Column('initiated_by_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('retell_call_id', sa.String(100), nullable=False),
        sa.Column('from_number', sa.String(20), nullable=True),
        sa.Column('to_number', sa.String(20), nullable=True),
        sa.Column('status', call_status, nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_ms', sa.Integer(), nullable=True),
        sa.Column('transcript', sa.Text(), nullable=True),
        sa.Column('transcript_object', sa.JSON(), nullable=True),
        sa.Column('transcript_with_tool_calls', sa.JSON(), nullable=True),
        sa.Column('recording_url', sa.Text(), nullable=True),
        sa.Column('recording_multi_channel_url', sa.Text(), nullable=True),
        sa.Column('scrubbed_recording_url', sa.Text(), nullable=True),
        sa.Column('public_log_url', sa.Text(), nullable=True),
        sa.Column('knowledge_base_url', sa.Text(), nullable=True),
        sa.Column('disconnection_reason', sa.String(100), nullable=True),
        sa.Column('transfer_destination', sa.String(50), nullable=True),
        sa.Column('llm_token_usage', sa.JSON(), nullable=True),
        sa.Column('call_cost', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_calls_retell_call_id', 'calls', ['retell_call_id'], unique=True)
    op.create_index('ix_calls_org_created', 'calls', ['organization_id', 'created_at'])
    op.create_index('ix_calls_status', 'calls', ['status'])

    op.create_table(
        'webhook_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('call_id', sa.Uuid(), sa.ForeignKey('calls.id', ondelete='CASCADE'), nullable=True),
        sa.Column('organization_id', sa.String(64), nullable=True),
        sa.Column('event_type', webhook_event_type, nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('processed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_webhook_logs_organization_id', 'webhook_logs', ['organization_id'])

    latency_columns = [
        sa.Column(f'{channel}_latency_{percentile}', sa.Float(), nullable=True)
        for channel in ('e2e', 'llm', 'asr', 'tts', 'kb', 'network')
        for percentile in ('p50', 'p90', 'p95', 'p99')
    ]
    op.create_table(
        'call_analytics',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('call_id', sa.Uuid(), sa.ForeignKey('calls.id', ondelete='CASCADE'), nullable=False),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('sentiment', sa.String(50), nullable=True),
        sa.Column('success_evaluation', sa.String(50), nullable=True),
        sa.Column('custom_analysis', sa.JSON(), nullable=True),
        *latency_columns,
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('call_id'),
    )

    # =========================================================================
    # Orders, rooms and reservations
    # =========================================================================
    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('customer_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('call_id', sa.Uuid(), sa.ForeignKey('calls.id', ondelete='SET NULL'), nullable=True),
        sa.Column('customer_name', sa.String(255), nullable=False),
        sa.Column('customer_phone', sa.String(50), nullable=True),
        sa.Column('items', sa.Text(), nullable=False),
        sa.Column('total_amount', sa.Float(), nullable=True),
        sa.Column('delivery_address', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', order_status, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('call_id'),
    )
    op.create_index('ix_orders_customer_created', 'orders', ['customer_id', 'created_at'])

    op.create_table(
        'room_types',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'organization_id', sa.Uuid(),
            sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('customer_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_per_night', sa.Float(), nullable=False),
        sa.Column('max_guests', sa.Integer(), nullable=False),
        sa.Column('total_rooms', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_room_types_organization_id', 'room_types', ['organization_id'])

    op.create_table(
        'room_availability',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'room_type_id', sa.Uuid(),
            sa.ForeignKey('room_types.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('is_blocked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint('room_type_id', 'date', name='uq_room_availability_day'),
    )

    op.create_table(
        'reservations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('customer_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('call_id', sa.Uuid(), sa.ForeignKey('calls.id', ondelete='SET NULL'), nullable=True),
        sa.Column('room_type_id', sa.Uuid(), sa.ForeignKey('room_types.id', ondelete='SET NULL'), nullable=True),
        sa.Column('guest_name', sa.String(255), nullable=False),
        sa.Column('guest_phone', sa.String(50), nullable=True),
        sa.Column('guest_email', sa.String(255), nullable=True),
        sa.Column('check_in', sa.Date(), nullable=False),
        sa.Column('check_out', sa.Date(), nullable=False),
        sa.Column('room_type', sa.String(255), nullable=True),
        sa.Column('number_of_guests', sa.Integer(), nullable=False),
        sa.Column('special_requests', sa.Text(), nullable=True),
        sa.Column('status', reservation_status, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('call_id'),
    )
    op.create_index('ix_reservations_room_dates', 'reservations', ['room_type_id', 'check_in', 'check_out'])

    # =========================================================================
    # Knowledge bases
    # =========================================================================
    op.create_table(
        'knowledge_bases',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'organization_id', sa.Uuid(),
            sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('retell_knowledge_base_id', sa.String(100), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('texts', sa.JSON(), nullable=True),
        sa.Column('enable_auto_refresh', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('retell_knowledge_base_id'),
    )
    op.create_index('ix_knowledge_bases_organization_id', 'knowledge_bases', ['organization_id'])

    op.create_table(
        'bot_knowledge_bases',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('bot_id', sa.Uuid(), sa.ForeignKey('bots.id', ondelete='CASCADE'), nullable=False),
        sa.Column(
            'knowledge_base_id', sa.Uuid(),
            sa.ForeignKey('knowledge_bases.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('top_k', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('filter_score', sa.Float(), nullable=False, server_default='0.5'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('bot_id', 'knowledge_base_id', name='uq_bot_knowledge_base'),
    )


def downgrade() -> None:
    """Drop all tables and enum types."""
    for table in (
        'bot_knowledge_bases',
        'knowledge_bases',
        'reservations',
        'room_availability',
        'room_types',
        'orders',
        'call_analytics',
        'webhook_logs',
        'calls',
        'phone_numbers',
        'bot_assignments',
        'bots',
        'api_keys',
        'users',
        'organizations',
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum in (
        reservation_status,
        order_status,
        webhook_event_type,
        call_status,
        customer_type,
        user_role,
    ):
        enum.drop(bind, checkfirst=True)
