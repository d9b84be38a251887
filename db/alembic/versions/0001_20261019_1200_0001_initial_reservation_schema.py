"""Initial reservation schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Create charters table
    op.create_table('charters',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('captain_id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price_half_day', sa.Integer(), nullable=False),
        sa.Column('price_full_day', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('price_updated_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('price_half_day >= 0', name='ck_charter_price_half_day_non_negative'),
        sa.CheckConstraint('price_full_day >= 0', name='ck_charter_price_full_day_non_negative'),
        sa.CheckConstraint('length(currency) = 3', name='ck_charter_currency_length'),
        sa.CheckConstraint('length(captain_id) > 0', name='ck_charter_captain_id_not_empty'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_charters_captain_id'), 'charters', ['captain_id'], unique=False)

    # Create calendar_entries table
    op.create_table('calendar_entries',
        sa.Column('captain_id', sa.String(length=64), nullable=False),
        sa.Column('slot_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('holder_booking_id', sa.Uuid(), nullable=True),
        sa.Column('hold_expires_at', sa.DateTime(), nullable=True),
        sa.Column('block_reason', sa.String(length=255), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "status in ('available', 'pending_hold', 'booked', 'blocked')",
            name='ck_calendar_status_valid'
        ),
        sa.CheckConstraint(
            "(status = 'pending_hold') = (hold_expires_at IS NOT NULL)",
            name='ck_calendar_hold_expiry_only_when_pending'
        ),
        sa.CheckConstraint(
            "(status in ('pending_hold', 'booked')) = (holder_booking_id IS NOT NULL)",
            name='ck_calendar_holder_only_when_held'
        ),
        sa.PrimaryKeyConstraint('captain_id', 'slot_date')
    )
    op.create_index('ix_calendar_pending_expiry', 'calendar_entries', ['status', 'hold_expires_at'], unique=False)

    # Create bookings table
    op.create_table('bookings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('charter_id', sa.Uuid(), nullable=False),
        sa.Column('captain_id', sa.String(length=64), nullable=False),
        sa.Column('customer_ref', sa.String(length=128), nullable=False),
        sa.Column('booking_date', sa.Date(), nullable=False),
        sa.Column('duration', sa.String(length=20), nullable=False),
        sa.Column('party_size', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('stage', sa.String(length=20), nullable=False),
        sa.Column('base_price', sa.Integer(), nullable=False),
        sa.Column('discount', sa.Integer(), nullable=False),
        sa.Column('final_price', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('referral_code', sa.String(length=32), nullable=True),
        sa.Column('payment_session_id', sa.String(length=255), nullable=True),
        sa.Column('checkout_url', sa.String(length=1024), nullable=True),
        sa.Column('handoff_attempts', sa.Integer(), nullable=False),
        sa.Column('failure_reason', sa.String(length=255), nullable=True),
        sa.Column('hold_expires_at', sa.DateTime(), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('base_price >= 0', name='ck_booking_base_price_non_negative'),
        sa.CheckConstraint('discount >= 0', name='ck_booking_discount_non_negative'),
        sa.CheckConstraint('final_price >= 0', name='ck_booking_final_price_non_negative'),
        sa.CheckConstraint('final_price <= base_price', name='ck_booking_final_price_lte_base'),
        sa.CheckConstraint('party_size > 0', name='ck_booking_party_size_positive'),
        sa.CheckConstraint('length(customer_ref) > 0', name='ck_booking_customer_ref_not_empty'),
        sa.ForeignKeyConstraint(['charter_id'], ['charters.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_bookings_charter_id'), 'bookings', ['charter_id'], unique=False)
    op.create_index(op.f('ix_bookings_customer_ref'), 'bookings', ['customer_ref'], unique=False)
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'], unique=False)
    op.create_index(op.f('ix_bookings_stage'), 'bookings', ['stage'], unique=False)
    op.create_index('ix_bookings_slot', 'bookings', ['captain_id', 'booking_date'], unique=False)
    op.create_index(
        'uq_bookings_confirmed_slot', 'bookings', ['captain_id', 'booking_date'],
        unique=True,
        postgresql_where=sa.text("status = 'confirmed'")
    )

    # Create waitlist_entries table
    op.create_table('waitlist_entries',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('charter_id', sa.Uuid(), nullable=False),
        sa.Column('captain_id', sa.String(length=64), nullable=False),
        sa.Column('requested_date', sa.Date(), nullable=False),
        sa.Column('customer_ref', sa.String(length=128), nullable=False),
        sa.Column('party_size', sa.Integer(), nullable=False),
        sa.Column('contact_email', sa.String(length=255), nullable=False),
        sa.Column('contact_phone', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('joined_at', sa.DateTime(), nullable=False),
        sa.Column('notified_at', sa.DateTime(), nullable=True),
        sa.Column('response_deadline', sa.DateTime(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('booking_id', sa.Uuid(), nullable=True),
        sa.CheckConstraint('length(customer_ref) > 0', name='ck_waitlist_customer_ref_not_empty'),
        sa.CheckConstraint('party_size > 0', name='ck_waitlist_party_size_positive'),
        sa.ForeignKeyConstraint(['charter_id'], ['charters.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_waitlist_entries_customer_ref'), 'waitlist_entries', ['customer_ref'], unique=False)
    op.create_index(
        'ix_waitlist_slot_queue', 'waitlist_entries',
        ['captain_id', 'requested_date', 'status', 'joined_at'], unique=False
    )
    op.create_index(
        'uq_waitlist_open_customer', 'waitlist_entries', ['charter_id', 'requested_date', 'customer_ref'],
        unique=True,
        postgresql_where=sa.text("status in ('waiting', 'notified')")
    )
    op.create_index(
        'uq_waitlist_single_offer', 'waitlist_entries', ['captain_id', 'requested_date'],
        unique=True,
        postgresql_where=sa.text("status = 'notified'")
    )

    # Create referral tables
    op.create_table('referral_codes',
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('discount_amount', sa.Integer(), nullable=False),
        sa.Column('multi_use', sa.Boolean(), nullable=False),
        sa.Column('max_redemptions', sa.Integer(), nullable=True),
        sa.Column('times_redeemed', sa.Integer(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('discount_amount > 0', name='ck_referral_discount_positive'),
        sa.CheckConstraint('times_redeemed >= 0', name='ck_referral_times_redeemed_non_negative'),
        sa.CheckConstraint(
            'max_redemptions IS NULL OR times_redeemed <= max_redemptions',
            name='ck_referral_within_cap'
        ),
        sa.PrimaryKeyConstraint('code')
    )

    op.create_table('referral_redemptions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('referral_code', sa.String(length=32), nullable=False),
        sa.Column('customer_ref', sa.String(length=128), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('exclusive', sa.Boolean(), nullable=False),
        sa.Column('state', sa.String(length=20), nullable=False),
        sa.Column('reserved_at', sa.DateTime(), nullable=False),
        sa.Column('redeemed_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint("state IN ('reserved', 'redeemed')", name='ck_referral_redemption_state'),
        sa.ForeignKeyConstraint(['referral_code'], ['referral_codes.code'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('booking_id')
    )
    op.create_index(
        'ix_referral_redemptions_code_customer', 'referral_redemptions',
        ['referral_code', 'customer_ref'], unique=False
    )
    op.create_index(
        'uq_referral_single_use_per_customer', 'referral_redemptions', ['referral_code', 'customer_ref'],
        unique=True,
        postgresql_where=sa.text('exclusive')
    )

    # Create price_alerts table
    op.create_table('price_alerts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('charter_id', sa.Uuid(), nullable=False),
        sa.Column('customer_ref', sa.String(length=128), nullable=False),
        sa.Column('duration', sa.String(length=20), nullable=False),
        sa.Column('target_price', sa.Integer(), nullable=False),
        sa.Column('price_at_creation', sa.Integer(), nullable=False),
        sa.Column('last_seen_price', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('trigger_count', sa.Integer(), nullable=False),
        sa.Column('last_triggered_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('target_price >= 0', name='ck_price_alert_target_non_negative'),
        sa.CheckConstraint('target_price < price_at_creation', name='ck_price_alert_target_below_creation'),
        sa.CheckConstraint('length(customer_ref) > 0', name='ck_price_alert_customer_ref_not_empty'),
        sa.ForeignKeyConstraint(['charter_id'], ['charters.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_price_alerts_customer_ref'), 'price_alerts', ['customer_ref'], unique=False)
    op.create_index('ix_price_alerts_charter_status', 'price_alerts', ['charter_id', 'status'], unique=False)

    # Create idempotency_records table
    op.create_table('idempotency_records',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('idempotency_key', sa.String(length=255), nullable=False),
        sa.Column('operation', sa.String(length=100), nullable=False),
        sa.Column('request_body_hash', sa.String(length=64), nullable=False),
        sa.Column('response_status_code', sa.Integer(), nullable=False),
        sa.Column('response_body', sa.Text(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('length(idempotency_key) > 0', name='ck_idempotency_key_not_empty'),
        sa.CheckConstraint('length(request_body_hash) = 64', name='ck_idempotency_hash_length'),
        sa.CheckConstraint('response_status_code >= 100', name='ck_idempotency_status_code_valid'),
        sa.CheckConstraint('response_status_code <= 599', name='ck_idempotency_status_code_max'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key', 'operation', name='uq_idempotency_key_operation')
    )
    op.create_index(op.f('ix_idempotency_records_idempotency_key'), 'idempotency_records', ['idempotency_key'], unique=False)
    op.create_index(op.f('ix_idempotency_records_expires_at'), 'idempotency_records', ['expires_at'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('idempotency_records')
    op.drop_table('price_alerts')
    op.drop_table('referral_redemptions')
    op.drop_table('referral_codes')
    op.drop_table('waitlist_entries')
    op.drop_table('bookings')
    op.drop_table('calendar_entries')
    op.drop_table('charters')
