"""initial conference registration schema

Revision ID: c0f1a2b3d4e5
Revises:
Create Date: 2026-07-01 00:00:00.000000

Creates the complete schema from scratch:
- users / session_tokens: delegate and admin accounts, opaque sessions
- registrations: one priced package per delegate plus its payment aggregate
- counters: named sequences (registration numbers, booking numbers)
- accommodations / accommodation_bookings: partner hotels and room bookings
- payments: append-mostly ledger shared by registrations and bookings
- attendance / attendance_scans: entry passes and gate scans
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c0f1a2b3d4e5'
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def upgrade():
    """
    Create all tables.

    WHY: Uniqueness that the business rules depend on (registration number,
    one registration per user, one payment row per gateway order, counter
    name) is enforced here, not only in application code.
    """

    # ============================================================================
    # users: Delegates and admins
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=True),
        sa.Column('gender', sa.String(length=16), nullable=True),
        sa.Column('meal_preference', sa.String(length=32), nullable=True),
        sa.Column('country', sa.String(length=64), nullable=True),
        sa.Column('state', sa.String(length=64), nullable=True),
        sa.Column('city', sa.String(length=64), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('pincode', sa.String(length=16), nullable=True),
        sa.Column('institute_hospital', sa.String(length=255), nullable=True),
        sa.Column('designation', sa.String(length=128), nullable=True),
        sa.Column('medical_council_name', sa.String(length=128), nullable=True),
        sa.Column('medical_council_number', sa.String(length=64), nullable=True),
        sa.Column('membership_id', sa.String(length=64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_profile_complete', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp('created_at'),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sa.UniqueConstraint('phone', name='uq_users_phone'),
        sa.UniqueConstraint('membership_id', name='uq_users_membership_id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=128), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)

    # ============================================================================
    # registrations: Priced package + payment aggregate (one per user)
    # ============================================================================
    op.create_table(
        'registrations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('registration_number', sa.String(length=32), nullable=False),
        sa.Column('registration_type', sa.String(length=32), nullable=False,
                  server_default='CONFERENCE_ONLY'),
        sa.Column('add_workshop', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('selected_workshop', sa.String(length=64), nullable=True),
        sa.Column('add_aoa_course', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('add_life_membership', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('accompanying_persons', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lifetime_membership_id', sa.String(length=32), nullable=True),
        sa.Column('booking_phase', sa.String(length=16), nullable=False),
        sa.Column('base_price', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('workshop_add_on', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('aoa_course_base', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('aoa_course_gst', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('life_membership_base', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('accompanying_base', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('accompanying_gst', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('coupon_code', sa.String(length=32), nullable=True),
        sa.Column('coupon_discount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('coupon_applied_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('package_base', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('package_gst', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_base', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_gst', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('subtotal_with_gst', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('processing_fee', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('total_paid', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('gateway_order_id', sa.String(length=64), nullable=True),
        sa.Column('gateway_payment_id', sa.String(length=64), nullable=True),
        sa.Column('payment_email_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_email_failed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_email_error', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', name='uq_registrations_user'),
        sa.UniqueConstraint('registration_number', name='uq_registrations_number'),
        sa.UniqueConstraint('lifetime_membership_id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_registrations_status_phase', 'registrations', ['payment_status', 'booking_phase'])
    op.create_index('ix_registrations_payment_status', 'registrations', ['payment_status'])
    op.create_index('ix_registrations_add_aoa_course', 'registrations', ['add_aoa_course'])

    # ============================================================================
    # counters: Named atomic sequences
    # ============================================================================
    op.create_table(
        'counters',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('seq', sa.Integer(), nullable=False, server_default='0'),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uq_counters_name'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # accommodations / accommodation_bookings
    # ============================================================================
    op.create_table(
        'accommodations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_per_night', sa.Integer(), nullable=False),
        sa.Column('total_rooms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('available_rooms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_accommodations_is_active', 'accommodations', ['is_active'])

    op.create_table(
        'accommodation_bookings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('booking_number', sa.String(length=32), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('accommodation_id', sa.Integer(), nullable=False),
        sa.Column('check_in_date', sa.Date(), nullable=False),
        sa.Column('check_out_date', sa.Date(), nullable=False),
        sa.Column('number_of_nights', sa.Integer(), nullable=False),
        sa.Column('number_of_guests', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('rooms_booked', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('special_requests', sa.Text(), nullable=True),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('booking_status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('gateway_order_id', sa.String(length=64), nullable=True),
        sa.Column('gateway_payment_id', sa.String(length=64), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['accommodation_id'], ['accommodations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('booking_number', name='uq_accommodation_bookings_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_accommodation_bookings_user_id', 'accommodation_bookings', ['user_id'])
    op.create_index('ix_accommodation_bookings_accommodation_id', 'accommodation_bookings', ['accommodation_id'])
    op.create_index('ix_accommodation_bookings_payment_status', 'accommodation_bookings', ['payment_status'])

    # ============================================================================
    # payments: Ledger (one row per gateway order)
    # ============================================================================
    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('registration_id', sa.Integer(), nullable=True),
        sa.Column('accommodation_booking_id', sa.Integer(), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False, server_default='INR'),
        sa.Column('payment_type', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='CREATED'),
        sa.Column('gateway_order_id', sa.String(length=64), nullable=False),
        sa.Column('gateway_payment_id', sa.String(length=64), nullable=True),
        sa.Column('gateway_signature', sa.String(length=128), nullable=True),
        sa.Column('captured_via', sa.String(length=16), nullable=True),
        sa.Column('captured_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failure_reason', sa.String(length=255), nullable=True),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['registration_id'], ['registrations.id']),
        sa.ForeignKeyConstraint(['accommodation_booking_id'], ['accommodation_bookings.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('gateway_order_id', name='uq_payments_gateway_order'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_payments_user_id', 'payments', ['user_id'])
    op.create_index('ix_payments_accommodation_booking_id', 'payments', ['accommodation_booking_id'])
    op.create_index('ix_payments_status', 'payments', ['status'])
    op.create_index('ix_payments_registration_status', 'payments', ['registration_id', 'status'])

    # ============================================================================
    # attendance / attendance_scans: Entry passes
    # ============================================================================
    op.create_table(
        'attendance',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('registration_id', sa.Integer(), nullable=False),
        sa.Column('qr_code_data', sa.String(length=64), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('total_scans', sa.Integer(), nullable=False, server_default='0'),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['registration_id'], ['registrations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('registration_id', name='uq_attendance_registration'),
        sa.UniqueConstraint('qr_code_data', name='uq_attendance_qr'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'attendance_scans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('attendance_id', sa.Integer(), nullable=False),
        sa.Column('scanned_by_user_id', sa.Integer(), nullable=True),
        sa.Column('scanned_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('location', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('count', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['attendance_id'], ['attendance.id']),
        sa.ForeignKeyConstraint(['scanned_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_attendance_scans_attendance_id', 'attendance_scans', ['attendance_id'])


def downgrade():
    op.drop_index('ix_attendance_scans_attendance_id', table_name='attendance_scans')
    op.drop_table('attendance_scans')
    op.drop_table('attendance')

    op.drop_index('ix_payments_registration_status', table_name='payments')
    op.drop_index('ix_payments_status', table_name='payments')
    op.drop_index('ix_payments_accommodation_booking_id', table_name='payments')
    op.drop_index('ix_payments_user_id', table_name='payments')
    op.drop_table('payments')

    op.drop_index('ix_accommodation_bookings_payment_status', table_name='accommodation_bookings')
    op.drop_index('ix_accommodation_bookings_accommodation_id', table_name='accommodation_bookings')
    op.drop_index('ix_accommodation_bookings_user_id', table_name='accommodation_bookings')
    op.drop_table('accommodation_bookings')
    op.drop_index('ix_accommodations_is_active', table_name='accommodations')
    op.drop_table('accommodations')

    op.drop_table('counters')

    op.drop_index('ix_registrations_add_aoa_course', table_name='registrations')
    op.drop_index('ix_registrations_payment_status', table_name='registrations')
    op.drop_index('ix_registrations_status_phase', table_name='registrations')
    op.drop_table('registrations')

    op.drop_index('ix_session_tokens_token_hash', table_name='session_tokens')
    op.drop_index('ix_session_tokens_user_id', table_name='session_tokens')
    op.drop_table('session_tokens')

    op.drop_index('ix_users_role', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
