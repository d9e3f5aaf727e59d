"""scheduling core tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:01:00
"""

from alembic import op
import sqlalchemy as sa


revision = '20261019_0001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'centers',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('name', sa.String(length=180), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('tutor_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
    )
    op.create_index('ix_centers_name', 'centers', ['name'])
    op.create_index('ix_centers_created_at', 'centers', ['created_at'])

    op.create_table(
        'tutors',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('full_name', sa.String(length=180), nullable=False, server_default=''),
        sa.Column('email', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('verification_status', sa.String(length=20), nullable=False, server_default='not_verified'),
        sa.Column('center_id', sa.String(length=36), sa.ForeignKey('centers.id'), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
    )
    op.create_index('ix_tutors_full_name', 'tutors', ['full_name'])
    op.create_index('ix_tutors_verification_status', 'tutors', ['verification_status'])
    op.create_index('ix_tutors_center_id', 'tutors', ['center_id'])
    op.create_index('ix_tutors_created_at', 'tutors', ['created_at'])

    op.create_table(
        'contracts',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('child_id', sa.String(length=36), nullable=False),
        sa.Column('package_id', sa.String(length=36), nullable=False),
        sa.Column('center_id', sa.String(length=36), sa.ForeignKey('centers.id'), nullable=True),
        sa.Column('main_tutor_id', sa.String(length=36), sa.ForeignKey('tutors.id'), nullable=True),
        sa.Column('substitute_tutor1_id', sa.String(length=36), sa.ForeignKey('tutors.id'), nullable=True),
        sa.Column('substitute_tutor2_id', sa.String(length=36), sa.ForeignKey('tutors.id'), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.String(length=10), nullable=False, server_default=''),
        sa.Column('end_time', sa.String(length=10), nullable=False, server_default=''),
        sa.Column('is_online', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
    )
    for column in ('child_id', 'package_id', 'center_id', 'main_tutor_id', 'substitute_tutor1_id', 'substitute_tutor2_id', 'status', 'created_at'):
        op.create_index(f'ix_contracts_{column}', 'contracts', [column])
    op.create_index('ix_contracts_status_created', 'contracts', ['status', 'created_at'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('contract_id', sa.String(length=36), sa.ForeignKey('contracts.id'), nullable=False),
        sa.Column('session_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.String(length=10), nullable=False),
        sa.Column('end_time', sa.String(length=10), nullable=False),
        sa.Column('tutor_id', sa.String(length=36), sa.ForeignKey('tutors.id'), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='scheduled'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
    )
    for column in ('contract_id', 'session_date', 'tutor_id', 'status'):
        op.create_index(f'ix_bookings_{column}', 'bookings', [column])
    op.create_index('ix_bookings_tutor_date', 'bookings', ['tutor_id', 'session_date'])

    op.create_table(
        'reschedule_requests',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('booking_id', sa.String(length=36), sa.ForeignKey('bookings.id'), nullable=False),
        sa.Column('contract_id', sa.String(length=36), sa.ForeignKey('contracts.id'), nullable=False),
        sa.Column('requested_by', sa.String(length=20), nullable=False, server_default='parent'),
        sa.Column('request_type', sa.String(length=20), nullable=False, server_default='reschedule'),
        sa.Column('original_session_date', sa.String(length=40), nullable=False, server_default=''),
        sa.Column('original_start_time', sa.String(length=40), nullable=False, server_default=''),
        sa.Column('original_end_time', sa.String(length=40), nullable=False, server_default=''),
        sa.Column('original_tutor_id', sa.String(length=36), nullable=True),
        sa.Column('requested_date', sa.Date(), nullable=True),
        sa.Column('requested_start_time', sa.String(length=10), nullable=True),
        sa.Column('requested_end_time', sa.String(length=10), nullable=True),
        sa.Column('requested_tutor_id', sa.String(length=36), nullable=True),
        sa.Column('reason', sa.Text(), nullable=False, server_default=''),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('approved_tutor_id', sa.String(length=36), nullable=True),
        sa.Column('staff_note', sa.Text(), nullable=False, server_default=''),
        sa.Column('rejected_reason', sa.Text(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
    )
    for column in ('booking_id', 'contract_id', 'requested_by', 'status', 'created_at'):
        op.create_index(f'ix_reschedule_requests_{column}', 'reschedule_requests', [column])
    op.create_index('ix_reschedule_requests_status_created', 'reschedule_requests', ['status', 'created_at'])
    op.create_index(
        'uq_reschedule_requests_pending_booking',
        'reschedule_requests',
        ['booking_id'],
        unique=True,
        sqlite_where=sa.text("status = 'pending'"),
        postgresql_where=sa.text("status = 'pending'"),
    )

    op.create_table(
        'refund_instructions',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('booking_id', sa.String(length=36), sa.ForeignKey('bookings.id'), nullable=False),
        sa.Column('contract_id', sa.String(length=36), sa.ForeignKey('contracts.id'), nullable=False),
        sa.Column('request_id', sa.String(length=36), sa.ForeignKey('reschedule_requests.id'), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=False, server_default=''),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('booking_id', name='uq_refund_instructions_booking'),
    )
    for column in ('booking_id', 'contract_id', 'request_id', 'status', 'created_at'):
        op.create_index(f'ix_refund_instructions_{column}', 'refund_instructions', [column])


def downgrade() -> None:
    for column in ('booking_id', 'contract_id', 'request_id', 'status', 'created_at'):
        op.drop_index(f'ix_refund_instructions_{column}', table_name='refund_instructions')
    op.drop_table('refund_instructions')

    op.drop_index('uq_reschedule_requests_pending_booking', table_name='reschedule_requests')
    op.drop_index('ix_reschedule_requests_status_created', table_name='reschedule_requests')
    for column in ('booking_id', 'contract_id', 'requested_by', 'status', 'created_at'):
        op.drop_index(f'ix_reschedule_requests_{column}', table_name='reschedule_requests')
    op.drop_table('reschedule_requests')

    op.drop_index('ix_bookings_tutor_date', table_name='bookings')
    for column in ('contract_id', 'session_date', 'tutor_id', 'status'):
        op.drop_index(f'ix_bookings_{column}', table_name='bookings')
    op.drop_table('bookings')

    op.drop_index('ix_contracts_status_created', table_name='contracts')
    for column in ('child_id', 'package_id', 'center_id', 'main_tutor_id', 'substitute_tutor1_id', 'substitute_tutor2_id', 'status', 'created_at'):
        op.drop_index(f'ix_contracts_{column}', table_name='contracts')
    op.drop_table('contracts')

    for column in ('full_name', 'verification_status', 'center_id', 'created_at'):
        op.drop_index(f'ix_tutors_{column}', table_name='tutors')
    op.drop_table('tutors')

    op.drop_index('ix_centers_created_at', table_name='centers')
    op.drop_index('ix_centers_name', table_name='centers')
    op.drop_table('centers')
