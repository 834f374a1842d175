"""create call request tables

Revision ID: 4b7e2c91d0a3
Revises:
Create Date: 2026-10-19 09:12:41.508113

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '4b7e2c91d0a3'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

STATUS_VALUES = "'pending', 'assigned', 'scheduled', 'in_progress', 'completed', 'cancelled', 'no_show', 'rescheduled'"


def upgrade() -> None:
    """Upgrade schema."""
    # Needed for the equality part of the booking exclusion constraint
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist;")

    # 1. call_requests
    op.create_table(
        'call_requests',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('request_number', sa.String(32), nullable=False, unique=True),
        sa.Column('subscriber_id', sa.String(36), nullable=False),
        sa.Column('assigned_provider_id', sa.String(36), nullable=True),
        sa.Column('consultation_type', sa.String, nullable=True),
        sa.Column('purpose', sa.Text, nullable=False),
        sa.Column('preferred_date', sa.Date, nullable=True),
        sa.Column('preferred_time', sa.String(16), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scheduled_duration', sa.Integer, nullable=True),
        sa.Column('scheduled_end_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('call_platform', sa.String(32), nullable=True),
        sa.Column('call_link', sa.Text, nullable=True),
        sa.Column('call_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('call_ended_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('actual_duration', sa.Integer, nullable=True),
        sa.Column('recording_url', sa.Text, nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        sa.CheckConstraint(f"status IN ({STATUS_VALUES})", name='check_call_request_status'),
        sa.CheckConstraint(
            "(scheduled_at IS NULL AND scheduled_duration IS NULL) OR "
            "(scheduled_at IS NOT NULL AND scheduled_duration IS NOT NULL)",
            name='check_call_request_schedule_pair',
        ),
    )

    op.create_index('ix_call_requests_subscriber_id', 'call_requests', ['subscriber_id'])
    op.create_index('ix_call_requests_assigned_provider_id', 'call_requests', ['assigned_provider_id'])
    op.create_index('ix_call_requests_status', 'call_requests', ['status'])
    op.create_index('ix_call_requests_provider_schedule', 'call_requests', ['assigned_provider_id', 'scheduled_at'])

    # A provider can hold only one booked call per instant
    op.execute("""
        ALTER TABLE call_requests ADD CONSTRAINT excl_call_requests_provider_booking
        EXCLUDE USING gist (
            assigned_provider_id WITH =,
            tstzrange(scheduled_at, scheduled_end_at, '[)') WITH &&
        ) WHERE (status IN ('in_progress', 'scheduled') AND deleted_at IS NULL);
    """)

    # 2. call_status_history
    op.create_table(
        'call_status_history',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('call_request_id', sa.String(36), sa.ForeignKey('call_requests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sequence', sa.Integer, nullable=False),
        sa.Column('from_status', sa.String(20), nullable=True),
        sa.Column('to_status', sa.String(20), nullable=False),
        sa.Column('reason', sa.Text, nullable=True),
        sa.Column('changed_by', sa.String(36), nullable=True),
        sa.Column('changed_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.UniqueConstraint('call_request_id', 'sequence', name='uq_call_status_history_sequence'),
    )

    op.create_index('ix_call_status_history_call_changed', 'call_status_history', ['call_request_id', 'changed_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_call_status_history_call_changed', 'call_status_history')
    op.drop_table('call_status_history')

    op.execute("ALTER TABLE call_requests DROP CONSTRAINT IF EXISTS excl_call_requests_provider_booking;")
    op.drop_index('ix_call_requests_provider_schedule', 'call_requests')
    op.drop_index('ix_call_requests_status', 'call_requests')
    op.drop_index('ix_call_requests_assigned_provider_id', 'call_requests')
    op.drop_index('ix_call_requests_subscriber_id', 'call_requests')
    op.drop_table('call_requests')
