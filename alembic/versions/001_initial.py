"""001 Booking schema - availability, reservation requests, reservations, event outbox

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'availability',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('accommodation_id', sa.String(36), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('price_type', sa.String(20), nullable=False, server_default='NORMAL'),
        sa.Column('status', sa.String(20), nullable=False, server_default='AVAILABLE'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint('start_date <= end_date', name='ck_availability_date_order'),
        sa.CheckConstraint('price >= 0', name='ck_availability_price_non_negative'),
    )
    op.create_index('ix_availability_accommodation_start', 'availability', ['accommodation_id', 'start_date'])
    op.create_index('ix_availability_accommodation_status', 'availability', ['accommodation_id', 'status'])

    op.create_table(
        'reservation_requests',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('accommodation_id', sa.String(36), nullable=False),
        sa.Column('guest_id', sa.String(36), nullable=False),
        sa.Column('guest_email', sa.String(255), nullable=True),
        sa.Column('guest_first_name', sa.String(100), nullable=True),
        sa.Column('guest_last_name', sa.String(100), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('guest_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('start_date <= end_date', name='ck_request_date_order'),
    )
    op.create_index('ix_request_accommodation_status', 'reservation_requests', ['accommodation_id', 'status'])
    op.create_index('ix_request_guest', 'reservation_requests', ['guest_id'])

    op.create_table(
        'reservations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('request_id', sa.String(36),
                  sa.ForeignKey('reservation_requests.id', ondelete='CASCADE'),
                  nullable=False, unique=True),
        sa.Column('confirmed_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('status', sa.String(20), nullable=False, server_default='CONFIRMED'),
    )
    op.create_index('ix_reservation_status', 'reservations', ['status'])

    op.create_table(
        'event_outbox',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('sequence', sa.BigInteger(), nullable=False),
        sa.Column('topic', sa.String(100), nullable=False),
        sa.Column('message_key', sa.String(100), nullable=False),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(20), server_default='pending'),
        sa.Column('attempts', sa.Integer(), server_default='0'),
        sa.Column('max_attempts', sa.Integer(), server_default='5'),
        sa.Column('next_attempt_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_event_outbox_status_next', 'event_outbox', ['status', 'next_attempt_at'])
    op.create_index('ix_event_outbox_topic', 'event_outbox', ['topic'])
    op.create_index('ix_event_outbox_key_sequence', 'event_outbox', ['message_key', 'sequence'])


def downgrade():
    op.drop_index('ix_event_outbox_key_sequence', table_name='event_outbox')
    op.drop_index('ix_event_outbox_topic', table_name='event_outbox')
    op.drop_index('ix_event_outbox_status_next', table_name='event_outbox')
    op.drop_table('event_outbox')

    op.drop_index('ix_reservation_status', table_name='reservations')
    op.drop_table('reservations')

    op.drop_index('ix_request_guest', table_name='reservation_requests')
    op.drop_index('ix_request_accommodation_status', table_name='reservation_requests')
    op.drop_table('reservation_requests')

    op.drop_index('ix_availability_accommodation_status', table_name='availability')
    op.drop_index('ix_availability_accommodation_start', table_name='availability')
    op.drop_table('availability')
