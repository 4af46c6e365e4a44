"""Create queue tables

Revision ID: 001_queue_tables
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001_queue_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create branches, queue_tickets and queue_events"""

    # ====================
    # BRANCHES TABLE
    # ====================
    op.create_table(
        'branches',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('code', sa.String(20), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('max_capacity', sa.Integer(), nullable=False),
        sa.Column('occupied', sa.Integer(), server_default='0', nullable=False,
                  comment='Written only by CapacityGuard'),
        sa.Column('ticket_counter', sa.Integer(), server_default='0', nullable=False),
        sa.Column('is_operational', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('max_capacity > 0', name='ck_branches_max_capacity_positive'),
        sa.CheckConstraint('occupied >= 0', name='ck_branches_occupied_non_negative'),
        sa.CheckConstraint('occupied <= max_capacity', name='ck_branches_occupied_within_capacity'),
    )
    op.create_index('ix_branches_code', 'branches', ['code'], unique=True)

    # ====================
    # QUEUE TICKETS TABLE
    # ====================
    op.create_table(
        'queue_tickets',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('ticket_number', sa.Integer(), nullable=False,
                  comment='Per-branch sequence assigned with the capacity reservation'),
        sa.Column('branch_id', sa.Uuid(), sa.ForeignKey('branches.id'), nullable=False),
        sa.Column('service_type', sa.String(100), nullable=False),
        sa.Column('customer_id', sa.String(100), nullable=True),
        sa.Column('customer_name', sa.String(100), nullable=True),
        sa.Column('customer_phone', sa.String(30), nullable=True),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('priority', sa.Integer(), server_default='1', nullable=False,
                  comment='Higher serves first'),
        sa.Column('status', sa.String(20), server_default='WAITING', nullable=False,
                  comment='WAITING, CALLED, SERVING, COMPLETED, CANCELLED, NO_SHOW'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('called_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('served_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('no_show_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('branch_id', 'ticket_number', name='uq_queue_tickets_branch_number'),
    )
    op.create_index('ix_queue_tickets_branch_id', 'queue_tickets', ['branch_id'])
    op.create_index(
        'ix_queue_tickets_branch_status_priority',
        'queue_tickets',
        ['branch_id', 'status', 'priority', 'issued_at'],
    )

    # ====================
    # QUEUE EVENTS TABLE (append-only)
    # ====================
    op.create_table(
        'queue_events',
        sa.Column('id', sa.BigInteger().with_variant(sa.Integer(), 'sqlite'), primary_key=True, autoincrement=True),
        sa.Column('ticket_id', sa.Uuid(), sa.ForeignKey('queue_tickets.id'), nullable=False),
        sa.Column('branch_id', sa.Uuid(), nullable=False),
        sa.Column('event_type', sa.String(20), nullable=False,
                  comment='CREATED, CALLED, SERVING, COMPLETED, CANCELLED, NO_SHOW'),
        sa.Column('from_status', sa.String(20), nullable=True),
        sa.Column('event_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('staff_id', sa.String(100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
    )
    op.create_index('ix_queue_events_ticket_id', 'queue_events', ['ticket_id'])
    op.create_index('ix_queue_events_branch_id', 'queue_events', ['branch_id'])


def downgrade():
    """Drop queue tables"""
    op.drop_index('ix_queue_events_branch_id', table_name='queue_events')
    op.drop_index('ix_queue_events_ticket_id', table_name='queue_events')
    op.drop_table('queue_events')

    op.drop_index('ix_queue_tickets_branch_status_priority', table_name='queue_tickets')
    op.drop_index('ix_queue_tickets_branch_id', table_name='queue_tickets')
    op.drop_table('queue_tickets')

    op.drop_index('ix_branches_code', table_name='branches')
    op.drop_table('branches')
