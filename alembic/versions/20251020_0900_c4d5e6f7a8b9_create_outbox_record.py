"""create_outbox_record

Revision ID: c4d5e6f7a8b9
Revises:
Create Date: 2025-10-20 09:00:00.000000

"""
from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = 'c4d5e6f7a8b9'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create outbox_record table for the transactional outbox."""
    op.create_table(
        'outbox_record',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),

        # Routing
        sa.Column('aggregate_type', sa.String(length=100), nullable=False),
        sa.Column('aggregate_id', sa.String(length=255), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('topic', sa.String(length=100), nullable=False),

        # Event payload (JSON)
        sa.Column('payload', sa.Text(), nullable=False),

        # Delivery state
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),

        # Optimistic concurrency
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),

        sa.PrimaryKeyConstraint('id', name=op.f('pk_outbox_record'))
    )

    # Drainer fetch: WHERE status = 'PENDING' ORDER BY created_at
    op.create_index(
        'ix_outbox_record_status_created',
        'outbox_record',
        ['status', 'created_at'],
        unique=False
    )

    # All records of one aggregate
    op.create_index(
        'ix_outbox_record_aggregate',
        'outbox_record',
        ['aggregate_type', 'aggregate_id'],
        unique=False
    )


def downgrade() -> None:
    """Drop outbox_record table."""
    op.drop_index('ix_outbox_record_aggregate', table_name='outbox_record')
    op.drop_index('ix_outbox_record_status_created', table_name='outbox_record')
    op.drop_table('outbox_record')
