"""Create event_series and series_overrides tables

Revision ID: 5e1f0c7a9b24
Revises:
Create Date: 2026-10-19

Recurring meetups are stored as a base occurrence plus RRULE and exception
dates; per-instance changes and cancellations live in series_overrides.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5e1f0c7a9b24'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('event_series',
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('rrule', sa.String(length=500), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('timezone', sa.String(length=64), nullable=False, server_default='Europe/Berlin'),
        sa.Column('exdates', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='published'),
        sa.Column('default_category', sa.String(length=100), nullable=True),
        sa.Column('default_location_name', sa.String(length=200), nullable=True),
        sa.Column('default_location_address', sa.String(length=500), nullable=True),
        sa.Column('default_max_participants', sa.Integer(), nullable=True),
        sa.Column('default_requires_registration', sa.Boolean(), nullable=False,
                  server_default=sa.false()),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('id', sa.CHAR(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('event_series', schema=None) as batch_op:
        batch_op.create_index('ix_event_series_status', ['status'], unique=False)
        batch_op.create_index('ix_event_series_start_date', ['start_date'], unique=False)

    op.create_table('series_overrides',
        sa.Column('series_id', sa.CHAR(length=32), nullable=False),
        sa.Column('instance_date', sa.Date(), nullable=False),
        sa.Column('override_type', sa.String(length=20), nullable=False, server_default='changed'),
        sa.Column('title', sa.String(length=200), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('start_time', sa.Time(), nullable=True),
        sa.Column('end_time', sa.Time(), nullable=True),
        sa.Column('location_name', sa.String(length=200), nullable=True),
        sa.Column('location_address', sa.String(length=500), nullable=True),
        sa.Column('category', sa.String(length=100), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('override_fields', sa.JSON(), nullable=False),
        sa.Column('id', sa.CHAR(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['series_id'], ['event_series.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('series_id', 'instance_date', name='uq_series_override_instance')
    )
    with op.batch_alter_table('series_overrides', schema=None) as batch_op:
        batch_op.create_index('ix_series_overrides_series', ['series_id'], unique=False)


def downgrade() -> None:
    with op.batch_alter_table('series_overrides', schema=None) as batch_op:
        batch_op.drop_index('ix_series_overrides_series')
    op.drop_table('series_overrides')

    with op.batch_alter_table('event_series', schema=None) as batch_op:
        batch_op.drop_index('ix_event_series_start_date')
        batch_op.drop_index('ix_event_series_status')
    op.drop_table('event_series')
