"""Create pool analytics table

Revision ID: 20261018_000002
Revises: 20261018_000001
Create Date: 2026-10-18 00:00:02.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = '20261018_000002'
down_revision: Union[str, None] = '20261018_000001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'pool_analytics',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('location', sa.String(128), nullable=False),
        sa.Column('date_bucket', sa.Date(), nullable=False),
        sa.Column('total_requests', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('active_requests', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('matched_requests', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expired_requests', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('location', 'date_bucket', name='uq_pool_analytics_location_date'),
    )
    op.create_index('idx_pool_analytics_date_bucket', 'pool_analytics', ['date_bucket'])


def downgrade() -> None:
    op.drop_index('idx_pool_analytics_date_bucket', table_name='pool_analytics')
    op.drop_table('pool_analytics')
