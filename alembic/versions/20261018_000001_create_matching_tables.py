"""Create rental request matching tables

Revision ID: 20261018_000001
Revises:
Create Date: 2026-10-18 00:00:01.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = '20261018_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    pool_status_enum = postgresql.ENUM('active', 'matched', 'expired', name='pool_status_enum', create_type=False)
    pool_status_enum.create(op.get_bind(), checkfirst=True)

    property_status_enum = postgresql.ENUM(
        'available', 'rented', 'maintenance', 'inactive',
        name='property_status_enum', create_type=False
    )
    property_status_enum.create(op.get_bind(), checkfirst=True)

    member_role_enum = postgresql.ENUM('owner', 'member', name='member_role_enum', create_type=False)
    member_role_enum.create(op.get_bind(), checkfirst=True)

    match_status_enum = postgresql.ENUM('active', 'below_threshold', name='match_status_enum', create_type=False)
    match_status_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        'counterparties',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('is_personal', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )

    op.create_table(
        'counterparty_members',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('counterparty_id', sa.Uuid(), sa.ForeignKey('counterparties.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('role', member_role_enum, nullable=False, server_default='owner'),
        sa.Column('average_rating', sa.Numeric(3, 2), nullable=False, server_default='0'),
        sa.Column('review_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_active_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_suspended', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint('average_rating >= 0 AND average_rating <= 5', name='check_average_rating_range'),
        sa.CheckConstraint('review_count >= 0', name='check_review_count_non_negative'),
    )
    op.create_index('idx_counterparty_members_counterparty_id', 'counterparty_members', ['counterparty_id'])
    op.create_index('idx_counterparty_members_user_id', 'counterparty_members', ['user_id'])

    op.create_table(
        'properties',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('counterparty_id', sa.Uuid(), sa.ForeignKey('counterparties.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('city', sa.String(128), nullable=False),
        sa.Column('address', sa.String(512), nullable=True),
        sa.Column('city_token', sa.String(128), nullable=False, server_default=''),
        sa.Column('monthly_rent', sa.Numeric(12, 2), nullable=False),
        sa.Column('property_type', sa.String(64), nullable=True),
        sa.Column('bedrooms', sa.Integer(), nullable=True),
        sa.Column('available_from', sa.Date(), nullable=True),
        sa.Column('status', property_status_enum, nullable=False, server_default='available'),
        sa.Column('availability', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint('monthly_rent >= 0', name='check_monthly_rent_non_negative'),
    )
    op.create_index('idx_properties_counterparty_id', 'properties', ['counterparty_id'])
    op.create_index('idx_properties_city_token', 'properties', ['city_token'])
    op.create_index('idx_properties_matchable', 'properties', ['status', 'availability', 'monthly_rent'])

    op.create_table(
        'rental_requests',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('location', sa.Text(), nullable=False),
        sa.Column('location_normalized', sa.Text(), nullable=False, server_default=''),
        sa.Column('city_token', sa.String(128), nullable=False, server_default=''),
        sa.Column('budget_from', sa.Numeric(12, 2), nullable=True),
        sa.Column('budget_to', sa.Numeric(12, 2), nullable=True),
        sa.Column('budget', sa.Numeric(12, 2), nullable=True),
        sa.Column('property_type', sa.String(64), nullable=True),
        sa.Column('bedrooms', sa.Integer(), nullable=True),
        sa.Column('move_in_date', sa.Date(), nullable=False),
        sa.Column('pool_status', pool_status_enum, nullable=False, server_default='active'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('view_count', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.CheckConstraint(
            'budget_from IS NULL OR budget_to IS NULL OR budget_from <= budget_to',
            name='check_budget_range_valid',
        ),
    )
    op.create_index('idx_rental_requests_pool_status', 'rental_requests', ['pool_status'])
    op.create_index('idx_rental_requests_expires_at', 'rental_requests', ['expires_at'])
    op.create_index('idx_rental_requests_tenant_id', 'rental_requests', ['tenant_id'])
    op.create_index('idx_rental_requests_city_token', 'rental_requests', ['city_token'])

    op.create_table(
        'request_matches',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('rental_request_id', sa.Uuid(), sa.ForeignKey('rental_requests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('counterparty_id', sa.Uuid(), sa.ForeignKey('counterparties.id', ondelete='CASCADE'), nullable=False),
        sa.Column('property_id', sa.Uuid(), sa.ForeignKey('properties.id', ondelete='SET NULL'), nullable=True),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(512), nullable=False, server_default=''),
        sa.Column('status', match_status_enum, nullable=False, server_default='active'),
        sa.Column('is_viewed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_notified', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint('score >= 0 AND score <= 100', name='check_score_range'),
        sa.UniqueConstraint('rental_request_id', 'counterparty_id', name='uq_match_request_counterparty'),
    )
    op.create_index('idx_request_matches_counterparty_id', 'request_matches', ['counterparty_id'])
    op.create_index('idx_request_matches_status', 'request_matches', ['status'])
    op.create_index('idx_request_matches_property_id', 'request_matches', ['property_id'])


def downgrade() -> None:
    op.drop_table('request_matches')
    op.drop_table('rental_requests')
    op.drop_table('properties')
    op.drop_table('counterparty_members')
    op.drop_table('counterparties')

    op.execute('DROP TYPE IF EXISTS match_status_enum')
    op.execute('DROP TYPE IF EXISTS member_role_enum')
    op.execute('DROP TYPE IF EXISTS property_status_enum')
    op.execute('DROP TYPE IF EXISTS pool_status_enum')
