"""Initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Create initial database schema:
    - users: link owners and their rate overrides
    - short_links: code -> target URL, view counters and accrued earnings
    - view_events: one row per recorded interstitial view
    - client_view_ticks: per-client view timestamps for the rate limiter
    """
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('custom_cpm_rate', sa.Numeric(10, 4), nullable=True),
        sa.Column('custom_revenue_share', sa.Numeric(5, 4), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )

    op.create_table(
        'short_links',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('code', sa.String(length=20), nullable=False),
        sa.Column('target_url', sa.Text(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=True),
        sa.Column('view_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('duplicate_view_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('accrued_earnings', sa.Numeric(12, 4), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_short_links_code', 'short_links', ['code'], unique=True)
    op.create_index('ix_short_links_owner_id', 'short_links', ['owner_id'])
    op.create_index('ix_short_links_created_at', 'short_links', ['created_at'])

    op.create_table(
        'view_events',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('link_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.String(length=64), nullable=False),
        sa.Column('viewed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
        sa.Column('referrer', sa.Text(), nullable=True),
        sa.Column('country', sa.String(length=100), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('region', sa.String(length=100), nullable=True),
        sa.Column('device_type', sa.String(length=20), nullable=True),
        sa.Column('browser', sa.String(length=50), nullable=True),
        sa.Column('operating_system', sa.String(length=50), nullable=True),
        sa.Column('time_to_complete_seconds', sa.Integer(), nullable=True),
        sa.Column('completed', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.ForeignKeyConstraint(['link_id'], ['short_links.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_view_events_link_id', 'view_events', ['link_id'])
    op.create_index('ix_view_events_viewed_at', 'view_events', ['viewed_at'])

    op.create_table(
        'client_view_ticks',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('client_id', sa.String(length=64), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_client_view_ticks_occurred_at', 'client_view_ticks', ['occurred_at'])
    op.create_index(
        'ix_client_view_ticks_client_occurred',
        'client_view_ticks',
        ['client_id', 'occurred_at'],
    )


def downgrade() -> None:
    op.drop_index('ix_client_view_ticks_client_occurred', table_name='client_view_ticks')
    op.drop_index('ix_client_view_ticks_occurred_at', table_name='client_view_ticks')
    op.drop_table('client_view_ticks')

    op.drop_index('ix_view_events_viewed_at', table_name='view_events')
    op.drop_index('ix_view_events_link_id', table_name='view_events')
    op.drop_table('view_events')

    op.drop_index('ix_short_links_created_at', table_name='short_links')
    op.drop_index('ix_short_links_owner_id', table_name='short_links')
    op.drop_index('ix_short_links_code', table_name='short_links')
    op.drop_table('short_links')

    op.drop_table('users')
