"""create_deal_pipeline_tables

Revision ID: 4f2a9c1d7e30
Revises:
Create Date: 2026-10-19 10:12:41.208533

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4f2a9c1d7e30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'deals',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('original_price', sa.Float(), nullable=True),
        sa.Column('discount', sa.Integer(), nullable=True),
        sa.Column('image_url', sa.String(length=2048), nullable=False),
        sa.Column('verified_image_url', sa.String(length=2048), nullable=True),
        sa.Column('image_ready', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('image_retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('image_last_checked', sa.DateTime(), nullable=True),
        sa.Column('product_url', sa.String(length=2048), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=False, server_default='Other'),
        sa.Column('brand', sa.String(length=255), nullable=True),
        sa.Column('rating', sa.Float(), nullable=True),
        sa.Column('review_count', sa.Integer(), nullable=True),
        sa.Column('in_stock', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('coupon_code', sa.String(length=100), nullable=True),
        sa.Column('posted_at', sa.DateTime(), nullable=True),
        sa.Column('fetched_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_deals_category', 'deals', ['category'])
    op.create_index('ix_deals_fetched_at', 'deals', ['fetched_at'])
    op.create_index(
        'ix_deals_image_queue', 'deals', ['image_ready', 'image_retry_count', 'image_last_checked']
    )

    op.create_table(
        'deal_price_history',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('deal_id', sa.String(length=64), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('original_price', sa.Float(), nullable=True),
        sa.Column('discount', sa.Integer(), nullable=True),
        sa.Column('recorded_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['deal_id'], ['deals.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_deal_price_history_deal_id', 'deal_price_history', ['deal_id'])
    op.create_index('ix_deal_price_history_recorded_at', 'deal_price_history', ['recorded_at'])

    op.create_table(
        'user_roles',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'role', name='uq_user_role'),
    )
    op.create_index('ix_user_roles_user_id', 'user_roles', ['user_id'])

    op.create_table(
        'cron_job_health',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('job_name', sa.String(length=100), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('total_runs', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('successful_runs', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('failed_runs', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('consecutive_failures', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('uptime_percentage', sa.Float(), nullable=False, server_default='100'),
        sa.Column('last_success_at', sa.DateTime(), nullable=True),
        sa.Column('last_failure_at', sa.DateTime(), nullable=True),
        sa.Column('last_error', sa.String(length=1000), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_cron_job_health_job_name', 'cron_job_health', ['job_name'], unique=True)


def downgrade() -> None:
    op.drop_index('ix_cron_job_health_job_name', table_name='cron_job_health')
    op.drop_table('cron_job_health')
    op.drop_index('ix_user_roles_user_id', table_name='user_roles')
    op.drop_table('user_roles')
    op.drop_index('ix_deal_price_history_recorded_at', table_name='deal_price_history')
    op.drop_index('ix_deal_price_history_deal_id', table_name='deal_price_history')
    op.drop_table('deal_price_history')
    op.drop_index('ix_deals_image_queue', table_name='deals')
    op.drop_index('ix_deals_fetched_at', table_name='deals')
    op.drop_index('ix_deals_category', table_name='deals')
    op.drop_table('deals')
