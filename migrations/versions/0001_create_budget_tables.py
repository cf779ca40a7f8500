"""
create budget alert tables

Revision ID: 0001_budget_tables
Revises:
Create Date: 2026-10-19

Creates users, budget_settings and native_budget_alert_states.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '0001_budget_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('user_id', sa.String(64), primary_key=True),
        sa.Column('email', sa.String(320), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('is_active', sa.Boolean, server_default=sa.true(), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'budget_settings',
        sa.Column('user_id', sa.String(64), primary_key=True),
        sa.Column('budget_id', sa.String(64), primary_key=True),
        sa.Column('budget_name', sa.String(255), nullable=False),
        sa.Column('monthly_limit', sa.Numeric(14, 2), nullable=False),
        sa.Column('currency', sa.String(3), server_default='USD', nullable=False),
        sa.Column('time_unit', sa.String(16), server_default='MONTHLY', nullable=False),
        sa.Column('alert_threshold', sa.Integer, server_default='80', nullable=False),
        sa.Column('alert_frequency', sa.String(16), server_default='daily', nullable=False),
        sa.Column('is_active', sa.Boolean, server_default=sa.true(), nullable=False),
        sa.Column('services', sa.JSON, nullable=True),
        sa.Column('tags', sa.JSON, nullable=True),
        sa.Column('notifications', sa.JSON, nullable=True),
        sa.Column('last_alert_sent', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_alert_type', sa.String(32), nullable=True),
        sa.Column('total_spent_this_month', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('projected_monthly_spend', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_budget_settings_budget_id', 'budget_settings', ['budget_id'], unique=True)
    op.create_index('ix_budget_settings_is_active', 'budget_settings', ['is_active'])

    op.create_table(
        'native_budget_alert_states',
        sa.Column('budget_id', sa.String(255), primary_key=True),
        sa.Column('last_alert_sent', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_alert_type', sa.String(32), nullable=True),
    )


def downgrade() -> None:
    op.drop_table('native_budget_alert_states')
    op.drop_index('ix_budget_settings_is_active', table_name='budget_settings')
    op.drop_index('ix_budget_settings_budget_id', table_name='budget_settings')
    op.drop_table('budget_settings')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
