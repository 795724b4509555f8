"""Add staff panel tables (panel data, auth chain, rpc logs)

Revision ID: a1f3c5e7b9d2
Revises:
Create Date: 2026-10-17T09:12:44.318205
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = 'a1f3c5e7b9d2'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- staffpanel__paneldata ---
    op.create_table(
        'staffpanel__paneldata',
        sa.Column('itag', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.user_id', ondelete='CASCADE'), nullable=False),
        sa.Column('mfa_secret', sa.String(), nullable=False),
        sa.Column('mfa_verified', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('user_id'),
        sa.UniqueConstraint('itag'),
    )

    # --- staffpanel__authchain ---
    # token is deliberately unindexed: multi-KB values exceed btree row limits
    op.create_table(
        'staffpanel__authchain',
        sa.Column('itag', sa.String(), nullable=False),
        sa.Column('paneldata_ref', sa.String(), sa.ForeignKey('staffpanel__paneldata.itag', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.user_id', ondelete='CASCADE'), nullable=False),
        sa.Column('token', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('state', sa.String(), nullable=False, server_default='pending'),
        sa.PrimaryKeyConstraint('itag'),
    )
    op.create_index('ix_staffpanel__authchain_user_id', 'staffpanel__authchain', ['user_id'])

    # --- rpc_logs ---
    op.create_table(
        'rpc_logs',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.user_id', ondelete='CASCADE'), nullable=False),
        sa.Column('method', sa.String(), nullable=False),
        sa.Column('target_type', sa.String(), nullable=False),
        sa.Column('data', sa.JSON(), nullable=False, server_default='{}'),
        sa.Column('state', sa.String(), nullable=False, server_default='success'),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_rpc_logs_user_id', 'rpc_logs', ['user_id'])
    op.create_index('ix_rpc_logs_method', 'rpc_logs', ['method'])
    op.create_index('ix_rpc_logs_created_at', 'rpc_logs', ['created_at'])


def downgrade() -> None:
    op.drop_table('rpc_logs')
    op.drop_table('staffpanel__authchain')
    op.drop_table('staffpanel__paneldata')
