"""sell queue and wallets

Revision ID: 0001
Revises:
Create Date: 2026-10-18 12:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel


revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'user',
        sa.Column('uuid', sa.Uuid(), nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('role', sa.Enum('USER', 'ADMIN', name='userrole'), nullable=False),
        sa.Column('api_key', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('uuid'),
    )
    op.create_index(op.f('ix_user_uuid'), 'user', ['uuid'], unique=False)
    op.create_index(op.f('ix_user_api_key'), 'user', ['api_key'], unique=True)

    op.create_table(
        'wallets',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_uuid', sa.Uuid(), sa.ForeignKey('user.uuid', ondelete='CASCADE'), nullable=True),
        sa.Column('currency', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('balance', sa.Float(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_uuid', 'currency', name='unique_user_currency_wallet'),
    )
    op.create_index(op.f('ix_wallets_id'), 'wallets', ['id'], unique=False)
    op.create_index(op.f('ix_wallets_user_uuid'), 'wallets', ['user_uuid'], unique=False)
    op.create_index(op.f('ix_wallets_currency'), 'wallets', ['currency'], unique=False)

    op.create_table(
        'transactions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('wallet_id', sa.Uuid(), sa.ForeignKey('wallets.id', ondelete='CASCADE'), nullable=True),
        sa.Column('user_uuid', sa.Uuid(), sa.ForeignKey('user.uuid', ondelete='CASCADE'), nullable=True),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('currency', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column(
            'transaction_type',
            sa.Enum('DEPOSIT', 'WITHDRAWAL', 'SHARE_SALE', 'ADJUSTMENT', name='transactiontype'),
            nullable=False,
        ),
        sa.Column(
            'status',
            sa.Enum('PENDING', 'COMPLETED', 'APPROVED', 'FAILED', name='transactionstatus'),
            nullable=False,
        ),
        sa.Column('reference', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_transactions_id'), 'transactions', ['id'], unique=False)
    op.create_index(op.f('ix_transactions_wallet_id'), 'transactions', ['wallet_id'], unique=False)
    op.create_index(op.f('ix_transactions_user_uuid'), 'transactions', ['user_uuid'], unique=False)

    op.create_table(
        'admin_sub_wallets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column(
            'wallet_type',
            sa.Enum('SHARE_BUYBACK', 'PROJECT_FUNDING', 'ADMIN_FUND', name='subwallettype'),
            nullable=False,
        ),
        sa.Column('currency', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('balance', sa.Float(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('wallet_type', 'currency', name='unique_sub_wallet_type_currency'),
    )

    op.create_table(
        'share_sell_orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_uuid', sa.Uuid(), sa.ForeignKey('user.uuid', ondelete='CASCADE'), nullable=True),
        sa.Column('currency', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('remaining_quantity', sa.Integer(), nullable=False),
        sa.Column('requested_price', sa.Float(), nullable=False),
        sa.Column('total_sell_value', sa.Float(), nullable=False),
        sa.Column('fifo_position', sa.Integer(), nullable=False),
        sa.Column(
            'status',
            sa.Enum('PENDING', 'PARTIAL', 'COMPLETED', 'CANCELLED', name='sellorderstatus'),
            nullable=False,
        ),
        sa.Column('cancel_reason', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_share_sell_orders_id'), 'share_sell_orders', ['id'], unique=False)
    op.create_index(op.f('ix_share_sell_orders_user_uuid'), 'share_sell_orders', ['user_uuid'], unique=False)
    op.create_index(op.f('ix_share_sell_orders_currency'), 'share_sell_orders', ['currency'], unique=False)
    op.create_index(op.f('ix_share_sell_orders_fifo_position'), 'share_sell_orders', ['fifo_position'], unique=True)

    counters = op.create_table(
        'sell_queue_counters',
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('last_position', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('name'),
    )
    op.bulk_insert(counters, [{'name': 'share_sell_orders', 'last_position': 0}])


def downgrade() -> None:
    op.drop_table('sell_queue_counters')
    op.drop_table('share_sell_orders')
    op.drop_table('admin_sub_wallets')
    op.drop_table('transactions')
    op.drop_table('wallets')
    op.drop_table('user')
    sa.Enum(name='sellorderstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='subwallettype').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='transactionstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='transactiontype').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='userrole').drop(op.get_bind(), checkfirst=True)
