"""create ledger tables

Revision ID: 4a1c9e2f7b10
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4a1c9e2f7b10'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    ]


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=False, unique=True),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='user'),
        sa.Column('mode', sa.String(length=20), nullable=False, server_default='real'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='Active'),
        sa.Column('balance', sa.Numeric(18, 2), nullable=False, server_default=sa.text('0.00')),
        sa.Column('level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_invest', sa.Numeric(18, 2), nullable=False, server_default=sa.text('0.00')),
        sa.Column('total_invest_vip', sa.Numeric(18, 2), nullable=False, server_default=sa.text('0.00')),
        sa.Column('spin_ticket', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('investment_status', sa.String(length=20), nullable=False, server_default='Inactive'),
        sa.Column('referred_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=80), nullable=False, unique=True),
        sa.Column('profit_type', sa.String(length=20), nullable=False, server_default='unlocked'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='Active'),
        *_timestamps(),
    )

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('category_id', sa.Integer(), sa.ForeignKey('categories.id'), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('daily_profit', sa.Numeric(18, 2), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('required_vip', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('purchase_limit', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='Active'),
        *_timestamps(),
    )

    op.create_table(
        'investments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('category_id', sa.Integer(), sa.ForeignKey('categories.id'), nullable=False),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('daily_profit', sa.Numeric(18, 2), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('total_paid', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_returned', sa.Numeric(18, 2), nullable=False, server_default=sa.text('0.00')),
        sa.Column('last_return_at', sa.DateTime(), nullable=True),
        sa.Column('next_return_at', sa.DateTime(), nullable=True),
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='Pending'),
        *_timestamps(),
        sa.UniqueConstraint('order_id', name='uq_investments_order_id'),
    )
    op.create_index('ix_investments_user_id', 'investments', ['user_id'])
    op.create_index('idx_investment_due', 'investments', ['status', 'next_return_at'])
    op.create_index('idx_investment_user_product', 'investments', ['user_id', 'product_id', 'status'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('investment_id', sa.Integer(), sa.ForeignKey('investments.id'), nullable=False, unique=True),
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('payment_method', sa.String(length=20), nullable=False),
        sa.Column('payment_channel', sa.String(length=40), nullable=True),
        sa.Column('payment_code', sa.Text(), nullable=True),
        sa.Column('expired_at', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='Pending'),
        *_timestamps(),
        sa.UniqueConstraint('order_id', name='uq_payments_order_id'),
    )
    op.create_index('idx_payment_status_expiry', 'payments', ['status', 'expired_at'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('charge', sa.Numeric(18, 2), nullable=False, server_default=sa.text('0.00')),
        sa.Column('order_id', sa.String(length=80), nullable=False),
        sa.Column('transaction_flow', sa.String(length=10), nullable=False),
        sa.Column('transaction_type', sa.String(length=20), nullable=False),
        sa.Column('message', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='Success'),
        sa.Column('affects_balance', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint('order_id', name='uq_transactions_order_id'),
    )
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'])
    op.create_index('idx_transaction_user_type', 'transactions', ['user_id', 'transaction_type'])

    op.create_table(
        'banks',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=80), nullable=False),
        sa.Column('short_name', sa.String(length=20), nullable=True),
        sa.Column('code', sa.String(length=20), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False, server_default='bank'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='Active'),
        *_timestamps(),
    )

    op.create_table(
        'bank_accounts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('bank_id', sa.Integer(), sa.ForeignKey('banks.id'), nullable=False),
        sa.Column('account_name', sa.String(length=120), nullable=False),
        sa.Column('account_number', sa.String(length=40), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_bank_accounts_user_id', 'bank_accounts', ['user_id'])

    op.create_table(
        'withdrawals',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('bank_account_id', sa.Integer(), sa.ForeignKey('bank_accounts.id'), nullable=False),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('charge', sa.Numeric(18, 2), nullable=False),
        sa.Column('final_amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='Pending'),
        *_timestamps(),
        sa.UniqueConstraint('order_id', name='uq_withdrawals_order_id'),
    )
    op.create_index('ix_withdrawals_user_id', 'withdrawals', ['user_id'])
    op.create_index('idx_withdrawal_user_created', 'withdrawals', ['user_id', 'created_at'])

    op.create_table(
        'settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=80), nullable=False, server_default='default'),
        sa.Column('min_withdraw', sa.Numeric(18, 2), nullable=False),
        sa.Column('max_withdraw', sa.Numeric(18, 2), nullable=False),
        sa.Column('withdraw_charge', sa.Numeric(5, 2), nullable=False),
        sa.Column('auto_withdraw', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )

    op.create_table(
        'webhook_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('event_type', sa.String(length=20), nullable=False),
        sa.Column('reference', sa.String(length=80), nullable=True),
        sa.Column('status_code', sa.String(length=10), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('processed', sa.Boolean(), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('result', sa.String(length=40), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_webhook_events_reference', 'webhook_events', ['reference'])


def downgrade():
    op.drop_table('webhook_events')
    op.drop_table('settings')
    op.drop_table('withdrawals')
    op.drop_table('bank_accounts')
    op.drop_table('banks')
    op.drop_table('transactions')
    op.drop_table('payments')
    op.drop_table('investments')
    op.drop_table('products')
    op.drop_table('categories')
    op.drop_table('users')
