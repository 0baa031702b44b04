"""add transfers and spin wheel

Revision ID: 7c2d5e8a91f3
Revises: 4a1c9e2f7b10
Create Date: 2026-10-18 15:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7c2d5e8a91f3'
down_revision = '4a1c9e2f7b10'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'transfer_contacts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sender_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('receiver_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('sender_id', 'receiver_id', name='uq_transfer_contact_pair'),
    )

    op.create_table(
        'spin_prizes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('code', sa.String(length=40), nullable=False, unique=True),
        sa.Column('chance_weight', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='Active'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'user_spins',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('prize_id', sa.Integer(), sa.ForeignKey('spin_prizes.id'), nullable=False),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('code', sa.String(length=40), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=True),
        sa.Column('won_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_user_spins_user_id', 'user_spins', ['user_id'])


def downgrade():
    op.drop_index('ix_user_spins_user_id', table_name='user_spins')
    op.drop_table('user_spins')
    op.drop_table('spin_prizes')
    op.drop_table('transfer_contacts')
