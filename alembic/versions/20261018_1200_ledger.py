"""Add users, partners and loans tables

Revision ID: 3f9c2a7d1e04
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9c2a7d1e04'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


LOAN_STATUSES = ('pending', 'accepted', 'rejected', 'waiting on payment', 'paid back')


def upgrade() -> None:
    # ============================================================
    # Users
    # ============================================================
    op.create_table('users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('store_name', sa.String(length=150), nullable=False),
        sa.Column('username', sa.String(length=50), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('wallet_address', sa.String(length=42), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_wallet_address'), 'users', ['wallet_address'], unique=True)
    op.create_index('uq_users_username_lower', 'users', [sa.text('lower(username)')], unique=True)

    # ============================================================
    # Partners (owner -> partner links)
    # ============================================================
    op.create_table('partners',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('owner_user_id', sa.String(length=36), nullable=False),
        sa.Column('partner_user_id', sa.String(length=36), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['owner_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['partner_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner_user_id', 'partner_user_id', name='uq_partners_owner_partner')
    )
    op.create_index(op.f('ix_partners_owner_user_id'), 'partners', ['owner_user_id'], unique=False)
    op.create_index(op.f('ix_partners_partner_user_id'), 'partners', ['partner_user_id'], unique=False)

    # ============================================================
    # Loans
    # ============================================================
    op.create_table('loans',
        sa.Column('id', sa.String(length=36), nullable=False),
        # Parties
        sa.Column('owner_user_id', sa.String(length=36), nullable=False),
        sa.Column('partner_user_id', sa.String(length=36), nullable=False),
        sa.Column('owner_wallet_address', sa.String(length=42), nullable=True),
        sa.Column('partner_wallet_address', sa.String(length=42), nullable=True),
        # Terms
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('loan_date', sa.Date(), nullable=True),
        sa.Column('expected_return_date', sa.Date(), nullable=True),
        # Chain linkage
        sa.Column('tx_hash', sa.String(length=66), nullable=True),
        sa.Column('onchain_loan_id', sa.String(length=66), nullable=True),
        sa.Column('payment_tx_hash', sa.String(length=66), nullable=True),
        # Lifecycle
        sa.Column('status', sa.Enum(*LOAN_STATUSES, name='loan_status'), nullable=False),
        sa.Column('paid_back_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['owner_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['partner_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('onchain_loan_id')
    )
    op.create_index(op.f('ix_loans_owner_user_id'), 'loans', ['owner_user_id'], unique=False)
    op.create_index(op.f('ix_loans_partner_user_id'), 'loans', ['partner_user_id'], unique=False)
    op.create_index(op.f('ix_loans_status'), 'loans', ['status'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_loans_status'), table_name='loans')
    op.drop_index(op.f('ix_loans_partner_user_id'), table_name='loans')
    op.drop_index(op.f('ix_loans_owner_user_id'), table_name='loans')
    op.drop_table('loans')
    sa.Enum(name='loan_status').drop(op.get_bind(), checkfirst=True)

    op.drop_index(op.f('ix_partners_partner_user_id'), table_name='partners')
    op.drop_index(op.f('ix_partners_owner_user_id'), table_name='partners')
    op.drop_table('partners')

    op.drop_index('uq_users_username_lower', table_name='users')
    op.drop_index(op.f('ix_users_wallet_address'), table_name='users')
    op.drop_table('users')
