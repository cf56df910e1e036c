"""Loan requests, investments, repayments and borrower profiles

Revision ID: 20261018_1200_loan_funding
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261018_1200_loan_funding'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ============================================================
    # Loan Requests Table
    # ============================================================
    op.create_table('loan_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('borrower_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        # Terms
        sa.Column('amount_requested', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('interest_rate', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('repayment_months', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        # Funding
        sa.Column('amount_funded', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0.00'),
        sa.Column('status', sa.Enum('OPEN', 'FUNDED', 'COMPLETED', name='loanstatus'), nullable=False),
        sa.Column('funded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('amount_requested > 0', name='ck_loan_requests_amount_positive'),
        sa.CheckConstraint('amount_funded <= amount_requested', name='ck_loan_requests_not_overfunded'),
        sa.CheckConstraint('repayment_months > 0', name='ck_loan_requests_term_positive'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_loan_requests_id'), 'loan_requests', ['id'], unique=False)
    op.create_index(op.f('ix_loan_requests_borrower_id'), 'loan_requests', ['borrower_id'], unique=False)
    op.create_index(op.f('ix_loan_requests_status'), 'loan_requests', ['status'], unique=False)

    # ============================================================
    # Investments Table
    # ============================================================
    op.create_table('investments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('loan_id', sa.Integer(), nullable=False),
        sa.Column('investor_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('is_anonymous', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('payment_reference', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('amount > 0', name='ck_investments_amount_positive'),
        sa.ForeignKeyConstraint(['loan_id'], ['loan_requests.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_investments_id'), 'investments', ['id'], unique=False)
    op.create_index(op.f('ix_investments_loan_id'), 'investments', ['loan_id'], unique=False)
    op.create_index(op.f('ix_investments_investor_id'), 'investments', ['investor_id'], unique=False)
    op.create_index('ix_investments_loan_created', 'investments', ['loan_id', 'created_at'], unique=False)

    # ============================================================
    # Repayments Table
    # ============================================================
    op.create_table('repayments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('loan_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('is_on_time', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('payment_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['loan_id'], ['loan_requests.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('loan_id', name='uq_repayments_loan_id')
    )
    op.create_index(op.f('ix_repayments_id'), 'repayments', ['id'], unique=False)

    # ============================================================
    # Borrower Profiles Table
    # ============================================================
    op.create_table('borrower_profiles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('credit_score', sa.Integer(), nullable=True),
        sa.Column('successful_loans_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('defaults_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('purpose', sa.String(length=200), nullable=True),
        sa.Column('total_repaid', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0.00'),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('verification_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint(
            'credit_score IS NULL OR (credit_score >= 300 AND credit_score <= 850)',
            name='ck_borrower_profiles_credit_score_range'
        ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_borrower_profiles_id'), 'borrower_profiles', ['id'], unique=False)
    op.create_index(op.f('ix_borrower_profiles_user_id'), 'borrower_profiles', ['user_id'], unique=True)


def downgrade() -> None:
    op.drop_index(op.f('ix_borrower_profiles_user_id'), table_name='borrower_profiles')
    op.drop_index(op.f('ix_borrower_profiles_id'), table_name='borrower_profiles')
    op.drop_table('borrower_profiles')

    op.drop_index(op.f('ix_repayments_id'), table_name='repayments')
    op.drop_table('repayments')

    op.drop_index('ix_investments_loan_created', table_name='investments')
    op.drop_index(op.f('ix_investments_investor_id'), table_name='investments')
    op.drop_index(op.f('ix_investments_loan_id'), table_name='investments')
    op.drop_index(op.f('ix_investments_id'), table_name='investments')
    op.drop_table('investments')

    op.drop_index(op.f('ix_loan_requests_status'), table_name='loan_requests')
    op.drop_index(op.f('ix_loan_requests_borrower_id'), table_name='loan_requests')
    op.drop_index(op.f('ix_loan_requests_id'), table_name='loan_requests')
    op.drop_table('loan_requests')

    sa.Enum(name='loanstatus').drop(op.get_bind(), checkfirst=True)
