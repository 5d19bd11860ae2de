# alembic/versions/001_initial.py

"""Initial ledger schema

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def _enum(name, *values):
    return sa.Enum(*values, name=name, native_enum=False, length=20)


def upgrade():
    op.create_table('user_profile',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=40), nullable=True),
        sa.Column('member_code', sa.String(length=20), nullable=True),
        sa.Column('registration_paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('kyc_status', _enum('kyc_status', 'pending', 'approved', 'rejected'), nullable=False),
        sa.Column('kyc_message', sa.Text(), nullable=True),
        sa.Column('payout_method', _enum('payout_method', 'bank', 'cash', 'card', 'crypto'), nullable=True),
        sa.Column('payout_details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('member_code')
    )
    op.create_index('ix_user_profile_email', 'user_profile', ['email'], unique=True)

    op.create_table('investment_plan',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('min_amount', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('max_amount', sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column('monthly_rate', sa.Numeric(precision=6, scale=3), nullable=False),
        sa.Column('annual_rate', sa.Numeric(precision=6, scale=3), nullable=False),
        sa.Column('duration_in_periods', sa.Integer(), nullable=False),
        sa.Column('cadence', _enum('plan_cadence', 'monthly', 'annually'), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )

    op.create_table('investment',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('plan_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('cadence', _enum('investment_cadence', 'monthly', 'annually'), nullable=False),
        sa.Column('total_payouts', sa.Integer(), nullable=False),
        sa.Column('payouts_made', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', _enum('investment_status', 'pending', 'active', 'completed', 'cancelled'), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('next_payout_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['user_profile.id']),
        sa.ForeignKeyConstraint(['plan_id'], ['investment_plan.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_investment_user_id', 'investment', ['user_id'])
    op.create_index('ix_investment_due', 'investment', ['status', 'next_payout_date'])
    op.create_index(
        'ux_investment_user_pending', 'investment', ['user_id'],
        unique=True, postgresql_where=sa.text("status = 'pending'"),
    )
    op.create_index(
        'ux_investment_user_active', 'investment', ['user_id'],
        unique=True, postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table('payment',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('reference', sa.String(length=80), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('investment_id', sa.Integer(), nullable=True),
        sa.Column('amount', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('method', _enum('payment_method', 'bank', 'cash', 'card', 'crypto'), nullable=False),
        sa.Column('type', _enum('payment_type', 'registration', 'investment', 'roi'), nullable=False),
        sa.Column('status', _enum('payment_status', 'pending', 'success', 'failed'), nullable=False),
        sa.Column('checkout_url', sa.Text(), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user_profile.id']),
        sa.ForeignKeyConstraint(['investment_id'], ['investment.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reference')
    )
    op.create_index('ix_payment_user_id', 'payment', ['user_id'])
    op.create_index('ix_payment_user_type_status', 'payment', ['user_id', 'type', 'status'])

    op.create_table('roi',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('investment_id', sa.Integer(), nullable=False),
        sa.Column('rate', sa.Numeric(precision=6, scale=3), nullable=False),
        sa.Column('period_return_amount', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('total_paid', sa.Numeric(precision=14, scale=2), nullable=False, server_default='0'),
        sa.Column('payouts_made', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_payout_date', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['user_profile.id']),
        sa.ForeignKeyConstraint(['investment_id'], ['investment.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'investment_id', name='ux_roi_user_investment')
    )

    op.create_table('investment_return',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('investment_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('payout_date', sa.Date(), nullable=False),
        sa.Column('status', _enum('return_status', 'pending', 'due', 'paid', 'failed'), nullable=False),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['user_profile.id']),
        sa.ForeignKeyConstraint(['investment_id'], ['investment.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('investment_id', 'payout_date', name='ux_return_investment_period')
    )
    op.create_index('ix_investment_return_user_id', 'investment_return', ['user_id'])
    op.create_index('ix_return_status_date', 'investment_return', ['status', 'payout_date'])


def downgrade():
    op.drop_table('investment_return')
    op.drop_table('roi')
    op.drop_index('ix_payment_user_type_status', table_name='payment')
    op.drop_index('ix_payment_user_id', table_name='payment')
    op.drop_table('payment')
    op.drop_index('ux_investment_user_active', table_name='investment')
    op.drop_index('ux_investment_user_pending', table_name='investment')
    op.drop_index('ix_investment_due', table_name='investment')
    op.drop_index('ix_investment_user_id', table_name='investment')
    op.drop_table('investment')
    op.drop_table('investment_plan')
    op.drop_index('ix_user_profile_email', table_name='user_profile')
    op.drop_table('user_profile')
