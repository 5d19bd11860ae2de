"""member code sequence

Revision ID: 3a7d5c1e9b20
Revises: 001
Create Date: 2026-10-20 09:00:00.000000+04:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3a7d5c1e9b20'
down_revision = '001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'member_code_sequence',
        sa.Column('prefix', sa.String(length=10), nullable=False),
        sa.Column('last_value', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('prefix'),
    )


def downgrade() -> None:
    op.drop_table('member_code_sequence')
