"""initial

Revision ID: 001_initial
Revises:
Create Date: 2024-05-22 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ROSTER = [("H3", "3"), ("H4", "4"), ("H5", "5"), ("H6", "6"), ("H8", "8"), ("H9", "9")]


def upgrade() -> None:
    # Tenants
    op.create_table('tenants',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('work_info', sa.Text(), nullable=True),
        sa.Column('rent_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('join_date', sa.Date(), nullable=False),
        sa.Column('id_proof', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    # Houses (occupant reference only, no cascade)
    houses = op.create_table('houses',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('house_number', sa.String(), nullable=False),
        sa.Column('current_tenant_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['current_tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id')
    )

    # Payments
    op.create_table('payments',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('house_id', sa.String(), nullable=True),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('paid_date', sa.Date(), nullable=True),
        sa.Column('amount_paid', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.ForeignKeyConstraint(['house_id'], ['houses.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('month BETWEEN 1 AND 12', name='ck_payments_month')
    )
    op.create_index('ix_payments_tenant_period', 'payments', ['tenant_id', 'year', 'month'], unique=False)

    # Fixed roster
    op.bulk_insert(houses, [{'id': house_id, 'house_number': number} for house_id, number in ROSTER])


def downgrade() -> None:
    op.drop_index('ix_payments_tenant_period', table_name='payments')
    op.drop_table('payments')
    op.drop_table('houses')
    op.drop_table('tenants')
