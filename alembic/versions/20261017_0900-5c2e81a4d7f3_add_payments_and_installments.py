"""add_payments_and_installments

Revision ID: 5c2e81a4d7f3
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5c2e81a4d7f3'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('reference_id', sa.String(length=100), nullable=False, comment='THUB-<ms>-<user>-<course>'),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('course_id', sa.Integer(), nullable=False),
        sa.Column('course_name', sa.String(length=255), nullable=True),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False, comment='one_time/installment'),
        sa.Column('payment_method', sa.String(length=20), nullable=False, comment='card/mobile_wallet'),
        sa.Column('wallet_type', sa.String(length=20), nullable=True, comment='EVCPlus/ZAAD/SAHAL/WAAFI'),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending', comment='pending/completed/failed'),
        sa.Column('gateway', sa.String(length=50), nullable=False, server_default='waafipay'),
        sa.Column('transaction_id', sa.String(length=200), nullable=True),
        sa.Column('redirect_url', sa.Text(), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True, comment='payment_date'),
        sa.PrimaryKeyConstraint('id', name='pk_payments'),
    )
    op.create_index('ix_payments_id', 'payments', ['id'], unique=False)
    op.create_index('ix_payments_reference_id', 'payments', ['reference_id'], unique=True)
    op.create_index('ix_payments_user_id', 'payments', ['user_id'], unique=False)
    op.create_index('ix_payments_course_id', 'payments', ['course_id'], unique=False)
    op.create_index('ix_payments_status', 'payments', ['status'], unique=False)
    op.create_index('ix_payments_transaction_id', 'payments', ['transaction_id'], unique=False)
    op.create_index('ix_payments_user_status', 'payments', ['user_id', 'status'], unique=False)
    op.create_index('ix_payments_created_at', 'payments', ['created_at'], unique=False)

    op.create_table(
        'installments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('payment_id', sa.Integer(), nullable=False),
        sa.Column('installment_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_paid', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ['payment_id'], ['payments.id'],
            name='fk_installments_payment_id_payments', ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_installments'),
    )
    op.create_index('ix_installments_id', 'installments', ['id'], unique=False)
    op.create_index('ix_installments_payment_id', 'installments', ['payment_id'], unique=False)
    op.create_index(
        'ix_installments_payment_number', 'installments', ['payment_id', 'installment_number'], unique=True
    )


def downgrade() -> None:
    op.drop_index('ix_installments_payment_number', table_name='installments')
    op.drop_index('ix_installments_payment_id', table_name='installments')
    op.drop_index('ix_installments_id', table_name='installments')
    op.drop_table('installments')

    op.drop_index('ix_payments_created_at', table_name='payments')
    op.drop_index('ix_payments_user_status', table_name='payments')
    op.drop_index('ix_payments_transaction_id', table_name='payments')
    op.drop_index('ix_payments_status', table_name='payments')
    op.drop_index('ix_payments_course_id', table_name='payments')
    op.drop_index('ix_payments_user_id', table_name='payments')
    op.drop_index('ix_payments_reference_id', table_name='payments')
    op.drop_index('ix_payments_id', table_name='payments')
    op.drop_table('payments')
