"""Initial migration

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

PAYMENT_STATUS = ('PENDING', 'PARTIAL', 'PAID', 'REFUNDED', 'CANCELLED')
PAYMENT_METHOD = ('CASH', 'CREDIT_CARD', 'DEBIT_CARD', 'BANK_TRANSFER', 'INSURANCE', 'OTHER')


def upgrade() -> None:
    # Create treatments table
    op.create_table(
        'treatments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('patient_id', sa.String(length=36), nullable=False),
        sa.Column('dentist_id', sa.String(length=36), nullable=False),
        sa.Column('chief_complaint', sa.Text(), nullable=False),
        sa.Column('diagnosis', sa.Text(), nullable=False),
        sa.Column('treatment_plan', sa.Text(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('treatment_date', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('total_cost', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0'),
        sa.Column('paid_amount', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0'),
        sa.Column('discount', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0'),
        sa.Column('payment_status', sa.Enum(*PAYMENT_STATUS, name='paymentstatus'), nullable=False),
        sa.Column('payment_method', sa.Enum(*PAYMENT_METHOD, name='paymentmethod'), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.CheckConstraint('total_cost >= 0', name='ck_treatments_total_cost_non_negative'),
        sa.CheckConstraint('paid_amount >= 0', name='ck_treatments_paid_amount_non_negative'),
        sa.CheckConstraint('discount >= 0', name='ck_treatments_discount_non_negative'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_treatments_patient_id', 'treatments', ['patient_id'], unique=False)
    op.create_index('ix_treatments_dentist_id', 'treatments', ['dentist_id'], unique=False)
    op.create_index('ix_treatments_treatment_date', 'treatments', ['treatment_date'], unique=False)
    op.create_index('ix_treatments_payment_status', 'treatments', ['payment_status'], unique=False)

    # Create treatment_items table
    op.create_table(
        'treatment_items',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('treatment_id', sa.String(length=36), nullable=False),
        sa.Column('procedure_id', sa.String(length=36), nullable=False),
        sa.Column('tooth_numbers', sa.JSON(), nullable=False),
        sa.Column('tooth_surfaces', sa.JSON(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('unit_cost', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('total_cost', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column(
            'status',
            sa.Enum('PLANNED', 'IN_PROGRESS', 'COMPLETED', 'CANCELLED', name='treatmentitemstatus'),
            nullable=False
        ),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.CheckConstraint('quantity >= 1', name='ck_treatment_items_quantity_positive'),
        sa.ForeignKeyConstraint(['treatment_id'], ['treatments.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_treatment_items_treatment_id', 'treatment_items', ['treatment_id'], unique=False)

    # Create receipts table (one per treatment)
    op.create_table(
        'receipts',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('treatment_id', sa.String(length=36), nullable=False),
        sa.Column('issued_by_id', sa.String(length=36), nullable=False),
        sa.Column('receipt_number', sa.String(length=40), nullable=False),
        sa.Column('subtotal', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('discount', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0'),
        sa.Column('discount_code_applied', sa.String(length=50), nullable=True),
        sa.Column('tax', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0'),
        sa.Column('tax_rate', sa.Numeric(precision=5, scale=4), nullable=False),
        sa.Column('total_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('paid_amount', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0'),
        sa.Column('balance_due', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('status', sa.Enum('PARTIAL', 'PAID', name='receiptstatus'), nullable=False),
        sa.Column('payment_method', sa.Enum(*PAYMENT_METHOD, name='paymentmethod').with_variant(
            postgresql.ENUM(*PAYMENT_METHOD, name='paymentmethod', create_type=False), 'postgresql'
        ), nullable=True),
        sa.Column('payment_date', sa.DateTime(), nullable=True),
        sa.Column('transaction_id', sa.String(length=100), nullable=True),
        sa.Column('qr_code', sa.Text(), nullable=True),
        sa.Column('email_address', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('paid_amount >= 0', name='ck_receipts_paid_amount_non_negative'),
        sa.CheckConstraint('balance_due >= 0', name='ck_receipts_balance_due_non_negative'),
        sa.ForeignKeyConstraint(['treatment_id'], ['treatments.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('treatment_id')
    )
    op.create_index('ix_receipts_receipt_number', 'receipts', ['receipt_number'], unique=True)
    op.create_index('ix_receipts_status', 'receipts', ['status'], unique=False)
    op.create_index('ix_receipts_created_at', 'receipts', ['created_at'], unique=False)

    # Create audit_logs table
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column(
            'action',
            sa.Enum(
                'CREATE_TREATMENT', 'ADD_PROCEDURE_TO_TREATMENT', 'DELETE_TREATMENT_ITEM',
                'UPDATE_TREATMENT_ITEM_STATUS', 'UPDATE_TREATMENT_DISCOUNT', 'UPDATE_TREATMENT_PAYMENT',
                'RECEIPT_CREATED', 'PAYMENT_PROCESSED', 'COMPLETE_TREATMENT',
                name='auditaction'
            ),
            nullable=False
        ),
        sa.Column(
            'entity_type',
            sa.Enum('TREATMENT', 'TREATMENT_ITEM', 'RECEIPT', name='auditresource'),
            nullable=False
        ),
        sa.Column('entity_id', sa.String(length=36), nullable=True),
        sa.Column('user_id', sa.String(length=36), nullable=True),
        sa.Column('old_data', sa.JSON(), nullable=True),
        sa.Column('new_data', sa.JSON(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'], unique=False)
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'], unique=False)
    op.create_index('ix_audit_logs_timestamp', 'audit_logs', ['timestamp'], unique=False)
    op.create_index('ix_audit_logs_entity', 'audit_logs', ['entity_type', 'entity_id'], unique=False)


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table('audit_logs')
    op.drop_table('receipts')
    op.drop_table('treatment_items')
    op.drop_table('treatments')

    bind = op.get_bind()
    for enum_name in (
        'auditresource', 'auditaction', 'receiptstatus',
        'treatmentitemstatus', 'paymentmethod', 'paymentstatus'
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
