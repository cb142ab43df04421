"""Initial schema: buyers, suppliers, products, invoices, invoice items, payments

Revision ID: a3f1c2d4e5b6
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a3f1c2d4e5b6'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _common_columns() -> list[sa.Column]:
    return [
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    ]


def upgrade() -> None:
    """Create all tables used by the invoicing service."""
    invoice_status = sa.Enum('DRAFT', 'UNPAID', 'PARTIAL', 'PAID', 'CANCELLED', name='invoicestatus')

    # 1. Master data (owned by the CRUD application, read by invoicing)
    op.create_table(
        'buyers',
        *_common_columns(),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('gstin', sa.String(), nullable=True),
        sa.Column('state', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_buyers_name'), 'buyers', ['name'])

    op.create_table(
        'suppliers',
        *_common_columns(),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('gstin', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_suppliers_name'), 'suppliers', ['name'])

    op.create_table(
        'products',
        *_common_columns(),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('gst', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('hsn_code', sa.String(), nullable=True),
        sa.Column('supplier_id', sa.Uuid(), nullable=True),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_products_supplier_id'), 'products', ['supplier_id'])

    # 2. Invoices
    op.create_table(
        'invoices',
        *_common_columns(),
        sa.Column('invoice_no', sa.String(), nullable=False),
        sa.Column('buyer_id', sa.Uuid(), nullable=False),
        sa.Column('supplier_id', sa.Uuid(), nullable=True),
        sa.Column('status', invoice_status, nullable=False, server_default='DRAFT'),
        sa.Column('total', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('balance', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('service_charge', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('payment_method', sa.String(), nullable=True),
        sa.Column('signature', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('extra_charges', sa.JSON(), nullable=True),
        sa.Column('invoice_date', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['buyer_id'], ['buyers.id']),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_invoices_invoice_no'), 'invoices', ['invoice_no'], unique=True)
    op.create_index(op.f('ix_invoices_buyer_id'), 'invoices', ['buyer_id'])
    op.create_index(op.f('ix_invoices_supplier_id'), 'invoices', ['supplier_id'])
    op.create_index(op.f('ix_invoices_status'), 'invoices', ['status'])
    op.create_index(op.f('ix_invoices_created_at'), 'invoices', ['created_at'])

    # 3. Invoice items (replaced wholesale on update)
    op.create_table(
        'invoice_items',
        *_common_columns(),
        sa.Column('invoice_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('qty', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('gst', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('discount_pct', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('hsn_code', sa.String(), nullable=True),
        sa.Column('amount', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_invoice_items_invoice_id'), 'invoice_items', ['invoice_id'])
    op.create_index(op.f('ix_invoice_items_product_id'), 'invoice_items', ['product_id'])

    # 4. Payments
    op.create_table(
        'payments',
        *_common_columns(),
        sa.Column('invoice_id', sa.Uuid(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('round_off', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('method', sa.String(), nullable=False, server_default='Cash'),
        sa.Column('reference', sa.Text(), nullable=True),
        sa.Column('received_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_payments_invoice_id'), 'payments', ['invoice_id'])
    op.create_index(op.f('ix_payments_received_at'), 'payments', ['received_at'])
    op.create_index(op.f('ix_payments_created_by'), 'payments', ['created_by'])
    # Composite index for "payments of an invoice, newest first"
    op.create_index('ix_payments_invoice_received', 'payments', ['invoice_id', 'received_at'])


def downgrade() -> None:
    """Drop all invoicing tables."""
    op.drop_table('payments')
    op.drop_table('invoice_items')
    op.drop_table('invoices')
    op.drop_table('products')
    op.drop_table('suppliers')
    op.drop_table('buyers')
    sa.Enum(name='invoicestatus').drop(op.get_bind(), checkfirst=True)
