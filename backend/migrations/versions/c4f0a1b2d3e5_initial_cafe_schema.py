"""Initial cafe schema: catalog, orders, payments, customers/credit, inventory ledger, purchases, tables, day sessions, expenses

Revision ID: c4f0a1b2d3e5
Revises:
Create Date: 2026-10-18 09:12:44.120311

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c4f0a1b2d3e5'
down_revision = None
branch_labels = None
depends_on = None


def _sync_columns():
    # Shared by every replicated table
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('remote_id', sa.String(length=64), nullable=True),
        sa.Column('synced', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.BigInteger(), nullable=False),
        sa.Column('updated_at', sa.BigInteger(), nullable=False),
    ]


def _create(name, *columns, indexes=()):
    op.create_table(name,
        *_sync_columns(),
        *columns,
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('remote_id'),
        sqlite_autoincrement=True,
    )
    op.create_index(op.f(f'ix_{name}_synced'), name, ['synced'], unique=False)
    for index_name, cols in indexes:
        op.create_index(index_name, name, cols, unique=False)


def upgrade():
    _create('categories',
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('display_order', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        indexes=[('ix_categories_active_order', ['is_active', 'display_order'])],
    )
    _create('products',
        sa.Column('category_id', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('cost_cents', sa.Integer(), nullable=False),
        sa.Column('is_veg', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_purchasable', sa.Boolean(), nullable=False),
        sa.Column('is_sellable', sa.Boolean(), nullable=False),
        indexes=[('ix_products_category_active', ['category_id', 'is_active'])],
    )
    _create('customers',
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('credit_limit_cents', sa.Integer(), nullable=True),
        sa.Column('credit_balance_cents', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        indexes=[('ix_customers_phone', ['phone'])],
    )
    _create('credit_transactions',
        sa.Column('customer_id', sa.String(length=64), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=True),
        sa.Column('transaction_type', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('balance_before_cents', sa.Integer(), nullable=False),
        sa.Column('balance_after_cents', sa.Integer(), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        indexes=[('ix_credit_transactions_customer_created', ['customer_id', 'created_at'])],
    )
    _create('suppliers',
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
    )
    _create('purchases',
        sa.Column('purchase_number', sa.String(length=32), nullable=False),
        sa.Column('supplier_id', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False),
        sa.Column('tax_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('paid_cents', sa.Integer(), nullable=False),
        sa.Column('outstanding_cents', sa.Integer(), nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        indexes=[
            ('ix_purchases_supplier', ['supplier_id']),
            (op.f('ix_purchases_purchase_number'), ['purchase_number']),
        ],
    )
    _create('purchase_items',
        sa.Column('purchase_id', sa.String(length=64), nullable=False),
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=True),
        sa.Column('quantity', sa.Float(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        indexes=[('ix_purchase_items_purchase', ['purchase_id'])],
    )
    _create('inventory_ledger',
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('quantity_in', sa.Float(), nullable=False),
        sa.Column('quantity_out', sa.Float(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=True),
        sa.Column('transaction_type', sa.String(length=16), nullable=False),
        sa.Column('reference_type', sa.String(length=32), nullable=True),
        sa.Column('reference_id', sa.String(length=64), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        indexes=[
            ('ix_inventory_ledger_product_created', ['product_id', 'created_at']),
            ('ix_inventory_ledger_reference', ['reference_type', 'reference_id']),
        ],
    )
    _create('tables',
        sa.Column('table_number', sa.String(length=32), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('current_order_id', sa.String(length=64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.UniqueConstraint('table_number', name='uq_tables_table_number'),
    )
    _create('orders',
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('order_type', sa.String(length=16), nullable=False),
        sa.Column('table_id', sa.String(length=64), nullable=True),
        sa.Column('customer_id', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('discount_percent', sa.Float(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False),
        sa.Column('tax_rate_bps', sa.Integer(), nullable=False),
        sa.Column('tax_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('paid_cents', sa.Integer(), nullable=False),
        sa.Column('credit_cents', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('completed_at', sa.BigInteger(), nullable=True),
        indexes=[
            ('ix_orders_status_created', ['status', 'created_at']),
            ('ix_orders_created', ['created_at']),
        ],
    )
    _create('order_items',
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Float(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        indexes=[('ix_order_items_order', ['order_id'])],
    )
    _create('payments',
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('method', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('change_cents', sa.Integer(), nullable=False),
        sa.Column('is_settlement', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('transaction_ref', sa.String(length=128), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        indexes=[
            ('ix_payments_order', ['order_id']),
            ('ix_payments_created', ['created_at']),
        ],
    )
    _create('day_sessions',
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('opened_at', sa.BigInteger(), nullable=False),
        sa.Column('closed_at', sa.BigInteger(), nullable=True),
        sa.Column('opening_cash_cents', sa.Integer(), nullable=False),
        sa.Column('closing_cash_cents', sa.Integer(), nullable=True),
        sa.Column('total_sales_cents', sa.Integer(), nullable=False),
        sa.Column('cash_total_cents', sa.Integer(), nullable=False),
        sa.Column('card_total_cents', sa.Integer(), nullable=False),
        sa.Column('digital_total_cents', sa.Integer(), nullable=False),
        sa.Column('credit_total_cents', sa.Integer(), nullable=False),
        sa.Column('order_count', sa.Integer(), nullable=False),
        sa.Column('opened_by', sa.String(length=64), nullable=True),
        sa.Column('closed_by', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        indexes=[('ix_day_sessions_status', ['status'])],
    )
    _create('expenses',
        sa.Column('expense_number', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        indexes=[
            ('ix_expenses_created', ['created_at']),
            ('ix_expenses_expense_number', ['expense_number']),
        ],
    )


def downgrade():
    for name in (
        'expenses', 'day_sessions', 'payments', 'order_items', 'orders', 'tables',
        'inventory_ledger', 'purchase_items', 'purchases', 'suppliers',
        'credit_transactions', 'customers', 'products', 'categories',
    ):
        op.drop_table(name)
