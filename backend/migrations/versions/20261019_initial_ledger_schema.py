"""Initial ledger schema: customers, transactions, cylinders, stock, bill sequences

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. B2B customers with ledger balance and per-type due counters
2. B2C customers and security-deposit cylinder holdings
3. B2B transactions + items, B2C transactions + gas/security/accessory items
4. Cylinders (with explicit holder columns), products, custom items
5. Per-series, per-day bill sequences
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    ]


def _void_columns():
    return [
        sa.Column('voided', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('voided_by', sa.Integer(), nullable=True),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('void_reason', sa.String(length=255), nullable=True),
    ]


def upgrade():
    # ==========================================================================
    # 1. CUSTOMERS
    # ==========================================================================
    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('contact_person', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('credit_limit_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_terms_days', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('ledger_balance_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('domestic_118kg_due', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('standard_15kg_due', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('commercial_454kg_due', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('domestic_118kg_due >= 0', name='ck_customers_domestic_due_non_negative'),
        sa.CheckConstraint('standard_15kg_due >= 0', name='ck_customers_standard_due_non_negative'),
        sa.CheckConstraint('commercial_454kg_due >= 0', name='ck_customers_commercial_due_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('customers', schema=None) as batch_op:
        batch_op.create_index('ix_customers_name', ['name'], unique=False)
        batch_op.create_index(batch_op.f('ix_customers_is_active'), ['is_active'], unique=False)

    op.create_table('b2c_customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('total_profit_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('b2c_customers', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_b2c_customers_name'), ['name'], unique=False)

    # ==========================================================================
    # 2. STOCK
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_name', ['name'], unique=False)

    op.create_table('custom_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('item_type', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cost_per_piece_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('custom_items', schema=None) as batch_op:
        batch_op.create_index('ix_custom_items_name_type', ['name', 'item_type'], unique=False)

    op.create_table('bill_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('series', sa.String(length=16), nullable=False),
        sa.Column('sequence_date', sa.Date(), nullable=False),
        sa.Column('last_number', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('series', 'sequence_date', name='uq_bill_sequences_series_date'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('bill_sequences', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_bill_sequences_sequence_date'), ['sequence_date'], unique=False)

    # ==========================================================================
    # 3. B2B TRANSACTIONS
    # ==========================================================================
    op.create_table('transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_type', sa.String(length=16), nullable=False),
        sa.Column('bill_sno', sa.String(length=64), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('transaction_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('paid_amount_cents', sa.Integer(), nullable=True),
        sa.Column('unpaid_amount_cents', sa.Integer(), nullable=True),
        sa.Column('payment_status', sa.String(length=16), nullable=True),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.Column('domestic_118kg_due_change', sa.Integer(), nullable=True),
        sa.Column('standard_15kg_due_change', sa.Integer(), nullable=True),
        sa.Column('commercial_454kg_due_change', sa.Integer(), nullable=True),
        sa.Column('payment_reference', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        *_void_columns(),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('bill_sno', name='uq_transactions_bill_sno'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('transactions', schema=None) as batch_op:
        batch_op.create_index('ix_transactions_customer_date', ['customer_id', 'transaction_date'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_transaction_type'), ['transaction_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_voided'), ['voided'], unique=False)

    op.create_table('transaction_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('cylinder_type', sa.String(length=32), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price_per_item_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_price_cents', sa.Integer(), nullable=False),
        sa.Column('returned_condition', sa.String(length=16), nullable=True),
        sa.Column('remaining_kg', sa.Float(), nullable=True),
        sa.Column('original_sold_price_cents', sa.Integer(), nullable=True),
        sa.Column('buyback_rate', sa.Float(), nullable=True),
        sa.Column('buyback_price_per_item_cents', sa.Integer(), nullable=True),
        sa.Column('buyback_total_cents', sa.Integer(), nullable=True),
        sa.Column('stock_source', sa.String(length=16), nullable=True),
        sa.Column('stock_item_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('transaction_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_transaction_items_transaction_id'), ['transaction_id'], unique=False)

    # ==========================================================================
    # 4. B2C TRANSACTIONS
    # ==========================================================================
    op.create_table('b2c_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bill_sno', sa.String(length=64), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('transaction_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('delivery_charges_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('delivery_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('final_amount_cents', sa.Integer(), nullable=False),
        sa.Column('total_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('actual_profit_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_method', sa.String(length=32), nullable=False, server_default='CASH'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        *_void_columns(),
        sa.ForeignKeyConstraint(['customer_id'], ['b2c_customers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('bill_sno', name='uq_b2c_transactions_bill_sno'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('b2c_transactions', schema=None) as batch_op:
        batch_op.create_index('ix_b2c_transactions_customer_date', ['customer_id', 'transaction_date'], unique=False)
        batch_op.create_index(batch_op.f('ix_b2c_transactions_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_b2c_transactions_voided'), ['voided'], unique=False)

    for table_name in ('b2c_gas_items', 'b2c_accessory_items'):
        name_column = (
            sa.Column('item_name', sa.String(length=255), nullable=False)
            if table_name == 'b2c_accessory_items'
            else sa.Column('cylinder_type', sa.String(length=32), nullable=False)
        )
        stock_columns = (
            [sa.Column('stock_source', sa.String(length=16), nullable=True),
             sa.Column('stock_item_id', sa.Integer(), nullable=True)]
            if table_name == 'b2c_accessory_items'
            else []
        )
        op.create_table(table_name,
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('transaction_id', sa.Integer(), nullable=False),
            name_column,
            sa.Column('quantity', sa.Integer(), nullable=False),
            sa.Column('price_per_item_cents', sa.Integer(), nullable=False),
            sa.Column('total_price_cents', sa.Integer(), nullable=False),
            sa.Column('cost_price_cents', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('total_cost_cents', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('profit_margin_cents', sa.Integer(), nullable=False, server_default='0'),
            *stock_columns,
            sa.ForeignKeyConstraint(['transaction_id'], ['b2c_transactions.id'], ),
            sa.PrimaryKeyConstraint('id'),
            sqlite_autoincrement=True
        )
        with op.batch_alter_table(table_name, schema=None) as batch_op:
            batch_op.create_index(batch_op.f(f'ix_{table_name}_transaction_id'), ['transaction_id'], unique=False)

    op.create_table('b2c_security_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('cylinder_type', sa.String(length=32), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price_per_item_cents', sa.Integer(), nullable=False),
        sa.Column('total_price_cents', sa.Integer(), nullable=False),
        sa.Column('is_return', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('deduction_rate', sa.Float(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['transaction_id'], ['b2c_transactions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('b2c_security_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_b2c_security_items_transaction_id'), ['transaction_id'], unique=False)

    op.create_table('b2c_cylinder_holdings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=True),
        sa.Column('cylinder_type', sa.String(length=32), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('security_amount_cents', sa.Integer(), nullable=False),
        sa.Column('issue_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_returned', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('return_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('return_deduction_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('return_transaction_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['b2c_customers.id'], ),
        sa.ForeignKeyConstraint(['transaction_id'], ['b2c_transactions.id'], ),
        sa.ForeignKeyConstraint(['return_transaction_id'], ['b2c_transactions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('b2c_cylinder_holdings', schema=None) as batch_op:
        batch_op.create_index('ix_b2c_holdings_customer_type_returned', ['customer_id', 'cylinder_type', 'is_returned'], unique=False)
        batch_op.create_index(batch_op.f('ix_b2c_cylinder_holdings_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_b2c_cylinder_holdings_transaction_id'), ['transaction_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_b2c_cylinder_holdings_return_transaction_id'), ['return_transaction_id'], unique=False)

    # ==========================================================================
    # 5. CYLINDERS
    # ==========================================================================
    op.create_table('cylinders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('cylinder_type', sa.String(length=32), nullable=False),
        sa.Column('capacity_kg', sa.Float(), nullable=False),
        sa.Column('current_status', sa.String(length=16), nullable=False, server_default='FULL'),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('held_by_customer_id', sa.Integer(), nullable=True),
        sa.Column('held_by_b2c_customer_id', sa.Integer(), nullable=True),
        sa.Column('returned_via_bill_sno', sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['held_by_customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['held_by_b2c_customer_id'], ['b2c_customers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code', name='uq_cylinders_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('cylinders', schema=None) as batch_op:
        batch_op.create_index('ix_cylinders_type_status', ['cylinder_type', 'current_status'], unique=False)
        batch_op.create_index(batch_op.f('ix_cylinders_current_status'), ['current_status'], unique=False)
        batch_op.create_index(batch_op.f('ix_cylinders_held_by_customer_id'), ['held_by_customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_cylinders_held_by_b2c_customer_id'), ['held_by_b2c_customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_cylinders_returned_via_bill_sno'), ['returned_via_bill_sno'], unique=False)


def downgrade():
    for table_name in (
        'cylinders',
        'b2c_cylinder_holdings',
        'b2c_security_items',
        'b2c_accessory_items',
        'b2c_gas_items',
        'b2c_transactions',
        'transaction_items',
        'transactions',
        'bill_sequences',
        'custom_items',
        'products',
        'b2c_customers',
        'customers',
    ):
        op.drop_table(table_name)
