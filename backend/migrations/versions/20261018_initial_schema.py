"""Initial schema: stores, catalog, purchase orders, stock ledger, customer orders, audit

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

This migration creates:
1. Stores, suppliers and products (products.stock_cache is a derived counter)
2. Per-store document sequences (PO codes, order numbers)
3. Purchase orders and items (version_id optimistic lock)
4. Append-only stock ledger (UPDATE/DELETE refused by triggers)
5. Customer orders and items (version_id optimistic lock)
6. Append-only audit events (UPDATE/DELETE refused by triggers)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_initial'
down_revision = None
branch_labels = None
depends_on = None


def _create_append_only_triggers(table):
    """Refuse UPDATE and DELETE on `table`, including raw SQL and bulk statements."""
    dialect = op.get_bind().dialect.name
    if dialect == 'sqlite':
        for operation in ('UPDATE', 'DELETE'):
            op.execute(
                f"CREATE TRIGGER trg_{table}_no_{operation.lower()} BEFORE {operation} ON {table} "
                f"BEGIN SELECT RAISE(ABORT, '{table} rows are append-only'); END"
            )
    elif dialect == 'postgresql':
        op.execute(
            f"CREATE OR REPLACE FUNCTION {table}_refuse_change() RETURNS trigger AS $$ "
            f"BEGIN RAISE EXCEPTION '{table} rows are append-only'; END; "
            f"$$ LANGUAGE plpgsql"
        )
        op.execute(
            f"CREATE TRIGGER trg_{table}_append_only BEFORE UPDATE OR DELETE ON {table} "
            f"FOR EACH ROW EXECUTE FUNCTION {table}_refuse_change()"
        )


def upgrade():
    # ==========================================================================
    # 1. TENANCY AND CATALOG
    # ==========================================================================
    op.create_table('stores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('owner_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stores', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stores_code'), ['code'], unique=True)
        batch_op.create_index(batch_op.f('ix_stores_owner_user_id'), ['owner_user_id'], unique=False)

    op.create_table('suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('lead_time_days', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('lead_time_days >= 0', name='ck_suppliers_lead_time_nonneg'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('suppliers', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_suppliers_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_suppliers_user_id'), ['user_id'], unique=False)
        batch_op.create_index('ix_suppliers_store_active', ['store_id', 'is_active'], unique=False)

    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price_paise', sa.Integer(), nullable=True),
        sa.Column('cost_price_paise', sa.Integer(), nullable=True),
        sa.Column('reorder_point', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reorder_qty', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('stock_cache', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('reorder_point >= 0', name='ck_products_reorder_point_nonneg'),
        sa.CheckConstraint('reorder_qty >= 0', name='ck_products_reorder_qty_nonneg'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'sku', name='uq_products_store_sku'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_products_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_products_supplier_id'), ['supplier_id'], unique=False)
        batch_op.create_index('ix_products_store_active', ['store_id', 'is_active'], unique=False)

    # ==========================================================================
    # 2. DOCUMENT SEQUENCES
    # ==========================================================================
    op.create_table('document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'document_type', name='uq_doc_sequences_store_type'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('document_sequences', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_document_sequences_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_document_sequences_document_type'), ['document_type'], unique=False)

    # ==========================================================================
    # 3. PURCHASE ORDERS
    # ==========================================================================
    op.create_table('purchase_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=40), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('quotation_notes', sa.Text(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('subtotal_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('placed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('quotation_requested_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('quotation_submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('quotation_approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('quotation_rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('purchase_orders', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_purchase_orders_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_purchase_orders_supplier_id'), ['supplier_id'], unique=False)
        batch_op.create_index('ix_purchase_orders_store_status', ['store_id', 'status'], unique=False)
        batch_op.create_index('ix_purchase_orders_supplier_status', ['supplier_id', 'status'], unique=False)

    op.create_table('purchase_order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('qty', sa.Integer(), nullable=False),
        sa.Column('cost_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quoted_cost_paise', sa.Integer(), nullable=True),
        sa.CheckConstraint('qty > 0', name='ck_po_items_qty_positive'),
        sa.CheckConstraint('cost_paise >= 0', name='ck_po_items_cost_nonneg'),
        sa.CheckConstraint('quoted_cost_paise IS NULL OR quoted_cost_paise >= 0', name='ck_po_items_quoted_cost_nonneg'),
        sa.ForeignKeyConstraint(['purchase_order_id'], ['purchase_orders.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('purchase_order_id', 'product_id', name='uq_po_items_order_product'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('purchase_order_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_purchase_order_items_purchase_order_id'), ['purchase_order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_purchase_order_items_product_id'), ['product_id'], unique=False)

    # ==========================================================================
    # 4. STOCK LEDGER (append-only)
    # ==========================================================================
    op.create_table('stock_ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('ref_type', sa.String(length=32), nullable=False),
        sa.Column('ref_id', sa.Integer(), nullable=True),
        sa.Column('delta', sa.Integer(), nullable=False),
        sa.Column('unit_cost_paise', sa.Integer(), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('delta <> 0', name='ck_stock_ledger_delta_nonzero'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_ledger_entries', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stock_ledger_entries_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_ledger_entries_product_id'), ['product_id'], unique=False)
        batch_op.create_index('ix_stock_ledger_store_product', ['store_id', 'product_id'], unique=False)
        batch_op.create_index('ix_stock_ledger_ref', ['ref_type', 'ref_id'], unique=False)
    _create_append_only_triggers('stock_ledger_entries')

    # ==========================================================================
    # 5. CUSTOMER ORDERS
    # ==========================================================================
    op.create_table('customer_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('customer_user_id', sa.Integer(), nullable=True),
        sa.Column('buyer_name', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('total_amount_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('decision_reason', sa.Text(), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'order_number', name='uq_customer_orders_store_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('customer_orders', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_customer_orders_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_customer_orders_customer_user_id'), ['customer_user_id'], unique=False)
        batch_op.create_index('ix_customer_orders_store_status', ['store_id', 'status'], unique=False)

    op.create_table('customer_order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('qty', sa.Integer(), nullable=False),
        sa.Column('price_snap_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.CheckConstraint('qty > 0', name='ck_customer_order_items_qty_positive'),
        sa.ForeignKeyConstraint(['order_id'], ['customer_orders.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('customer_order_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_customer_order_items_order_id'), ['order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_customer_order_items_product_id'), ['product_id'], unique=False)

    # ==========================================================================
    # 6. AUDIT EVENTS (append-only)
    # ==========================================================================
    op.create_table('audit_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('previous_status', sa.String(length=40), nullable=True),
        sa.Column('new_status', sa.String(length=40), nullable=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('actor_role', sa.String(length=32), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('audit_events', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_audit_events_store_id'), ['store_id'], unique=False)
        batch_op.create_index('ix_audit_events_entity', ['entity_type', 'entity_id', 'occurred_at'], unique=False)
    _create_append_only_triggers('audit_events')


def downgrade():
    op.drop_table('audit_events')
    op.drop_table('customer_order_items')
    op.drop_table('customer_orders')
    op.drop_table('stock_ledger_entries')
    op.drop_table('purchase_order_items')
    op.drop_table('purchase_orders')
    op.drop_table('document_sequences')
    op.drop_table('products')
    op.drop_table('suppliers')
    op.drop_table('stores')

    if op.get_bind().dialect.name == 'postgresql':
        op.execute('DROP FUNCTION IF EXISTS audit_events_refuse_change()')
        op.execute('DROP FUNCTION IF EXISTS stock_ledger_entries_refuse_change()')
