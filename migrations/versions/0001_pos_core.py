"""pos core schema

Revision ID: 0001_pos_core
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the point-of-sale schema:
- users, stores, customers: records referenced by sales
- inventory_items: per-store stock with CHECK (stock >= 0)
- inventory_movements: stock journal written with each sale and cancellation
- sales, sale_line_items: sale header and immutable lines
- sale_sequences: per-store sale numbering
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '0001_pos_core'
down_revision = None
branch_labels = None
depends_on = None


record_state = postgresql.ENUM('active', 'deleted', name='record_state', create_type=False)
payment_method = postgresql.ENUM('cash', 'card', 'credit', 'mixed', name='payment_method', create_type=False)
payment_status = postgresql.ENUM('paid', 'partial', 'pending', name='payment_status', create_type=False)
sale_status = postgresql.ENUM('completed', 'cancelled', 'refunded', name='sale_status', create_type=False)

ENUM_TYPES = (record_state, payment_method, payment_status, sale_status)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _lifecycle():
    return [
        sa.Column('record_state', record_state, nullable=False, server_default='active'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    for enum_type in ENUM_TYPES:
        enum_type.create(bind, checkfirst=True)

    # ============================================================================
    # Referenced records
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False, unique=True),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        'stores',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('code', sa.String(length=20), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('phone_number', sa.String(length=20), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
        *_lifecycle(),
        sa.UniqueConstraint('tenant_id', 'name', name='uq_store_tenant_name'),
    )
    op.create_index('ix_stores_tenant_id', 'stores', ['tenant_id'])
    op.create_index('ix_stores_record_state', 'stores', ['record_state'])

    op.create_table(
        'customers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('email', sa.String(length=100), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        *_lifecycle(),
    )
    op.create_index('ix_customers_tenant_id', 'customers', ['tenant_id'])
    op.create_index('ix_customers_name', 'customers', ['name'])
    op.create_index('ix_customers_record_state', 'customers', ['record_state'])

    # ============================================================================
    # Inventory
    # ============================================================================
    op.create_table(
        'inventory_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('store_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('stores.id'), nullable=False),
        sa.Column('item_name', sa.String(length=200), nullable=False),
        sa.Column('item_code', sa.String(length=50), nullable=False),
        sa.Column('unit', sa.String(length=20), nullable=False, server_default='unit'),
        sa.Column('price', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('tax_percentage', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('min_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        *_lifecycle(),
        sa.CheckConstraint('stock >= 0', name='ck_inventory_items_stock_non_negative'),
        sa.UniqueConstraint('tenant_id', 'store_id', 'item_code', name='uq_inventory_item_tenant_store_code'),
    )
    op.create_index('ix_inventory_items_tenant_id', 'inventory_items', ['tenant_id'])
    op.create_index('ix_inventory_items_store_id', 'inventory_items', ['store_id'])
    op.create_index('ix_inventory_items_record_state', 'inventory_items', ['record_state'])

    op.create_table(
        'inventory_movements',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('inventory_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('inventory_items.id'), nullable=False),
        sa.Column('store_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('stores.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('stock_after', sa.Integer(), nullable=False),
        sa.Column('movement_type', sa.String(length=20), nullable=False),
        sa.Column('reference', sa.String(length=100), nullable=True),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('created_by', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_inventory_movements_tenant_id', 'inventory_movements', ['tenant_id'])
    op.create_index('ix_inventory_movements_inventory_id', 'inventory_movements', ['inventory_id'])

    # ============================================================================
    # Sales
    # ============================================================================
    op.create_table(
        'sales',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('sale_number', sa.String(length=50), nullable=False),
        sa.Column('sale_date', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('store_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('stores.id'), nullable=False),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('customers.id'), nullable=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('subtotal', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('tax_amount', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('discount_amount', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('sale_discount_amount', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('payment_method', payment_method, nullable=False, server_default='cash'),
        sa.Column('payment_status', payment_status, nullable=False),
        sa.Column('amount_paid', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('amount_due', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sale_status, nullable=False, server_default='completed'),
        sa.Column('created_by', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('updated_by', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('cancelled_by', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        *_lifecycle(),
        sa.UniqueConstraint('tenant_id', 'store_id', 'sale_number', name='uq_sale_tenant_store_number'),
    )
    for column in ('tenant_id', 'sale_number', 'sale_date', 'store_id', 'customer_id',
                   'user_id', 'payment_status', 'status', 'record_state'):
        op.create_index(f'ix_sales_{column}', 'sales', [column])

    op.create_table(
        'sale_line_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('sale_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('sales.id'), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('inventory_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('inventory_items.id'), nullable=False),
        sa.Column('item_name', sa.String(length=200), nullable=False),
        sa.Column('item_code', sa.String(length=50), nullable=False),
        sa.Column('unit', sa.String(length=20), nullable=False),
        sa.Column('unit_price', sa.Numeric(15, 2), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('tax_percentage', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('discount_percentage', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('subtotal', sa.Numeric(15, 2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(15, 2), nullable=False),
        sa.Column('tax_amount', sa.Numeric(15, 2), nullable=False),
        sa.Column('line_total', sa.Numeric(15, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('sale_id', 'line_number', name='uq_sale_line_number'),
    )
    op.create_index('ix_sale_line_items_tenant_id', 'sale_line_items', ['tenant_id'])
    op.create_index('ix_sale_line_items_sale_id', 'sale_line_items', ['sale_id'])
    op.create_index('ix_sale_line_items_inventory_id', 'sale_line_items', ['inventory_id'])

    op.create_table(
        'sale_sequences',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('store_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('stores.id'), nullable=False),
        sa.Column('prefix', sa.String(length=20), nullable=False),
        sa.Column('current_number', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.UniqueConstraint('tenant_id', 'store_id', name='uq_sale_sequence_tenant_store'),
    )
    op.create_index('ix_sale_sequences_tenant_id', 'sale_sequences', ['tenant_id'])


def downgrade():
    for table in ('sale_sequences', 'sale_line_items', 'sales', 'inventory_movements',
                  'inventory_items', 'customers', 'stores', 'users'):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_type in reversed(ENUM_TYPES):
        enum_type.drop(bind, checkfirst=True)
