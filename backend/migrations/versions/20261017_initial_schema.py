"""Initial schema: events, artisans, products, sales, product changes, inventory ledger

Revision ID: 20261017_initial
Revises:
Create Date: 2026-10-17

Creates:
1. events (derived phase; only the closed flag is stored)
2. artisans
3. products (no stock column; stock is ledger-derived)
4. sales (optimistic version_id)
5. product_changes (one per sale)
6. inventory_movements (append-only ledger, single owner)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261017_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. EVENTS
    # ==========================================================================
    op.create_table('events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('location', sa.String(length=200), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('commission_association_bps', sa.Integer(), nullable=False, server_default='1000'),
        sa.Column('commission_seller_bps', sa.Integer(), nullable=False, server_default='500'),
        sa.Column('is_closed', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('start_date < end_date', name='ck_events_dates_ordered'),
        sa.CheckConstraint('commission_association_bps BETWEEN 0 AND 10000', name='ck_events_commission_association_range'),
        sa.CheckConstraint('commission_seller_bps BETWEEN 0 AND 10000', name='ck_events_commission_seller_range'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_events_start_date', 'events', ['start_date'])

    # ==========================================================================
    # 2. ARTISANS
    # ==========================================================================
    op.create_table('artisans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('identification', sa.String(length=10), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('identification'),
        sqlite_autoincrement=True,
    )

    # ==========================================================================
    # 3. PRODUCTS
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=True),
        sa.Column('event_id', sa.Integer(), nullable=False),
        sa.Column('artisan_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('price_cents > 0', name='ck_products_price_positive'),
        sa.ForeignKeyConstraint(['event_id'], ['events.id']),
        sa.ForeignKeyConstraint(['artisan_id'], ['artisans.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', 'event_id', 'artisan_id', name='uq_products_name_event_artisan'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_products_event_id', 'products', ['event_id'])
    op.create_index('ix_products_artisan_id', 'products', ['artisan_id'])
    op.create_index('ix_products_event_artisan', 'products', ['event_id', 'artisan_id'])

    # ==========================================================================
    # 4. SALES
    # ==========================================================================
    op.create_table('sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('artisan_id', sa.Integer(), nullable=False),
        sa.Column('quantity_sold', sa.Integer(), nullable=False),
        sa.Column('value_charged_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=8), nullable=False),
        sa.Column('card_fee_cents', sa.Integer(), nullable=True),
        sa.Column('state', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('quantity_sold > 0', name='ck_sales_quantity_positive'),
        sa.CheckConstraint('value_charged_cents > 0', name='ck_sales_value_positive'),
        sa.ForeignKeyConstraint(['event_id'], ['events.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['artisan_id'], ['artisans.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_sales_event_id', 'sales', ['event_id'])
    op.create_index('ix_sales_product_id', 'sales', ['product_id'])
    op.create_index('ix_sales_artisan_id', 'sales', ['artisan_id'])
    op.create_index('ix_sales_state', 'sales', ['state'])
    op.create_index('ix_sales_event_state_date', 'sales', ['event_id', 'state', 'date'])

    # ==========================================================================
    # 5. PRODUCT CHANGES
    # ==========================================================================
    op.create_table('product_changes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_returned_id', sa.Integer(), nullable=False),
        sa.Column('product_delivered_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('delivered_product_price_cents', sa.Integer(), nullable=False),
        sa.Column('value_difference_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_method_difference', sa.String(length=8), nullable=True),
        sa.Column('card_fee_difference_cents', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_product_changes_quantity_positive'),
        sa.CheckConstraint('product_returned_id <> product_delivered_id', name='ck_product_changes_distinct_products'),
        sa.CheckConstraint('value_difference_cents >= 0', name='ck_product_changes_no_downgrade'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.ForeignKeyConstraint(['product_returned_id'], ['products.id']),
        sa.ForeignKeyConstraint(['product_delivered_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sale_id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_product_changes_product_returned_id', 'product_changes', ['product_returned_id'])
    op.create_index('ix_product_changes_product_delivered_id', 'product_changes', ['product_delivered_id'])
    op.create_index('ix_product_changes_created_at', 'product_changes', ['created_at'])

    # ==========================================================================
    # 6. INVENTORY MOVEMENTS
    # ==========================================================================
    op.create_table('inventory_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=8), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('change_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_invmov_quantity_positive'),
        sa.CheckConstraint("type IN ('IN', 'OUT')", name='ck_invmov_type'),
        sa.CheckConstraint('sale_id IS NULL OR change_id IS NULL', name='ck_invmov_single_owner'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.ForeignKeyConstraint(['change_id'], ['product_changes.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'sale_id', 'type', name='uq_invmov_product_sale_type'),
        sa.UniqueConstraint('product_id', 'change_id', 'type', name='uq_invmov_product_change_type'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_inventory_movements_product_id', 'inventory_movements', ['product_id'])
    op.create_index('ix_inventory_movements_sale_id', 'inventory_movements', ['sale_id'])
    op.create_index('ix_inventory_movements_change_id', 'inventory_movements', ['change_id'])
    op.create_index('ix_inventory_movements_created_at', 'inventory_movements', ['created_at'])
    op.create_index('ix_invmov_product_type', 'inventory_movements', ['product_id', 'type'])


def downgrade():
    op.drop_table('inventory_movements')
    op.drop_table('product_changes')
    op.drop_table('sales')
    op.drop_table('products')
    op.drop_table('artisans')
    op.drop_table('events')
