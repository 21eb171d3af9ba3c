"""create_orders_tables

Revision ID: 3c9e1f0a7b21
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3c9e1f0a7b21'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


order_status_enum = postgresql.ENUM(
    'pending', 'processing', 'shipped', 'delivered', 'completed',
    'cancelled', 'refunded',
    name='order_status_enum', create_type=False,
)
payment_status_enum = postgresql.ENUM(
    'pending', 'paid', 'failed', 'expired', 'refunded',
    name='payment_status_enum', create_type=False,
)
payment_method_enum = postgresql.ENUM(
    'cod', 'xendit', name='payment_method_enum', create_type=False,
)
reservation_status_enum = postgresql.ENUM(
    'active', 'confirmed', 'released', 'expired',
    name='reservation_status_enum', create_type=False,
)
actor_role_enum = postgresql.ENUM(
    'customer', 'seller', 'admin', 'system',
    name='actor_role_enum', create_type=False,
)
discount_type_enum = postgresql.ENUM(
    'percentage', 'fixed', name='discount_type_enum', create_type=False,
)

ENUMS = (
    order_status_enum,
    payment_status_enum,
    payment_method_enum,
    reservation_status_enum,
    actor_role_enum,
    discount_type_enum,
)


def upgrade() -> None:
    """Upgrade schema - Create products, orders, reservations, payments and coupons."""
    bind = op.get_bind()
    for enum in ENUMS:
        enum.create(bind, checkfirst=True)

    # Create products table
    op.create_table(
        'products',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('store_id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('stock', sa.Integer(), server_default='0', nullable=False),
        sa.Column('reserved_stock', sa.Integer(), server_default='0', nullable=False),
        sa.Column('sold_stock', sa.Integer(), server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('stock >= 0', name='ck_products_non_negative_stock'),
        sa.CheckConstraint(
            'reserved_stock >= 0 AND reserved_stock <= stock',
            name='ck_products_valid_reserved',
        ),
        sa.CheckConstraint('sold_stock >= 0', name='ck_products_non_negative_sold'),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
    )
    op.create_index('ix_products_store_id', 'products', ['store_id'])

    # Create orders table
    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('store_id', sa.String(length=64), nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('shipping', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('discount', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('coupon_code', sa.String(length=50), nullable=True),
        sa.Column('status', order_status_enum, server_default='pending', nullable=False),
        sa.Column('payment_method', payment_method_enum, nullable=False),
        sa.Column(
            'payment_status', payment_status_enum,
            server_default='pending', nullable=False,
        ),
        sa.Column('shipping_address_id', sa.String(length=64), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('xendit_invoice_id', sa.String(length=100), nullable=True),
        sa.Column('xendit_invoice_url', sa.Text(), nullable=True),
        sa.Column('payment_deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('total >= 0', name='ck_orders_non_negative_total'),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_store_id', 'orders', ['store_id'])
    op.create_index('ix_orders_xendit_invoice_id', 'orders', ['xendit_invoice_id'])
    op.create_index(
        'ix_orders_payment_method_payment_status',
        'orders',
        ['payment_method', 'payment_status'],
    )

    # Create order_items table
    op.create_table(
        'order_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('line_total', sa.Numeric(12, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_positive_quantity'),
        sa.ForeignKeyConstraint(
            ['order_id'], ['orders.id'],
            name='fk_order_items_order_id_orders', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['product_id'], ['products.id'],
            name='fk_order_items_product_id_products',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_order_items'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    # Create order_status_history table
    op.create_table(
        'order_status_history',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('old_status', order_status_enum, nullable=True),
        sa.Column('new_status', order_status_enum, nullable=False),
        sa.Column('changed_by', sa.String(length=64), nullable=True),
        sa.Column('changed_by_role', actor_role_enum, nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['order_id'], ['orders.id'],
            name='fk_order_status_history_order_id_orders', ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_order_status_history'),
    )
    op.create_index(
        'ix_order_status_history_order_id', 'order_status_history', ['order_id']
    )

    # Create order_number_sequences table
    op.create_table(
        'order_number_sequences',
        sa.Column('date_key', sa.String(length=8), nullable=False),
        sa.Column('last_value', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('date_key', name='pk_order_number_sequences'),
    )

    # Create stock_reservations table
    op.create_table(
        'stock_reservations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column(
            'status', reservation_status_enum,
            server_default='active', nullable=False,
        ),
        sa.Column('reserved_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('released_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            'quantity > 0', name='ck_stock_reservations_positive_quantity'
        ),
        sa.ForeignKeyConstraint(
            ['order_id'], ['orders.id'],
            name='fk_stock_reservations_order_id_orders', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['product_id'], ['products.id'],
            name='fk_stock_reservations_product_id_products',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_stock_reservations'),
    )
    op.create_index(
        'ix_stock_reservations_order_id', 'stock_reservations', ['order_id']
    )
    op.create_index(
        'ix_stock_reservations_product_id', 'stock_reservations', ['product_id']
    )
    op.create_index(
        'ix_stock_reservations_status_expires_at',
        'stock_reservations',
        ['status', 'expires_at'],
    )

    # Create payment_transactions table
    op.create_table(
        'payment_transactions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('payment_method', payment_method_enum, nullable=False),
        sa.Column('xendit_invoice_id', sa.String(length=100), nullable=True),
        sa.Column('xendit_payment_id', sa.String(length=100), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column(
            'status', payment_status_enum,
            server_default='pending', nullable=False,
        ),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            'provider_response',
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=True,
        ),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['order_id'], ['orders.id'],
            name='fk_payment_transactions_order_id_orders', ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_payment_transactions'),
        sa.UniqueConstraint('order_id', name='uq_payment_transactions_order_id'),
    )
    op.create_index(
        'ix_payment_transactions_xendit_invoice_id',
        'payment_transactions',
        ['xendit_invoice_id'],
    )

    # Create coupons table
    op.create_table(
        'coupons',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('code', sa.String(length=50), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('discount_type', discount_type_enum, nullable=False),
        sa.Column('discount_value', sa.Numeric(12, 2), nullable=False),
        sa.Column('min_purchase', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('max_discount', sa.Numeric(12, 2), nullable=True),
        sa.Column('usage_limit', sa.Integer(), nullable=False),
        sa.Column('used_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('for_plus_only', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('for_new_users', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('used_count >= 0', name='ck_coupons_non_negative_used'),
        sa.CheckConstraint(
            'used_count <= usage_limit', name='ck_coupons_within_usage_limit'
        ),
        sa.CheckConstraint('discount_value > 0', name='ck_coupons_positive_value'),
        sa.PrimaryKeyConstraint('id', name='pk_coupons'),
    )
    op.create_index('ix_coupons_code', 'coupons', ['code'], unique=True)

    # Create coupon_usages table
    op.create_table(
        'coupon_usages',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('coupon_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('discount_applied', sa.Numeric(12, 2), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['coupon_id'], ['coupons.id'],
            name='fk_coupon_usages_coupon_id_coupons', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['order_id'], ['orders.id'],
            name='fk_coupon_usages_order_id_orders', ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_coupon_usages'),
        sa.UniqueConstraint('order_id', name='uq_coupon_usages_order_id'),
    )
    op.create_index('ix_coupon_usages_coupon_id', 'coupon_usages', ['coupon_id'])
    op.create_index('ix_coupon_usages_user_id', 'coupon_usages', ['user_id'])


def downgrade() -> None:
    """Downgrade schema - Drop orders service tables."""
    op.drop_table('coupon_usages')
    op.drop_table('coupons')
    op.drop_table('payment_transactions')
    op.drop_table('stock_reservations')
    op.drop_table('order_number_sequences')
    op.drop_table('order_status_history')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('products')

    bind = op.get_bind()
    for enum in reversed(ENUMS):
        enum.drop(bind, checkfirst=True)
