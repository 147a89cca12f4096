"""
Alembic migration: Initial marketplace schema.

Creates products, orders, order items and device tokens. Orders and order
items are linked by the order's custom code without a foreign key.

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

order_status = postgresql.ENUM(
    'Purchased', 'Processing', 'Dispatched', 'Delivered',
    name='order_status',
    create_type=False,
)
order_item_status = postgresql.ENUM(
    'Purchased', 'Shipped', 'Delivered',
    name='order_item_status',
    create_type=False,
)
user_role = postgresql.ENUM(
    'admin', 'vendor', 'csr', 'customer',
    name='user_role',
    create_type=False,
)


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column(
            'id',
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            nullable=False,
            comment='Unique identifier for the record',
        ),
        sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            server_default=sa.text('now()'),
            nullable=False,
            comment='Timestamp when record was created',
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            server_default=sa.text('now()'),
            nullable=False,
            comment='Timestamp when record was last updated',
        ),
    ]


def upgrade() -> None:
    """
    Create the initial schema.
    """
    bind = op.get_bind()
    order_status.create(bind, checkfirst=True)
    order_item_status.create(bind, checkfirst=True)
    user_role.create(bind, checkfirst=True)

    op.create_table(
        'products',
        *_base_columns(),
        sa.Column('product_id', sa.String(16), nullable=False, comment='Custom product code'),
        sa.Column('name', sa.String(255), nullable=False, comment='Product display name'),
        sa.Column('description', sa.Text(), nullable=True, comment='Product description'),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, comment='Unit price'),
        sa.Column('quantity', sa.Integer(), nullable=False, comment='Units in stock'),
        sa.Column('category_id', sa.String(64), nullable=False, comment='Category identifier'),
        sa.Column('vendor_id', sa.String(64), nullable=False, comment='Owning vendor user id'),
        sa.Column(
            'image_urls',
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
            comment='Product image URLs',
        ),
        sa.Column(
            'is_deleted',
            sa.Boolean(),
            nullable=False,
            server_default=sa.text('false'),
            comment='Soft-delete flag',
        ),
        sa.CheckConstraint('quantity >= 0', name='ck_products_quantity_non_negative'),
        sa.CheckConstraint('price >= 0', name='ck_products_price_non_negative'),
    )
    op.create_index('ix_products_product_id', 'products', ['product_id'], unique=True)
    op.create_index('ix_products_category_id', 'products', ['category_id'])
    op.create_index('ix_products_vendor_id', 'products', ['vendor_id'])
    op.create_index('ix_products_vendor_deleted', 'products', ['vendor_id', 'is_deleted'])
    op.create_index('ix_products_quantity', 'products', ['quantity'])

    op.create_table(
        'orders',
        *_base_columns(),
        sa.Column('order_id', sa.String(16), nullable=False, comment='Custom order code'),
        sa.Column('customer_id', sa.String(64), nullable=False, comment='Ordering customer user id'),
        sa.Column('total_price', sa.Numeric(12, 2), nullable=False, comment='Derived order total'),
        sa.Column('status', order_status, nullable=False, comment='Current order status'),
        sa.Column('note', sa.Text(), nullable=True, comment='Order note'),
        sa.CheckConstraint('total_price >= 0', name='ck_orders_total_price_non_negative'),
    )
    op.create_index('ix_orders_order_id', 'orders', ['order_id'], unique=True)
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_customer_status', 'orders', ['customer_id', 'status'])

    op.create_table(
        'order_items',
        *_base_columns(),
        sa.Column('order_id', sa.String(16), nullable=False, comment='Parent order custom code'),
        sa.Column('product_id', sa.String(16), nullable=False, comment='Product custom code'),
        sa.Column('product_name', sa.String(255), nullable=False, comment='Product name snapshot'),
        sa.Column('vendor_id', sa.String(64), nullable=False, comment='Vendor id snapshot'),
        sa.Column('quantity', sa.Integer(), nullable=False, comment='Units ordered'),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, comment='Unit price snapshot'),
        sa.Column('status', order_item_status, nullable=False, comment='Item fulfillment status'),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
        sa.CheckConstraint('price >= 0', name='ck_order_items_price_non_negative'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'])
    op.create_index('ix_order_items_vendor_id', 'order_items', ['vendor_id'])
    op.create_index(
        'ix_order_items_order_product', 'order_items', ['order_id', 'product_id']
    )

    op.create_table(
        'device_tokens',
        *_base_columns(),
        sa.Column('user_id', sa.String(64), nullable=False, comment='Owning user id'),
        sa.Column('token', sa.String(4096), nullable=False, comment='FCM registration token'),
        sa.Column('role', user_role, nullable=False, comment='Role of the token owner'),
        sa.Column(
            'token_created_at',
            sa.DateTime(timezone=True),
            nullable=False,
            comment='When the current token was stored',
        ),
    )
    op.create_index('ix_device_tokens_user_id', 'device_tokens', ['user_id'], unique=True)
    op.create_index('ix_device_tokens_role', 'device_tokens', ['role'])


def downgrade() -> None:
    """
    Drop the initial schema.
    """
    op.drop_table('device_tokens')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('products')

    bind = op.get_bind()
    user_role.drop(bind, checkfirst=True)
    order_item_status.drop(bind, checkfirst=True)
    order_status.drop(bind, checkfirst=True)
