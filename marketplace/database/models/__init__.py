"""
Database models package.

Importing this package registers every model on ``Base.metadata`` so Alembic
autogeneration sees the full schema.
"""

from marketplace.database.models.device_token import DeviceToken
from marketplace.database.models.order import Order, OrderItem
from marketplace.database.models.product import MAX_PRODUCT_IMAGES, Product

__all__ = [
    "DeviceToken",
    "MAX_PRODUCT_IMAGES",
    "Order",
    "OrderItem",
    "Product",
]
