"""
Order and order item models.

Orders and their items are linked by the order's custom code (``O#####``)
rather than by a storage-level foreign key; the order workflow keeps the two
tables consistent. Items snapshot the product name, vendor and unit price at
purchase time so later catalog edits do not rewrite order history.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column

from marketplace.database.base import BaseModel
from marketplace.services.orders.enums import OrderItemStatus, OrderStatus


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Order(BaseModel):
    """
    Customer order header.

    Attributes:
        order_id: Custom order code (``O`` + five digits)
        customer_id: Ordering customer's user id
        total_price: Sum of item price times quantity, never client supplied
        status: Current order status
        note: Optional free-text note set on status updates
    """

    __tablename__ = "orders"

    order_id: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        unique=True,
        index=True,
        comment="Custom order code",
    )

    customer_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
        comment="Ordering customer user id",
    )

    total_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Derived order total",
    )

    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(
            OrderStatus,
            name="order_status",
            create_constraint=True,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=OrderStatus.PURCHASED,
        index=True,
        comment="Current order status",
    )

    note: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        default="",
        comment="Order note",
    )

    __table_args__ = (
        Index("ix_orders_customer_status", "customer_id", "status"),
        CheckConstraint(
            "total_price >= 0",
            name="ck_orders_total_price_non_negative",
        ),
    )

    @property
    def is_terminal(self) -> bool:
        """Check if the order is frozen (dispatched or delivered)."""
        return self.status.is_terminal()

    def __repr__(self) -> str:
        return (
            f"<Order(order_id={self.order_id!r}, customer_id={self.customer_id!r}, "
            f"status={self.status.value})>"
        )


class OrderItem(BaseModel):
    """
    Single product line within an order.

    Attributes:
        order_id: Parent order's custom code
        product_id: Product custom code
        product_name: Product name at purchase time
        vendor_id: Vendor id at purchase time
        quantity: Units ordered, always positive
        price: Unit price at purchase or last update
        status: Per-item fulfillment status
    """

    __tablename__ = "order_items"

    order_id: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        index=True,
        comment="Parent order custom code",
    )

    product_id: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        index=True,
        comment="Product custom code",
    )

    product_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Product name snapshot",
    )

    vendor_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
        comment="Vendor id snapshot",
    )

    quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Units ordered",
    )

    price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        comment="Unit price snapshot",
    )

    status: Mapped[OrderItemStatus] = mapped_column(
        SQLEnum(
            OrderItemStatus,
            name="order_item_status",
            create_constraint=True,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=OrderItemStatus.PURCHASED,
        comment="Item fulfillment status",
    )

    __table_args__ = (
        Index("ix_order_items_order_product", "order_id", "product_id"),
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint("price >= 0", name="ck_order_items_price_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<OrderItem(order_id={self.order_id!r}, product_id={self.product_id!r}, "
            f"quantity={self.quantity}, status={self.status.value})>"
        )
