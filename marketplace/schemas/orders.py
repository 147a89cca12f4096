"""
Order and order item Pydantic schemas for API request/response validation.

Requests are only checked for shape here. Business rules such as a
non-empty product list, positive quantities and known status names are
enforced by the order service so they surface as 400 responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import Field, field_serializer

from marketplace.schemas.common import CamelModel
from marketplace.services.orders.service import OrderLine


class OrderLineRequest(CamelModel):
    """Requested product and quantity."""

    product_id: str = Field(..., description="Product custom code")
    quantity: int = Field(..., description="Units requested")

    def to_line(self) -> OrderLine:
        return OrderLine(product_id=self.product_id, quantity=self.quantity)


class OrderCreateRequest(CamelModel):
    """Request schema for placing an order."""

    customer_id: str = Field(..., description="Ordering customer user id")
    product_list: list[OrderLineRequest] = Field(
        default_factory=list,
        description="Products and quantities to order",
    )

    def lines(self) -> list[OrderLine]:
        return [line.to_line() for line in self.product_list]


class OrderUpdateRequest(CamelModel):
    """Request schema for replacing line quantities of an order."""

    product_list: list[OrderLineRequest] = Field(
        default_factory=list,
        description="Products and their new quantities",
    )

    def lines(self) -> list[OrderLine]:
        return [line.to_line() for line in self.product_list]


class OrderStatusUpdateRequest(CamelModel):
    """Request schema for changing an order's status and/or note."""

    new_status: Optional[str] = Field(
        None,
        description="Target status: Purchased, Processing, Dispatched or Delivered",
    )
    note: Optional[str] = Field(None, max_length=2000, description="Order note")


class OrderItemStatusUpdateRequest(CamelModel):
    """Request schema for changing an order item's status."""

    new_status: str = Field(
        ...,
        description="Target item status: Purchased, Shipped or Delivered",
    )


class OrderItemResponse(CamelModel):
    """Order item as returned by the API."""

    id: UUID
    order_id: str
    product_id: str
    product_name: str
    vendor_id: str
    quantity: int
    price: Decimal
    status: str
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_serializer("price")
    def serialize_price(self, value: Decimal) -> float:
        return float(value)


class OrderResponse(CamelModel):
    """Order with its items as returned by the API."""

    id: UUID
    order_id: str
    customer_id: str
    total_price: Decimal
    status: str
    note: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: list[OrderItemResponse] = Field(default_factory=list)

    @field_serializer("total_price")
    def serialize_total_price(self, value: Decimal) -> float:
        return float(value)
