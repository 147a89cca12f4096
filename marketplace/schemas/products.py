"""
Product Pydantic schemas for catalog and stock endpoints.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import Field, field_serializer, field_validator

from marketplace.database.models.product import MAX_PRODUCT_IMAGES
from marketplace.schemas.common import CamelModel


class ProductCreateRequest(CamelModel):
    """Request schema for creating a product."""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    price: Decimal = Field(..., ge=0, decimal_places=2)
    quantity: int = Field(..., ge=0)
    category_id: str = Field(..., min_length=1, max_length=64)
    vendor_id: str = Field(..., min_length=1, max_length=64)
    image_urls: list[str] = Field(default_factory=list)

    @field_validator("image_urls")
    @classmethod
    def validate_image_count(cls, v: list[str]) -> list[str]:
        """Reject more images than a product can hold."""
        if len(v) > MAX_PRODUCT_IMAGES:
            raise ValueError(f"A product can have at most {MAX_PRODUCT_IMAGES} images")
        return v


class ProductResponse(CamelModel):
    """Product as returned by the API."""

    id: UUID
    product_id: str
    name: str
    description: Optional[str] = None
    price: Decimal
    quantity: int
    category_id: str
    vendor_id: str
    image_urls: list[str] = Field(default_factory=list)
    is_deleted: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_serializer("price")
    def serialize_price(self, value: Decimal) -> float:
        return float(value)


class StockResponse(CamelModel):
    """Current stock level of a product."""

    product_id: str
    name: str
    quantity: int


class StockUpdateRequest(CamelModel):
    """Request schema for overwriting a product's stock level."""

    new_quantity: int = Field(..., description="New stock level, zero or more")


class ProductDeleteRequest(CamelModel):
    """Request schema for soft deleting or restoring a product."""

    product_id: str = Field(..., min_length=1)
    vendor_id: str = Field(..., min_length=1)
    is_deleted: bool = True
