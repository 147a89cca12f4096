"""
Product model for vendor catalog entries and stock levels.

Products are referenced everywhere by their custom ``product_id`` code
(``P#####``). Stock (``quantity``) is only changed through the catalog
repository's atomic update helpers so it can never go negative.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from marketplace.database.base import BaseModel

MAX_PRODUCT_IMAGES = 5


class Product(BaseModel):
    """
    Product model for a vendor's catalog item.

    Attributes:
        product_id: Custom product code (``P`` + five digits)
        name: Display name
        description: Optional long description
        price: Unit price with two decimal places
        quantity: Units in stock, never negative
        category_id: Category identifier
        vendor_id: Owning vendor's user id
        image_urls: Up to five image URLs, first one is the thumbnail
        is_deleted: Soft-delete flag
    """

    __tablename__ = "products"

    product_id: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        unique=True,
        index=True,
        comment="Custom product code",
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Product display name",
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Product description",
    )

    price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        comment="Unit price",
    )

    quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Units in stock",
    )

    category_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
        comment="Category identifier",
    )

    vendor_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
        comment="Owning vendor user id",
    )

    image_urls: Mapped[list[str]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        server_default=text("'[]'::jsonb"),
        comment="Product image URLs",
    )

    is_deleted: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
        comment="Soft-delete flag",
    )

    __table_args__ = (
        Index("ix_products_vendor_deleted", "vendor_id", "is_deleted"),
        Index("ix_products_quantity", "quantity"),
        CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
    )

    @property
    def primary_image_url(self) -> Optional[str]:
        """First image URL, used as the thumbnail in order views."""
        return self.image_urls[0] if self.image_urls else None

    def __repr__(self) -> str:
        return (
            f"<Product(product_id={self.product_id!r}, name={self.name!r}, "
            f"quantity={self.quantity})>"
        )
