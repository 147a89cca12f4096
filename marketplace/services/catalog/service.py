"""
Catalog service for product creation, stock administration and soft delete.

Order-driven stock changes go through the order service; this service covers
the vendor and admin operations around a product's lifecycle.
"""

import random
import uuid
from decimal import Decimal
from typing import Any, Optional, Sequence

from marketplace.core.config import get_settings
from marketplace.core.logging import get_logger
from marketplace.database.models.product import MAX_PRODUCT_IMAGES, Product
from marketplace.services.catalog.repository import ProductRepository
from marketplace.services.orders.exceptions import (
    InvalidOrderInputError,
    ProductInUseError,
    ProductNotFoundError,
)
from marketplace.services.orders.id_generator import PRODUCT_PREFIX, generate_unique_code

logger = get_logger(__name__)


class CatalogService:
    """
    Product lifecycle operations.

    Attributes:
        repository: Product repository
        rng: Random source for product codes
    """

    def __init__(
        self,
        repository: ProductRepository,
        rng: Optional[random.Random] = None,
        max_id_attempts: Optional[int] = None,
    ):
        """
        Initialize catalog service.

        Args:
            repository: Product repository
            rng: Random source for product codes
            max_id_attempts: Code generation attempt cap (defaults to settings)
        """
        self.repository = repository
        self.rng = rng or random.Random()
        self.max_id_attempts = max_id_attempts or get_settings().order_id_max_attempts

    async def create_product(
        self,
        name: str,
        price: Decimal,
        quantity: int,
        category_id: str,
        vendor_id: str,
        description: Optional[str] = None,
        image_urls: Optional[Sequence[str]] = None,
    ) -> Product:
        """
        Create a product with a generated ``P#####`` code.

        Raises:
            InvalidOrderInputError: If price, quantity or images are invalid
            IdGenerationError: If no free code could be generated
        """
        image_urls = list(image_urls or [])
        if len(image_urls) > MAX_PRODUCT_IMAGES:
            raise InvalidOrderInputError(
                f"A product can have at most {MAX_PRODUCT_IMAGES} images.",
                image_count=len(image_urls),
            )
        if price < 0:
            raise InvalidOrderInputError("Price cannot be negative.", price=str(price))
        if quantity < 0:
            raise InvalidOrderInputError("Quantity cannot be negative.", quantity=quantity)

        product_id = await generate_unique_code(
            PRODUCT_PREFIX,
            self.repository.exists_by_code,
            rng=self.rng,
            max_attempts=self.max_id_attempts,
        )

        product = Product(
            id=uuid.uuid4(),
            product_id=product_id,
            name=name,
            description=description,
            price=price,
            quantity=quantity,
            category_id=category_id,
            vendor_id=vendor_id,
            image_urls=image_urls,
            is_deleted=False,
        )
        return await self.repository.insert(product)

    async def get_stock(self, product_id: str) -> dict[str, Any]:
        """
        Get a product's current stock level.

        Returns:
            Dictionary with product_id, name and quantity

        Raises:
            ProductNotFoundError: If the product does not exist
        """
        product = await self.repository.find_by_code(product_id)
        if product is None:
            raise ProductNotFoundError(
                f"Product with ID {product_id} not found",
                product_id=product_id,
            )
        return {
            "product_id": product.product_id,
            "name": product.name,
            "quantity": product.quantity,
        }

    async def set_stock(self, product_id: str, quantity: int) -> dict[str, Any]:
        """
        Overwrite a product's stock level.

        Raises:
            InvalidOrderInputError: If quantity is negative
            ProductNotFoundError: If the product does not exist
        """
        if quantity < 0:
            raise InvalidOrderInputError("Quantity cannot be negative.", quantity=quantity)

        new_quantity = await self.repository.set_quantity(product_id, quantity)
        if new_quantity is None:
            raise ProductNotFoundError(
                f"Product with ID {product_id} not found",
                product_id=product_id,
            )

        logger.info("Stock level set", product_id=product_id, quantity=new_quantity)
        return await self.get_stock(product_id)

    async def list_low_stock(self, threshold: Optional[int] = None) -> list[Product]:
        """Products with quantity at or below ``threshold`` (defaults to settings)."""
        if threshold is None:
            threshold = get_settings().low_stock_threshold
        if threshold < 0:
            raise InvalidOrderInputError("Threshold cannot be negative.", threshold=threshold)
        return await self.repository.find_low_stock(threshold)

    async def set_deleted(self, product_id: str, vendor_id: str, is_deleted: bool) -> None:
        """
        Soft delete (or restore) a vendor's own product.

        Raises:
            ProductInUseError: If deleting a product referenced by an order item
            ProductNotFoundError: If the product is missing or owned by someone else
        """
        if is_deleted and await self.repository.is_referenced_by_any_order_item(product_id):
            logger.info(
                "Product delete refused, referenced by orders",
                product_id=product_id,
            )
            raise ProductInUseError(
                "Cannot delete this product as it is part of an existing order.",
                product_id=product_id,
            )

        if not await self.repository.set_deleted(product_id, vendor_id, is_deleted):
            raise ProductNotFoundError(
                "Product not found or you're not the owner",
                product_id=product_id,
                vendor_id=vendor_id,
            )
