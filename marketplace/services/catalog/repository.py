"""
Product data access repository with atomic stock updates.

Stock changes are single conditional ``UPDATE ... RETURNING`` statements so
two concurrent orders can never both pass a stock check and drive quantity
below zero. Every mutation commits immediately; an order spanning several
products therefore leaves earlier deductions applied when a later line fails
unless the order service compensates.
"""

from typing import Optional, Sequence

from sqlalchemy import exists, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.logging import get_logger
from marketplace.database.base import utcnow
from marketplace.database.models.order import OrderItem
from marketplace.database.models.product import Product
from marketplace.services.orders.exceptions import RepositoryError

logger = get_logger(__name__)


class ProductRepositoryError(RepositoryError):
    """Raised when a product query or write fails at the database level."""

    pass


class ProductRepository:
    """
    Repository for product and stock data access.

    Lookups by code exclude soft-deleted products unless asked otherwise.
    Stock helpers return the new quantity, or None when the conditional
    update matched no row.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize product repository.

        Args:
            session: Async database session
        """
        self.session = session

    async def find_by_code(
        self,
        product_id: str,
        include_deleted: bool = False,
    ) -> Optional[Product]:
        """
        Get product by custom code.

        Args:
            product_id: Product custom code
            include_deleted: Whether soft-deleted products are returned

        Returns:
            Product if found, None otherwise

        Raises:
            ProductRepositoryError: If query fails
        """
        try:
            stmt = (
                select(Product)
                .where(Product.product_id == product_id)
                .execution_options(populate_existing=True)
            )
            if not include_deleted:
                stmt = stmt.where(Product.is_deleted.is_(False))
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch product", product_id=product_id, error=str(e))
            raise ProductRepositoryError(
                "Failed to fetch product",
                product_id=product_id,
                error=str(e),
            ) from e

    async def find_all_by_codes(self, product_ids: Sequence[str]) -> dict[str, Product]:
        """
        Get products for a set of codes, soft-deleted ones included.

        Returns:
            Mapping of product code to product
        """
        if not product_ids:
            return {}
        try:
            stmt = select(Product).where(Product.product_id.in_(set(product_ids)))
            result = await self.session.execute(stmt)
            return {product.product_id: product for product in result.scalars().all()}
        except SQLAlchemyError as e:
            logger.error("Failed to fetch products", count=len(product_ids), error=str(e))
            raise ProductRepositoryError(
                "Failed to fetch products",
                error=str(e),
            ) from e

    async def exists_by_code(self, product_id: str) -> bool:
        """Check if a code is taken, soft-deleted products included."""
        try:
            stmt = select(exists().where(Product.product_id == product_id))
            return bool(await self.session.scalar(stmt))
        except SQLAlchemyError as e:
            raise ProductRepositoryError(
                "Failed to check product code",
                product_id=product_id,
                error=str(e),
            ) from e

    async def find_by_vendor(self, vendor_id: str) -> list[Product]:
        """Get a vendor's active products."""
        try:
            stmt = (
                select(Product)
                .where(Product.vendor_id == vendor_id, Product.is_deleted.is_(False))
                .order_by(Product.created_at.desc())
            )
            result = await self.session.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise ProductRepositoryError(
                "Failed to fetch vendor products",
                vendor_id=vendor_id,
                error=str(e),
            ) from e

    async def find_all(self) -> list[Product]:
        """Get every active product."""
        try:
            stmt = (
                select(Product)
                .where(Product.is_deleted.is_(False))
                .order_by(Product.created_at.desc())
            )
            result = await self.session.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise ProductRepositoryError("Failed to fetch products", error=str(e)) from e

    async def find_low_stock(self, threshold: int) -> list[Product]:
        """
        Get active products whose quantity is at or below ``threshold``.

        Args:
            threshold: Inclusive stock ceiling

        Returns:
            Products ordered by ascending quantity
        """
        try:
            stmt = (
                select(Product)
                .where(Product.is_deleted.is_(False), Product.quantity <= threshold)
                .order_by(Product.quantity.asc(), Product.product_id.asc())
            )
            result = await self.session.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise ProductRepositoryError(
                "Failed to fetch low stock products",
                threshold=threshold,
                error=str(e),
            ) from e

    async def insert(self, product: Product) -> Product:
        """
        Persist a new product.

        Raises:
            ProductRepositoryError: If the insert fails, including code collisions
        """
        try:
            self.session.add(product)
            await self.session.commit()
            logger.info(
                "Product created",
                product_id=product.product_id,
                vendor_id=product.vendor_id,
            )
            return product
        except IntegrityError as e:
            await self.session.rollback()
            logger.error(
                "Product creation failed - integrity error",
                product_id=product.product_id,
                error=str(e),
            )
            raise ProductRepositoryError(
                "Product creation failed due to data integrity violation",
                product_id=product.product_id,
                error=str(e),
            ) from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise ProductRepositoryError(
                "Product creation failed due to database error",
                product_id=product.product_id,
                error=str(e),
            ) from e

    async def _update_quantity(self, stmt, product_id: str, action: str) -> Optional[int]:
        try:
            result = await self.session.execute(
                stmt.returning(Product.quantity).execution_options(
                    synchronize_session=False
                )
            )
            new_quantity = result.scalar_one_or_none()
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "Stock update failed",
                product_id=product_id,
                action=action,
                error=str(e),
            )
            raise ProductRepositoryError(
                "Stock update failed",
                product_id=product_id,
                action=action,
                error=str(e),
            ) from e

        logger.debug(
            "Stock updated",
            product_id=product_id,
            action=action,
            quantity=new_quantity,
        )
        return new_quantity

    async def decrement_if_available(self, product_id: str, requested: int) -> Optional[int]:
        """
        Deduct ``requested`` units only if that many are in stock.

        Args:
            product_id: Product custom code
            requested: Units to deduct

        Returns:
            Remaining quantity, or None if stock was insufficient or the
            product is missing
        """
        stmt = (
            update(Product)
            .where(
                Product.product_id == product_id,
                Product.is_deleted.is_(False),
                Product.quantity >= requested,
            )
            .values(quantity=Product.quantity - requested, updated_at=utcnow())
        )
        return await self._update_quantity(stmt, product_id, "decrement")

    async def reconcile_quantity(
        self,
        product_id: str,
        previous: int,
        requested: int,
    ) -> Optional[int]:
        """
        Swap an order line's reservation from ``previous`` to ``requested`` units.

        Succeeds only if ``quantity + previous >= requested``; stock becomes
        ``quantity + previous - requested``.

        Returns:
            New quantity, or None if the headroom was insufficient
        """
        stmt = (
            update(Product)
            .where(
                Product.product_id == product_id,
                Product.is_deleted.is_(False),
                Product.quantity + previous >= requested,
            )
            .values(
                quantity=Product.quantity + previous - requested,
                updated_at=utcnow(),
            )
        )
        return await self._update_quantity(stmt, product_id, "reconcile")

    async def restore_quantity(self, product_id: str, quantity: int) -> Optional[int]:
        """Add ``quantity`` units back to stock."""
        stmt = (
            update(Product)
            .where(Product.product_id == product_id)
            .values(quantity=Product.quantity + quantity, updated_at=utcnow())
        )
        return await self._update_quantity(stmt, product_id, "restore")

    async def set_quantity(self, product_id: str, quantity: int) -> Optional[int]:
        """Overwrite the stock level of an active product."""
        stmt = (
            update(Product)
            .where(Product.product_id == product_id, Product.is_deleted.is_(False))
            .values(quantity=quantity, updated_at=utcnow())
        )
        return await self._update_quantity(stmt, product_id, "set")

    async def is_referenced_by_any_order_item(self, product_id: str) -> bool:
        """Check if any order item points at the product."""
        try:
            stmt = select(exists().where(OrderItem.product_id == product_id))
            return bool(await self.session.scalar(stmt))
        except SQLAlchemyError as e:
            raise ProductRepositoryError(
                "Failed to check product references",
                product_id=product_id,
                error=str(e),
            ) from e

    async def set_deleted(self, product_id: str, vendor_id: str, is_deleted: bool) -> bool:
        """
        Set the soft-delete flag on a vendor's own product.

        Returns:
            True if a product owned by ``vendor_id`` was updated
        """
        try:
            stmt = (
                update(Product)
                .where(Product.product_id == product_id, Product.vendor_id == vendor_id)
                .values(is_deleted=is_deleted, updated_at=utcnow())
                .returning(Product.id)
                .execution_options(synchronize_session=False)
            )
            result = await self.session.execute(stmt)
            updated = result.scalar_one_or_none() is not None
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise ProductRepositoryError(
                "Failed to update product delete flag",
                product_id=product_id,
                error=str(e),
            ) from e

        logger.info(
            "Product delete flag updated",
            product_id=product_id,
            vendor_id=vendor_id,
            is_deleted=is_deleted,
            updated=updated,
        )
        return updated
