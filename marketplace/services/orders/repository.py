"""
Order and order item data access repositories.

This module implements OrderRepository and OrderItemRepository providing
async methods over the ``orders`` and ``order_items`` tables. Orders and
items are related by the order's custom code, not a foreign key, so lookups
that need both are issued as two queries. Each write commits on its own.
"""

import uuid
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import delete, exists, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.logging import get_logger
from marketplace.database.base import utcnow
from marketplace.database.models.order import Order, OrderItem
from marketplace.services.orders.enums import OrderItemStatus, OrderStatus
from marketplace.services.orders.exceptions import RepositoryError

logger = get_logger(__name__)


class OrderRepositoryError(RepositoryError):
    """Raised when an order or order item query or write fails."""

    pass


class _BaseRepository:
    def __init__(self, session: AsyncSession):
        """
        Initialize repository.

        Args:
            session: Async database session
        """
        self.session = session

    async def _commit(self, action: str, **context: Any) -> None:
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            logger.error(f"{action} failed - integrity error", error=str(e), **context)
            raise OrderRepositoryError(
                f"{action} failed due to data integrity violation",
                error=str(e),
                **context,
            ) from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"{action} failed - database error", error=str(e), **context)
            raise OrderRepositoryError(
                f"{action} failed due to database error",
                error=str(e),
                **context,
            ) from e


class OrderRepository(_BaseRepository):
    """
    Repository for order header data access.

    Provides lookups by custom code and customer, and narrow update methods
    for status, note and total so concurrent writers touch only the columns
    they own.
    """

    async def insert(self, order: Order) -> Order:
        """
        Persist a new order.

        Raises:
            OrderRepositoryError: If the insert fails
        """
        self.session.add(order)
        await self._commit("Order creation", order_id=order.order_id)
        logger.info(
            "Order persisted",
            order_id=order.order_id,
            customer_id=order.customer_id,
            total_price=str(order.total_price),
        )
        return order

    async def find_by_code(self, order_id: str) -> Optional[Order]:
        """
        Get order by custom code.

        Args:
            order_id: Order custom code

        Returns:
            Order if found, None otherwise

        Raises:
            OrderRepositoryError: If query fails
        """
        try:
            result = await self.session.execute(
                select(Order).where(Order.order_id == order_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch order", order_id=order_id, error=str(e))
            raise OrderRepositoryError(
                "Failed to fetch order",
                order_id=order_id,
                error=str(e),
            ) from e

    async def exists_by_code(self, order_id: str) -> bool:
        """Check if an order code is already taken."""
        try:
            return bool(
                await self.session.scalar(select(exists().where(Order.order_id == order_id)))
            )
        except SQLAlchemyError as e:
            raise OrderRepositoryError(
                "Failed to check order code",
                order_id=order_id,
                error=str(e),
            ) from e

    async def _find_many(self, stmt, description: str, **context: Any) -> list[Order]:
        try:
            result = await self.session.execute(stmt.order_by(Order.created_at.desc()))
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch {description}", error=str(e), **context)
            raise OrderRepositoryError(
                f"Failed to fetch {description}",
                error=str(e),
                **context,
            ) from e

    async def find_all_by_customer(self, customer_id: str) -> list[Order]:
        """Get a customer's orders, newest first."""
        return await self._find_many(
            select(Order).where(Order.customer_id == customer_id),
            "customer orders",
            customer_id=customer_id,
        )

    async def find_all_by_codes(self, order_ids: Sequence[str]) -> list[Order]:
        """Get orders for a set of custom codes, newest first."""
        if not order_ids:
            return []
        return await self._find_many(
            select(Order).where(Order.order_id.in_(set(order_ids))),
            "orders by code",
            count=len(order_ids),
        )

    async def find_all(self) -> list[Order]:
        """Get every order, newest first."""
        return await self._find_many(select(Order), "orders")

    async def replace(self, order: Order) -> Order:
        """
        Persist in-memory changes to status and note of a loaded order.

        Args:
            order: Order instance already attached to the session

        Returns:
            Updated order
        """
        order.updated_at = utcnow()
        await self._commit("Order update", order_id=order.order_id)
        return order

    async def _update_columns(self, order_id: str, action: str, **values: Any) -> bool:
        try:
            result = await self.session.execute(
                update(Order)
                .where(Order.order_id == order_id)
                .values(updated_at=utcnow(), **values)
                .returning(Order.id)
                .execution_options(synchronize_session="fetch")
            )
            updated = result.scalar_one_or_none() is not None
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise OrderRepositoryError(
                f"{action} failed due to database error",
                order_id=order_id,
                error=str(e),
            ) from e
        await self._commit(action, order_id=order_id)
        return updated

    async def update_status(self, order_id: str, status: OrderStatus) -> bool:
        """Set an order's status; returns False if the order does not exist."""
        return await self._update_columns(order_id, "Order status update", status=status)

    async def update_total_price(self, order_id: str, total_price: Decimal) -> bool:
        """Set an order's total; returns False if the order does not exist."""
        return await self._update_columns(
            order_id, "Order total update", total_price=total_price
        )


class OrderItemRepository(_BaseRepository):
    """Repository for order item data access."""

    async def insert(self, item: OrderItem) -> OrderItem:
        """
        Persist a new order item.

        Raises:
            OrderRepositoryError: If the insert fails
        """
        self.session.add(item)
        await self._commit(
            "Order item creation",
            order_id=item.order_id,
            product_id=item.product_id,
        )
        return item

    async def find_by_id(self, item_id: uuid.UUID) -> Optional[OrderItem]:
        """Get order item by its system id."""
        try:
            return await self.session.get(OrderItem, item_id)
        except SQLAlchemyError as e:
            raise OrderRepositoryError(
                "Failed to fetch order item",
                item_id=str(item_id),
                error=str(e),
            ) from e

    async def _find_many(self, stmt, description: str, **context: Any) -> list[OrderItem]:
        try:
            result = await self.session.execute(
                stmt.order_by(OrderItem.created_at.asc(), OrderItem.product_id.asc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch {description}", error=str(e), **context)
            raise OrderRepositoryError(
                f"Failed to fetch {description}",
                error=str(e),
                **context,
            ) from e

    async def find_all_by_order(self, order_id: str) -> list[OrderItem]:
        """Get every item of an order."""
        return await self._find_many(
            select(OrderItem).where(OrderItem.order_id == order_id),
            "order items",
            order_id=order_id,
        )

    async def find_all_by_orders(self, order_ids: Sequence[str]) -> list[OrderItem]:
        """Get items for several orders in one query."""
        if not order_ids:
            return []
        return await self._find_many(
            select(OrderItem).where(OrderItem.order_id.in_(set(order_ids))),
            "order items",
            count=len(order_ids),
        )

    async def find_all_by_vendor(self, vendor_id: str) -> list[OrderItem]:
        """Get every item sold by a vendor."""
        return await self._find_many(
            select(OrderItem).where(OrderItem.vendor_id == vendor_id),
            "vendor order items",
            vendor_id=vendor_id,
        )

    async def find_by_order_and_product(
        self,
        order_id: str,
        product_id: str,
    ) -> Optional[OrderItem]:
        """Get the item of ``order_id`` for ``product_id``."""
        try:
            result = await self.session.execute(
                select(OrderItem)
                .where(OrderItem.order_id == order_id, OrderItem.product_id == product_id)
                .limit(1)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise OrderRepositoryError(
                "Failed to fetch order item",
                order_id=order_id,
                product_id=product_id,
                error=str(e),
            ) from e

    async def update(self, item: OrderItem) -> OrderItem:
        """Persist in-memory quantity and price changes of a loaded item."""
        item.updated_at = utcnow()
        await self._commit("Order item update", item_id=str(item.id))
        return item

    async def update_status(self, item: OrderItem, status: OrderItemStatus) -> OrderItem:
        """Set a loaded item's status."""
        item.status = status
        item.updated_at = utcnow()
        await self._commit(
            "Order item status update",
            item_id=str(item.id),
            status=status.value,
        )
        return item

    async def delete(self, item_id: uuid.UUID) -> bool:
        """Delete an item; returns False if it did not exist."""
        try:
            result = await self.session.execute(
                delete(OrderItem).where(OrderItem.id == item_id).returning(OrderItem.id)
            )
            deleted = result.scalar_one_or_none() is not None
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise OrderRepositoryError(
                "Order item deletion failed due to database error",
                item_id=str(item_id),
                error=str(e),
            ) from e
        await self._commit("Order item deletion", item_id=str(item_id))
        return deleted

    async def exists_by_product(self, product_id: str) -> bool:
        """Check if any order item references ``product_id``."""
        try:
            return bool(
                await self.session.scalar(
                    select(exists().where(OrderItem.product_id == product_id))
                )
            )
        except SQLAlchemyError as e:
            raise OrderRepositoryError(
                "Failed to check product references",
                product_id=product_id,
                error=str(e),
            ) from e
