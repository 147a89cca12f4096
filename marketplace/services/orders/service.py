"""
Order service orchestrating the order and inventory workflow.

This module implements the OrderService class: placing orders against live
stock, reconciling stock when an order's quantities change, status
transitions for orders and their items, role-filtered order views and
low-stock alerts to vendors.

Stock deductions are committed one product at a time. When a later line of a
request fails, deductions already applied stay applied unless the
``compensate_failed_orders`` setting is on, in which case they are restored
before the error is re-raised.
"""

import random
import uuid
from collections import defaultdict
from decimal import Decimal
from typing import Any, Iterable, NamedTuple, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.config import get_settings
from marketplace.core.logging import get_logger
from marketplace.database.base import utcnow
from marketplace.database.models.order import Order, OrderItem
from marketplace.database.models.product import Product
from marketplace.services.catalog.repository import ProductRepository
from marketplace.services.notifications.service import NotificationService
from marketplace.services.orders.enums import OrderItemStatus, OrderStatus, UserRole
from marketplace.services.orders.exceptions import (
    InsufficientStockError,
    InvalidOrderInputError,
    OrderItemNotFoundError,
    OrderNotFoundError,
    OrderWorkflowError,
    ProductNotFoundError,
)
from marketplace.services.orders.id_generator import ORDER_PREFIX, generate_unique_code
from marketplace.services.orders.repository import OrderItemRepository, OrderRepository
from marketplace.services.orders.state_machine import (
    TERMINAL_ITEM_MESSAGE,
    TERMINAL_STATUS_MESSAGE,
    TERMINAL_UPDATE_MESSAGE,
    OrderStateMachine,
)

logger = get_logger(__name__)

EMPTY_PRODUCT_LIST_MESSAGE = "Product list cannot be null or empty."
INVALID_ROLE_MESSAGE = "Invalid user role. Only 'ADM' or 'VEN' roles are allowed."
CENT = Decimal("0.01")


class OrderLine(NamedTuple):
    """Requested product and quantity within a create or update request."""

    product_id: str
    quantity: int


def calculate_total(items: Iterable[OrderItem]) -> Decimal:
    """Sum of price times quantity over ``items``, rounded to cents."""
    total = sum((item.price * item.quantity for item in items), Decimal("0"))
    return Decimal(total).quantize(CENT)


def _validate_lines(lines: Optional[Sequence[OrderLine]]) -> list[OrderLine]:
    if not lines:
        raise InvalidOrderInputError(EMPTY_PRODUCT_LIST_MESSAGE)

    validated = []
    for line in lines:
        if not line.product_id:
            raise InvalidOrderInputError("Product ID is required for every line.")
        if line.quantity < 1:
            raise InvalidOrderInputError(
                f"Quantity for product ID {line.product_id} must be at least 1.",
                product_id=line.product_id,
                quantity=line.quantity,
            )
        validated.append(line)
    return validated


class OrderService:
    """
    Order service orchestrating stock, persistence and notifications.

    Attributes:
        products: Product repository used for stock checks and deductions
        orders: Order repository
        items: Order item repository
        notifications: Notification service for vendor stock alerts
        state_machine: Order and item state rules
    """

    def __init__(
        self,
        products: ProductRepository,
        orders: OrderRepository,
        items: OrderItemRepository,
        notifications: Optional[NotificationService] = None,
        low_stock_threshold: Optional[int] = None,
        compensate_failed_orders: Optional[bool] = None,
        max_id_attempts: Optional[int] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize order service.

        Args:
            products: Product repository
            orders: Order repository
            items: Order item repository
            notifications: Optional notification service for stock alerts
            low_stock_threshold: Stock alert threshold (defaults to settings)
            compensate_failed_orders: Restore stock on failure (defaults to settings)
            max_id_attempts: Order code attempt cap (defaults to settings)
            rng: Random source for order codes
        """
        settings = get_settings()
        self.products = products
        self.orders = orders
        self.items = items
        self.notifications = notifications
        self.state_machine = OrderStateMachine()
        self.low_stock_threshold = (
            settings.low_stock_threshold
            if low_stock_threshold is None
            else low_stock_threshold
        )
        self.compensate_failed_orders = (
            settings.compensate_failed_orders
            if compensate_failed_orders is None
            else compensate_failed_orders
        )
        self.max_id_attempts = max_id_attempts or settings.order_id_max_attempts
        self.rng = rng or random.Random()

    @classmethod
    def from_session(
        cls,
        session: AsyncSession,
        notifications: Optional[NotificationService] = None,
    ) -> "OrderService":
        """Build a service whose repositories share ``session``."""
        return cls(
            products=ProductRepository(session),
            orders=OrderRepository(session),
            items=OrderItemRepository(session),
            notifications=notifications,
        )

    # Order placement and updates

    async def create_order(
        self,
        customer_id: str,
        lines: Sequence[OrderLine],
    ) -> dict[str, Any]:
        """
        Place an order, deducting stock for every line.

        Low-stock vendor alerts are sent after the order and its items are
        persisted, one per line that left stock below the threshold.

        Args:
            customer_id: Ordering customer's user id
            lines: Requested products and quantities, processed in order

        Returns:
            Created order with its items

        Raises:
            InvalidOrderInputError: If the customer or product list is invalid
            ProductNotFoundError: If a product does not exist
            InsufficientStockError: If a product cannot cover its line
            IdGenerationError: If no free order code could be generated
        """
        if not customer_id:
            raise InvalidOrderInputError("Customer ID is required.")
        lines = _validate_lines(lines)

        order_id = await generate_unique_code(
            ORDER_PREFIX,
            self.orders.exists_by_code,
            rng=self.rng,
            max_attempts=self.max_id_attempts,
        )

        logger.info(
            "Creating order",
            order_id=order_id,
            customer_id=customer_id,
            line_count=len(lines),
        )

        deducted: list[OrderLine] = []
        low_stock: list[tuple[Product, int]] = []
        try:
            order_items: list[OrderItem] = []
            for line in lines:
                product = await self._get_product(line.product_id)
                remaining = await self.products.decrement_if_available(
                    line.product_id, line.quantity
                )
                if remaining is None:
                    raise InsufficientStockError(
                        line.product_id,
                        available=product.quantity,
                        requested=line.quantity,
                    )
                deducted.append(line)

                order_items.append(
                    OrderItem(
                        id=uuid.uuid4(),
                        order_id=order_id,
                        product_id=product.product_id,
                        product_name=product.name,
                        vendor_id=product.vendor_id,
                        quantity=line.quantity,
                        price=product.price,
                        status=OrderItemStatus.PURCHASED,
                    )
                )
                low_stock.append((product, remaining))

            now = utcnow()
            order = Order(
                id=uuid.uuid4(),
                order_id=order_id,
                customer_id=customer_id,
                total_price=calculate_total(order_items),
                status=OrderStatus.PURCHASED,
                note="",
                created_at=now,
                updated_at=now,
            )
            await self.orders.insert(order)
            for item in order_items:
                await self.items.insert(item)

        except OrderWorkflowError as e:
            logger.warning(
                "Order creation failed",
                order_id=order_id,
                customer_id=customer_id,
                error=str(e),
                error_type=type(e).__name__,
                deducted_lines=len(deducted),
            )
            if self.compensate_failed_orders and deducted:
                await self._restore_deductions(order_id, deducted)
            else:
                await self._send_stock_alerts(low_stock)
            raise

        await self._send_stock_alerts(low_stock)

        logger.info(
            "Order created",
            order_id=order_id,
            customer_id=customer_id,
            total_price=str(order.total_price),
        )
        return await self._format_order(order, order_items)

    async def update_order(
        self,
        order_id: str,
        lines: Sequence[OrderLine],
    ) -> dict[str, Any]:
        """
        Replace the quantities of existing order lines and reconcile stock.

        Each line's previous quantity is returned to stock and the new one
        taken in a single conditional update. The order total is then
        recomputed over all of its items. When a later line fails without
        compensation, the lines already applied stay committed and the total
        is recomputed over them before the error propagates.

        Args:
            order_id: Order custom code
            lines: New quantities keyed by product

        Returns:
            Updated order with its items

        Raises:
            InvalidOrderInputError: If the product list is invalid
            OrderNotFoundError: If the order does not exist
            InvalidOrderStateError: If the order is dispatched or delivered
            ProductNotFoundError: If a product does not exist
            OrderItemNotFoundError: If the order has no item for a product
            InsufficientStockError: If stock plus the current line cannot cover it
        """
        lines = _validate_lines(lines)
        order = await self._get_order(order_id)
        self.state_machine.ensure_editable(order, TERMINAL_UPDATE_MESSAGE)

        # (item, previous quantity, previous price)
        reconciled: list[tuple[OrderItem, int, Decimal]] = []
        low_stock: list[tuple[Product, int]] = []
        try:
            for line in lines:
                product = await self._get_product(line.product_id)
                item = await self.items.find_by_order_and_product(order_id, line.product_id)
                if item is None:
                    raise OrderItemNotFoundError(
                        f"Order item for product ID {line.product_id} not found "
                        f"in order {order_id}",
                        order_id=order_id,
                        product_id=line.product_id,
                    )

                previous_quantity, previous_price = item.quantity, item.price
                remaining = await self.products.reconcile_quantity(
                    line.product_id, previous_quantity, line.quantity
                )
                if remaining is None:
                    raise InsufficientStockError(
                        line.product_id,
                        available=product.quantity + previous_quantity,
                        requested=line.quantity,
                    )
                reconciled.append((item, previous_quantity, previous_price))

                item.quantity = line.quantity
                item.price = product.price
                await self.items.update(item)

                if line.quantity > previous_quantity:
                    low_stock.append((product, remaining))

        except OrderWorkflowError as e:
            logger.warning(
                "Order update failed",
                order_id=order_id,
                error=str(e),
                error_type=type(e).__name__,
                reconciled_lines=len(reconciled),
            )
            if self.compensate_failed_orders and reconciled:
                await self._revert_reconciliations(order_id, reconciled)
            elif reconciled:
                # Applied lines stay committed, so the total must follow them.
                await self._refresh_total(order)
                await self._send_stock_alerts(low_stock)
            raise

        all_items = await self._refresh_total(order)
        await self._send_stock_alerts(low_stock)

        logger.info(
            "Order updated",
            order_id=order_id,
            line_count=len(lines),
            total_price=str(order.total_price),
        )
        return await self._format_order(order, all_items)

    async def update_order_status(
        self,
        order_id: str,
        new_status: Optional[str] = None,
        note: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Change an order's status and/or note.

        Args:
            order_id: Order custom code
            new_status: Target status name, case-insensitive
            note: Note to store on the order

        Returns:
            Updated order with its items

        Raises:
            OrderNotFoundError: If the order does not exist
            InvalidOrderStateError: If the order is terminal or the transition
                is not allowed
            InvalidOrderInputError: If the status name is unknown
        """
        order = await self._get_order(order_id)
        self.state_machine.ensure_editable(order, TERMINAL_STATUS_MESSAGE)

        if new_status is not None:
            target = self._parse_status(OrderStatus, new_status)
            self.state_machine.validate_transition(order, target)
            previous = order.status
            order.status = target
            logger.info(
                "Order status changed",
                order_id=order_id,
                transition=f"{previous.value}->{target.value}",
            )

        if note is not None:
            order.note = note

        await self.orders.replace(order)
        items = await self.items.find_all_by_order(order_id)
        return await self._format_order(order, items)

    async def update_order_item_status(
        self,
        item_id: uuid.UUID,
        new_status: str,
    ) -> dict[str, Any]:
        """
        Change an order item's status.

        Delivering the last undelivered item of an order marks the order as
        Delivered.

        Args:
            item_id: Order item system id
            new_status: Target item status name, case-insensitive

        Returns:
            Updated order item

        Raises:
            InvalidOrderInputError: If the status name is unknown
            OrderItemNotFoundError: If the item does not exist
            OrderNotFoundError: If the item's order does not exist
            InvalidOrderStateError: If the order is terminal or the transition
                is not allowed
        """
        target = self._parse_status(OrderItemStatus, new_status)
        item = await self._get_item(item_id)
        order = await self._get_order(item.order_id)
        self.state_machine.validate_item_transition(order, item, target)

        await self.items.update_status(item, target)
        logger.info(
            "Order item status changed",
            item_id=str(item_id),
            order_id=order.order_id,
            status=target.value,
        )

        if target == OrderItemStatus.DELIVERED:
            siblings = await self.items.find_all_by_order(order.order_id)
            if self.state_machine.all_items_delivered(siblings):
                await self.orders.update_status(order.order_id, OrderStatus.DELIVERED)
                order.status = OrderStatus.DELIVERED
                logger.info("Order delivered, all items delivered", order_id=order.order_id)

        images = await self._image_urls([item])
        return self._format_item(item, images)

    # Order reads

    async def get_order(self, order_id: str) -> dict[str, Any]:
        """
        Get one order with its items.

        Raises:
            OrderNotFoundError: If the order does not exist
        """
        order = await self._get_order(order_id)
        items = await self.items.find_all_by_order(order_id)
        return await self._format_order(order, items)

    async def list_orders(self) -> list[dict[str, Any]]:
        """Get every order with its items."""
        orders = await self.orders.find_all()
        return await self._format_orders(orders)

    async def get_orders_by_customer(self, customer_id: str) -> list[dict[str, Any]]:
        """
        Get a customer's orders with their items.

        Raises:
            OrderNotFoundError: If the customer has no orders
        """
        orders = await self.orders.find_all_by_customer(customer_id)
        if not orders:
            raise OrderNotFoundError(
                f"No orders found for User ID {customer_id}.",
                customer_id=customer_id,
            )
        return await self._format_orders(orders)

    async def get_orders_for_role(
        self,
        user_id: str,
        role: Optional[UserRole],
    ) -> list[dict[str, Any]]:
        """
        Get the orders visible to a user.

        Admins see every order with every item. Vendors see only orders that
        contain at least one of their items, and only those items.

        Args:
            user_id: Requesting user's id
            role: Requesting user's role

        Returns:
            Visible orders with their visible items

        Raises:
            InvalidOrderInputError: If the role is neither admin nor vendor
            OrderNotFoundError: If nothing is visible
        """
        if role == UserRole.ADMIN:
            orders = await self.orders.find_all()
            result = await self._format_orders(orders)
        elif role == UserRole.VENDOR:
            result = await self._vendor_orders(user_id)
        else:
            raise InvalidOrderInputError(
                INVALID_ROLE_MESSAGE,
                user_id=user_id,
                role=role.value if role else None,
            )

        if not result:
            raise OrderNotFoundError(
                "No relevant orders found for the given user.",
                user_id=user_id,
                role=role.value,
            )

        logger.debug(
            "Role-filtered orders resolved",
            user_id=user_id,
            role=role.value,
            order_count=len(result),
        )
        return result

    # Order item operations

    async def get_order_item(self, item_id: uuid.UUID) -> dict[str, Any]:
        """
        Get one order item.

        Raises:
            OrderItemNotFoundError: If the item does not exist
        """
        item = await self._get_item(item_id)
        return self._format_item(item, await self._image_urls([item]))

    async def get_order_item_by_order_and_product(
        self,
        order_id: str,
        product_id: str,
    ) -> dict[str, Any]:
        """
        Get the item of an order for a product.

        Raises:
            OrderItemNotFoundError: If the order has no item for the product
        """
        item = await self.items.find_by_order_and_product(order_id, product_id)
        if item is None:
            raise OrderItemNotFoundError(
                f"Order item for product ID {product_id} not found in order {order_id}",
                order_id=order_id,
                product_id=product_id,
            )
        return self._format_item(item, await self._image_urls([item]))

    async def delete_order_item(self, item_id: uuid.UUID) -> None:
        """
        Remove an item from an order.

        The item's units go back to stock and the order total is recomputed.

        Raises:
            OrderItemNotFoundError: If the item does not exist
            InvalidOrderStateError: If the order is dispatched or delivered
        """
        item = await self._get_item(item_id)
        order = await self.orders.find_by_code(item.order_id)
        if order is not None:
            self.state_machine.ensure_editable(order, TERMINAL_ITEM_MESSAGE)

        await self.items.delete(item_id)
        await self.products.restore_quantity(item.product_id, item.quantity)

        if order is not None:
            await self._refresh_total(order)

        logger.info(
            "Order item deleted",
            item_id=str(item_id),
            order_id=item.order_id,
            product_id=item.product_id,
            restored=item.quantity,
        )

    # Helpers

    async def _get_product(self, product_id: str) -> Product:
        product = await self.products.find_by_code(product_id)
        if product is None:
            raise ProductNotFoundError(
                f"Product with ID {product_id} not found",
                product_id=product_id,
            )
        return product

    async def _get_order(self, order_id: str) -> Order:
        order = await self.orders.find_by_code(order_id)
        if order is None:
            raise OrderNotFoundError(
                f"Order with ID {order_id} not found",
                order_id=order_id,
            )
        return order

    async def _get_item(self, item_id: uuid.UUID) -> OrderItem:
        item = await self.items.find_by_id(item_id)
        if item is None:
            raise OrderItemNotFoundError(
                f"Order item with ID {item_id} not found",
                item_id=str(item_id),
            )
        return item

    @staticmethod
    def _parse_status(enum_cls, value: str):
        try:
            return enum_cls.from_string(value)
        except ValueError as e:
            raise InvalidOrderInputError(str(e), status=value) from e

    async def _refresh_total(self, order: Order) -> list[OrderItem]:
        all_items = await self.items.find_all_by_order(order.order_id)
        order.total_price = calculate_total(all_items)
        await self.orders.update_total_price(order.order_id, order.total_price)
        order.updated_at = utcnow()
        return all_items

    async def _send_stock_alerts(self, low_stock: Sequence[tuple[Product, int]]) -> None:
        for product, remaining in low_stock:
            await self._alert_if_low(product, remaining)

    async def _alert_if_low(self, product: Product, remaining: int) -> None:
        if remaining >= self.low_stock_threshold or self.notifications is None:
            return
        try:
            await self.notifications.notify_vendor_low_stock(
                product.vendor_id,
                product.name,
                remaining,
                self.low_stock_threshold,
            )
        except Exception as e:
            logger.error(
                "Stock alert failed",
                product_id=product.product_id,
                vendor_id=product.vendor_id,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def _restore_deductions(self, order_id: str, deducted: Sequence[OrderLine]) -> None:
        for line in reversed(deducted):
            restored = await self.products.restore_quantity(line.product_id, line.quantity)
            logger.info(
                "Stock deduction compensated",
                order_id=order_id,
                product_id=line.product_id,
                quantity=line.quantity,
                new_quantity=restored,
            )

    async def _revert_reconciliations(
        self,
        order_id: str,
        reconciled: Sequence[tuple[OrderItem, int, Decimal]],
    ) -> None:
        for item, previous_quantity, previous_price in reversed(reconciled):
            restored = await self.products.reconcile_quantity(
                item.product_id, item.quantity, previous_quantity
            )
            if restored is None:
                logger.error(
                    "Stock reconciliation could not be reverted",
                    order_id=order_id,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    previous_quantity=previous_quantity,
                )
                continue
            item.quantity = previous_quantity
            item.price = previous_price
            await self.items.update(item)
            logger.info(
                "Stock reconciliation compensated",
                order_id=order_id,
                product_id=item.product_id,
                quantity=previous_quantity,
            )

    async def _vendor_orders(self, vendor_id: str) -> list[dict[str, Any]]:
        vendor_items = await self.items.find_all_by_vendor(vendor_id)
        if not vendor_items:
            return []

        items_by_order: dict[str, list[OrderItem]] = defaultdict(list)
        for item in vendor_items:
            items_by_order[item.order_id].append(item)

        orders = await self.orders.find_all_by_codes(list(items_by_order))
        images = await self._image_urls(vendor_items)
        return [
            self._format_order_with_images(order, items_by_order[order.order_id], images)
            for order in orders
        ]

    async def _image_urls(self, items: Sequence[OrderItem]) -> dict[str, Optional[str]]:
        product_ids = sorted({item.product_id for item in items})
        products = await self.products.find_all_by_codes(product_ids)
        return {code: product.primary_image_url for code, product in products.items()}

    async def _format_orders(self, orders: Sequence[Order]) -> list[dict[str, Any]]:
        all_items = await self.items.find_all_by_orders([o.order_id for o in orders])
        items_by_order: dict[str, list[OrderItem]] = defaultdict(list)
        for item in all_items:
            items_by_order[item.order_id].append(item)

        images = await self._image_urls(all_items)
        return [
            self._format_order_with_images(order, items_by_order[order.order_id], images)
            for order in orders
        ]

    async def _format_order(self, order: Order, items: Sequence[OrderItem]) -> dict[str, Any]:
        images = await self._image_urls(items)
        return self._format_order_with_images(order, items, images)

    def _format_order_with_images(
        self,
        order: Order,
        items: Sequence[OrderItem],
        images: dict[str, Optional[str]],
    ) -> dict[str, Any]:
        return {
            "id": order.id,
            "order_id": order.order_id,
            "customer_id": order.customer_id,
            "total_price": order.total_price,
            "status": order.status.value,
            "note": order.note,
            "created_at": order.created_at,
            "updated_at": order.updated_at,
            "items": [self._format_item(item, images) for item in items],
        }

    @staticmethod
    def _format_item(item: OrderItem, images: dict[str, Optional[str]]) -> dict[str, Any]:
        return {
            "id": item.id,
            "order_id": item.order_id,
            "product_id": item.product_id,
            "product_name": item.product_name,
            "vendor_id": item.vendor_id,
            "quantity": item.quantity,
            "price": item.price,
            "status": item.status.value,
            "image_url": images.get(item.product_id),
            "created_at": item.created_at,
            "updated_at": item.updated_at,
        }
