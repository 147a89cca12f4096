"""
Pytest configuration and shared test fixtures.

This module sets the test environment before any application import and
provides in-memory repository doubles so the order workflow can be exercised
without a database. The doubles mirror the conditional-update semantics of
the SQL repositories: a stock change either applies fully or not at all.
"""

import os

os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("APP_SECRET_KEY", "test-secret-key-with-at-least-32-characters")
os.environ.setdefault("APP_NOTIFICATIONS_ENABLED", "false")

import itertools
import random
import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Generator, Optional
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from marketplace.database.base import utcnow
from marketplace.database.models.order import Order, OrderItem
from marketplace.database.models.product import Product
from marketplace.services.notifications.service import NotificationService
from marketplace.services.orders.enums import OrderItemStatus, OrderStatus
from marketplace.services.orders.service import OrderService


# ============================================================================
# In-memory repositories
# ============================================================================


class InMemoryProductRepository:
    """Product repository double keyed by product code."""

    def __init__(self):
        self.products: dict[str, Product] = {}
        self.item_repository: Optional["InMemoryOrderItemRepository"] = None

    def add(
        self,
        product_id: str,
        quantity: int,
        price: str = "10.00",
        vendor_id: str = "VEN00001",
        name: Optional[str] = None,
        image_urls: Optional[list[str]] = None,
        is_deleted: bool = False,
    ) -> Product:
        now = utcnow()
        product = Product(
            id=uuid.uuid4(),
            product_id=product_id,
            name=name or f"Product {product_id}",
            description=None,
            price=Decimal(price),
            quantity=quantity,
            category_id="CAT01",
            vendor_id=vendor_id,
            image_urls=image_urls or [],
            is_deleted=is_deleted,
            created_at=now,
            updated_at=now,
        )
        self.products[product_id] = product
        return product

    def _active(self, product_id: str) -> Optional[Product]:
        product = self.products.get(product_id)
        if product is None or product.is_deleted:
            return None
        return product

    async def find_by_code(self, product_id, include_deleted=False):
        if include_deleted:
            return self.products.get(product_id)
        return self._active(product_id)

    async def find_all_by_codes(self, product_ids):
        return {code: self.products[code] for code in product_ids if code in self.products}

    async def exists_by_code(self, product_id):
        return product_id in self.products

    async def find_by_vendor(self, vendor_id):
        return [
            p for p in self.products.values()
            if p.vendor_id == vendor_id and not p.is_deleted
        ]

    async def find_all(self):
        return [p for p in self.products.values() if not p.is_deleted]

    async def find_low_stock(self, threshold):
        return sorted(
            (p for p in self.products.values() if not p.is_deleted and p.quantity <= threshold),
            key=lambda p: (p.quantity, p.product_id),
        )

    async def insert(self, product):
        product.created_at = product.created_at or utcnow()
        product.updated_at = product.updated_at or product.created_at
        self.products[product.product_id] = product
        return product

    async def decrement_if_available(self, product_id, requested):
        product = self._active(product_id)
        if product is None or product.quantity < requested:
            return None
        product.quantity -= requested
        return product.quantity

    async def reconcile_quantity(self, product_id, previous, requested):
        product = self._active(product_id)
        if product is None or product.quantity + previous < requested:
            return None
        product.quantity = product.quantity + previous - requested
        return product.quantity

    async def restore_quantity(self, product_id, quantity):
        product = self.products.get(product_id)
        if product is None:
            return None
        product.quantity += quantity
        return product.quantity

    async def set_quantity(self, product_id, quantity):
        product = self._active(product_id)
        if product is None:
            return None
        product.quantity = quantity
        return product.quantity

    async def is_referenced_by_any_order_item(self, product_id):
        if self.item_repository is None:
            return False
        return await self.item_repository.exists_by_product(product_id)

    async def set_deleted(self, product_id, vendor_id, is_deleted):
        product = self.products.get(product_id)
        if product is None or product.vendor_id != vendor_id:
            return False
        product.is_deleted = is_deleted
        return True


class InMemoryOrderRepository:
    """Order repository double keyed by order code."""

    def __init__(self):
        self.orders: dict[str, Order] = {}
        self.reserved_codes: set[str] = set()
        self._clock = itertools.count()

    async def exists_by_code(self, order_id):
        return order_id in self.orders or order_id in self.reserved_codes

    async def insert(self, order):
        # Distinct, increasing timestamps keep newest-first ordering stable
        order.created_at = utcnow() + timedelta(microseconds=next(self._clock))
        order.updated_at = order.created_at
        self.orders[order.order_id] = order
        return order

    async def find_by_code(self, order_id):
        return self.orders.get(order_id)

    def _newest_first(self, orders):
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    async def find_all_by_customer(self, customer_id):
        return self._newest_first(o for o in self.orders.values() if o.customer_id == customer_id)

    async def find_all_by_codes(self, order_ids):
        return self._newest_first(self.orders[c] for c in set(order_ids) if c in self.orders)

    async def find_all(self):
        return self._newest_first(self.orders.values())

    async def replace(self, order):
        order.updated_at = utcnow()
        self.orders[order.order_id] = order
        return order

    async def update_status(self, order_id, status):
        order = self.orders.get(order_id)
        if order is None:
            return False
        order.status = status
        order.updated_at = utcnow()
        return True

    async def update_total_price(self, order_id, total_price):
        order = self.orders.get(order_id)
        if order is None:
            return False
        order.total_price = total_price
        order.updated_at = utcnow()
        return True


class InMemoryOrderItemRepository:
    """Order item repository double keyed by item id, in insertion order."""

    def __init__(self):
        self.items: dict[uuid.UUID, OrderItem] = {}

    async def insert(self, item):
        item.id = item.id or uuid.uuid4()
        item.created_at = item.created_at or utcnow()
        item.updated_at = item.updated_at or item.created_at
        self.items[item.id] = item
        return item

    async def find_by_id(self, item_id):
        return self.items.get(item_id)

    async def find_all_by_order(self, order_id):
        return [i for i in self.items.values() if i.order_id == order_id]

    async def find_all_by_orders(self, order_ids):
        wanted = set(order_ids)
        return [i for i in self.items.values() if i.order_id in wanted]

    async def find_all_by_vendor(self, vendor_id):
        return [i for i in self.items.values() if i.vendor_id == vendor_id]

    async def find_by_order_and_product(self, order_id, product_id):
        for item in self.items.values():
            if item.order_id == order_id and item.product_id == product_id:
                return item
        return None

    async def update(self, item):
        item.updated_at = utcnow()
        return item

    async def update_status(self, item, status):
        item.status = status
        item.updated_at = utcnow()
        return item

    async def delete(self, item_id):
        return self.items.pop(item_id, None) is not None

    async def exists_by_product(self, product_id):
        return any(i.product_id == product_id for i in self.items.values())


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def product_repository() -> InMemoryProductRepository:
    """Empty in-memory product repository."""
    return InMemoryProductRepository()


@pytest.fixture
def order_repository() -> InMemoryOrderRepository:
    """Empty in-memory order repository."""
    return InMemoryOrderRepository()


@pytest.fixture
def item_repository(product_repository) -> InMemoryOrderItemRepository:
    """Empty in-memory order item repository linked to the product double."""
    repository = InMemoryOrderItemRepository()
    product_repository.item_repository = repository
    return repository


@pytest.fixture
def mock_notifications() -> AsyncMock:
    """
    Notification service double.

    Returns:
        AsyncMock: Mock with the NotificationService interface
    """
    notifications = AsyncMock(spec=NotificationService)
    notifications.notify_vendor_low_stock.return_value = {"sent": 1, "failed": 0}
    return notifications


@pytest.fixture
def make_order_service(product_repository, order_repository, item_repository, mock_notifications):
    """
    Factory for OrderService instances over the in-memory repositories.

    Returns:
        Callable accepting OrderService keyword overrides
    """

    def _make(**overrides) -> OrderService:
        options = {
            "notifications": mock_notifications,
            "low_stock_threshold": 10,
            "compensate_failed_orders": False,
            "max_id_attempts": 50,
            "rng": random.Random(1234),
        }
        options.update(overrides)
        return OrderService(
            products=product_repository,
            orders=order_repository,
            items=item_repository,
            **options,
        )

    return _make


@pytest.fixture
def order_service(make_order_service) -> OrderService:
    """OrderService with default test settings."""
    return make_order_service()


@pytest.fixture
def seed_order(order_repository, item_repository):
    """
    Insert an order with items directly into the repositories.

    Returns:
        Async callable taking an order code, customer id, item entries and
        an optional status
    """

    async def _seed(
        order_id: str,
        customer_id: str,
        items: list[dict],
        status: OrderStatus = OrderStatus.PURCHASED,
    ) -> Order:
        total = sum(
            (Decimal(entry.get("price", "10.00")) * entry["quantity"] for entry in items),
            Decimal("0"),
        )
        order = Order(
            id=uuid.uuid4(),
            order_id=order_id,
            customer_id=customer_id,
            total_price=total,
            status=status,
            note="",
        )
        await order_repository.insert(order)
        for entry in items:
            await item_repository.insert(
                OrderItem(
                    id=uuid.uuid4(),
                    order_id=order_id,
                    product_id=entry["product_id"],
                    product_name=entry.get("product_name", entry["product_id"]),
                    vendor_id=entry.get("vendor_id", "VEN00001"),
                    quantity=entry["quantity"],
                    price=Decimal(entry.get("price", "10.00")),
                    status=entry.get("status", OrderItemStatus.PURCHASED),
                )
            )
        return order

    return _seed


@pytest.fixture(scope="function")
def test_client() -> Generator[TestClient, None, None]:
    """
    Create a synchronous test client for the FastAPI application.

    Dependency overrides set by a test are cleared afterwards.

    Yields:
        TestClient: Synchronous test client
    """
    from marketplace.main import app

    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
