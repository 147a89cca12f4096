"""
Integration tests for the order and order item endpoints.

The order service dependency is overridden with one backed by the in-memory
repositories, so requests run through routing, validation, error mapping and
camelCase serialization without a database.
"""

import uuid

import pytest

from marketplace.api.deps import get_order_service
from marketplace.core.security import create_access_token
from marketplace.services.orders.enums import OrderStatus


@pytest.fixture
def client(test_client, order_service):
    """Test client whose order endpoints use the in-memory order service."""
    test_client.app.dependency_overrides[get_order_service] = lambda: order_service
    return test_client


# ============================================================================
# Order creation
# ============================================================================


class TestCreateOrderEndpoint:
    """Tests for POST /api/order."""

    def test_create_order_success(self, client, product_repository):
        """A valid order returns camelCase fields and deducts stock."""
        product_repository.add("P00001", quantity=20, price="12.50")

        response = client.post(
            "/api/order",
            json={
                "customerId": "CUS00001",
                "productList": [{"productId": "P00001", "quantity": 2}],
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["customerId"] == "CUS00001"
        assert data["orderId"].startswith("O")
        assert data["totalPrice"] == 25.0
        assert data["status"] == "Purchased"
        assert data["items"][0]["productId"] == "P00001"
        assert data["items"][0]["quantity"] == 2
        assert "X-Request-ID" in response.headers
        assert product_repository.products["P00001"].quantity == 18

    def test_insufficient_stock_returns_400(self, client, product_repository):
        """Short stock is a client error carrying the available quantity."""
        product_repository.add("P00001", quantity=1)

        response = client.post(
            "/api/order",
            json={
                "customerId": "CUS00001",
                "productList": [{"productId": "P00001", "quantity": 2}],
            },
        )

        assert response.status_code == 400
        assert response.json()["detail"] == (
            "Insufficient stock for product ID P00001. Available: 1, Requested: 2"
        )

    def test_unknown_product_returns_404(self, client):
        """A missing product is a 404."""
        response = client.post(
            "/api/order",
            json={
                "customerId": "CUS00001",
                "productList": [{"productId": "P00404", "quantity": 1}],
            },
        )

        assert response.status_code == 404

    def test_empty_product_list_returns_400(self, client):
        """An empty product list is rejected by the service, not the schema."""
        response = client.post(
            "/api/order",
            json={"customerId": "CUS00001", "productList": []},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Product list cannot be null or empty."

    def test_malformed_body_returns_422(self, client):
        """Shape errors are reported by request validation."""
        response = client.post(
            "/api/order",
            json={"productList": [{"productId": "P00001", "quantity": "many"}]},
        )

        assert response.status_code == 422
        assert response.json()["error"] == "Validation Error"

    def test_code_exhaustion_returns_503(self, client, order_repository, product_repository):
        """Running out of order codes is a temporary server condition."""
        product_repository.add("P00001", quantity=5)

        async def always_taken(code):
            return True

        order_repository.exists_by_code = always_taken

        response = client.post(
            "/api/order",
            json={
                "customerId": "CUS00001",
                "productList": [{"productId": "P00001", "quantity": 1}],
            },
        )

        assert response.status_code == 503
        assert product_repository.products["P00001"].quantity == 5


# ============================================================================
# Order reads and updates
# ============================================================================


class TestOrderEndpoints:
    """Tests for order reads, updates and status changes."""

    @pytest.mark.asyncio
    async def test_get_order(self, client, seed_order):
        """An existing order is returned with its items."""
        await seed_order("O00001", "CUS00001", [{"product_id": "P00001", "quantity": 2}])

        response = client.get("/api/order/O00001")

        assert response.status_code == 200
        assert response.json()["orderId"] == "O00001"
        assert len(response.json()["items"]) == 1

    def test_get_missing_order_returns_404(self, client):
        """Unknown order codes are 404s."""
        response = client.get("/api/order/O00404")

        assert response.status_code == 404
        assert response.json()["detail"] == "Order with ID O00404 not found"

    @pytest.mark.asyncio
    async def test_list_by_customer(self, client, seed_order):
        """Customer lookup returns only that customer's orders."""
        await seed_order("O00001", "CUS00001", [{"product_id": "P00001", "quantity": 1}])
        await seed_order("O00002", "CUS00002", [{"product_id": "P00001", "quantity": 1}])

        response = client.get("/api/order/getByCustomerId/CUS00002")

        assert response.status_code == 200
        assert [o["orderId"] for o in response.json()] == ["O00002"]

    @pytest.mark.asyncio
    async def test_update_order(self, client, product_repository, seed_order):
        """PUT replaces line quantities and returns the new total."""
        product_repository.add("P00001", quantity=3, price="10.00")
        await seed_order("O00001", "CUS00001", [{"product_id": "P00001", "quantity": 5}])

        response = client.put(
            "/api/order/O00001",
            json={"productList": [{"productId": "P00001", "quantity": 8}]},
        )

        assert response.status_code == 200
        assert response.json()["totalPrice"] == 80.0
        assert product_repository.products["P00001"].quantity == 0

    @pytest.mark.asyncio
    async def test_update_terminal_order_returns_400(self, client, product_repository, seed_order):
        """Dispatched orders cannot be edited."""
        product_repository.add("P00001", quantity=3)
        await seed_order(
            "O00001",
            "CUS00001",
            [{"product_id": "P00001", "quantity": 1}],
            status=OrderStatus.DISPATCHED,
        )

        response = client.put(
            "/api/order/O00001",
            json={"productList": [{"productId": "P00001", "quantity": 2}]},
        )

        assert response.status_code == 400
        assert "dispatched or delivered" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_update_status(self, client, seed_order):
        """PATCH updateStatus changes status and note."""
        await seed_order("O00001", "CUS00001", [{"product_id": "P00001", "quantity": 1}])

        response = client.patch(
            "/api/order/updateStatus/O00001",
            json={"newStatus": "Dispatched", "note": "Left with courier"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "Dispatched"
        assert response.json()["note"] == "Left with courier"

    @pytest.mark.asyncio
    async def test_update_status_invalid_name_returns_400(self, client, seed_order):
        """Unknown status names are client errors."""
        await seed_order("O00001", "CUS00001", [{"product_id": "P00001", "quantity": 1}])

        response = client.patch(
            "/api/order/updateStatus/O00001",
            json={"newStatus": "Lost"},
        )

        assert response.status_code == 400


# ============================================================================
# Role-filtered view
# ============================================================================


class TestGetByRole:
    """Tests for GET /api/order/getByRole/{user_id}."""

    @staticmethod
    async def _seed_two_vendor_order(seed_order):
        """One order holding items from two vendors."""
        return await seed_order(
            "O00001",
            "CUS00001",
            [
                {"product_id": "P00001", "quantity": 1, "vendor_id": "VEN00001"},
                {"product_id": "P00002", "quantity": 1, "vendor_id": "VEN00002"},
            ],
        )

    @pytest.mark.asyncio
    async def test_vendor_prefix_without_token(self, client, seed_order):
        """Without a token the user id prefix decides the role."""
        await self._seed_two_vendor_order(seed_order)

        response = client.get("/api/order/getByRole/VEN00001")

        assert response.status_code == 200
        items = response.json()[0]["items"]
        assert [i["vendorId"] for i in items] == ["VEN00001"]

    @pytest.mark.asyncio
    async def test_token_role_overrides_prefix(self, client, seed_order):
        """A token's role claim wins over the user id prefix."""
        await self._seed_two_vendor_order(seed_order)

        token = create_access_token("VEN00001", role="customer")

        response = client.get(
            "/api/order/getByRole/VEN00001",
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 400
        assert "Invalid user role" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_admin_token(self, client, seed_order):
        """An admin token sees every item."""
        await self._seed_two_vendor_order(seed_order)

        token = create_access_token("USR1", role="admin")

        response = client.get(
            "/api/order/getByRole/USR1",
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 200
        assert len(response.json()[0]["items"]) == 2

    @pytest.mark.asyncio
    async def test_vendor_token_cannot_read_another_vendor(self, client, seed_order):
        """A vendor token only opens that vendor's own view."""
        await self._seed_two_vendor_order(seed_order)

        token = create_access_token("VEN00001", role="vendor")

        response = client.get(
            "/api/order/getByRole/VEN00002",
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 403
        assert "VEN00002" not in response.text

    @pytest.mark.asyncio
    async def test_vendor_token_reads_own_items(self, client, seed_order):
        """A vendor token for the requested user sees only its items."""
        await self._seed_two_vendor_order(seed_order)

        token = create_access_token("VEN00002", role="vendor")

        response = client.get(
            "/api/order/getByRole/VEN00002",
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 200
        assert [i["vendorId"] for i in response.json()[0]["items"]] == ["VEN00002"]

    def test_invalid_token_returns_401(self, client):
        """A token that fails verification is rejected."""
        response = client.get(
            "/api/order/getByRole/ADM00001",
            headers={"Authorization": "Bearer not-a-jwt"},
        )

        assert response.status_code == 401

    def test_customer_prefix_returns_400(self, client):
        """Customers have no role view."""
        response = client.get("/api/order/getByRole/CUS00001")

        assert response.status_code == 400

    def test_vendor_without_orders_returns_404(self, client):
        """An empty vendor view is a 404."""
        response = client.get("/api/order/getByRole/VEN00077")

        assert response.status_code == 404


# ============================================================================
# Order items
# ============================================================================


class TestOrderItemEndpoints:
    """Tests for the /api/orderItem endpoints."""

    @pytest.mark.asyncio
    async def test_deliver_last_item_closes_order(
        self, client, seed_order, item_repository, order_repository
    ):
        """Delivering the only item marks the order delivered."""
        await seed_order("O00001", "CUS00001", [{"product_id": "P00001", "quantity": 1}])
        item = (await item_repository.find_all_by_order("O00001"))[0]

        response = client.patch(
            f"/api/orderItem/updateStatus/{item.id}",
            json={"newStatus": "Delivered"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "Delivered"
        assert order_repository.orders["O00001"].status == OrderStatus.DELIVERED

    def test_item_id_must_be_uuid(self, client):
        """Non-UUID item ids fail request validation."""
        response = client.get("/api/orderItem/not-a-uuid")

        assert response.status_code == 422

    def test_missing_item_returns_404(self, client):
        """Unknown item ids are 404s."""
        response = client.get(f"/api/orderItem/{uuid.uuid4()}")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_get_item_by_order_and_product(self, client, seed_order):
        """Items can be fetched by order and product code."""
        await seed_order("O00001", "CUS00001", [{"product_id": "P00001", "quantity": 4}])

        response = client.get("/api/orderItem/getItemByOrderProductIds/O00001/P00001")

        assert response.status_code == 200
        assert response.json()["quantity"] == 4

    @pytest.mark.asyncio
    async def test_delete_item(self, client, product_repository, item_repository, seed_order):
        """Deleting an item returns its units to stock."""
        product_repository.add("P00001", quantity=2)
        await seed_order("O00001", "CUS00001", [{"product_id": "P00001", "quantity": 3}])
        item = (await item_repository.find_all_by_order("O00001"))[0]

        response = client.delete(f"/api/orderItem/{item.id}")

        assert response.status_code == 200
        assert response.json()["message"] == "Order item deleted successfully."
        assert product_repository.products["P00001"].quantity == 5
