"""
Tests for best-effort push notification delivery and the notification
endpoints.
"""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from marketplace.api.deps import get_device_token_repository, get_notification_service
from marketplace.services.notifications.aws_clients import PushClientError, SNSPushClient
from marketplace.services.notifications.service import (
    NEW_CUSTOMER_TITLE,
    STOCK_ALERT_TITLE,
    NotificationService,
    stock_alert_body,
)
from marketplace.services.orders.enums import UserRole
from marketplace.services.orders.exceptions import RepositoryError


@pytest.fixture
def token_repository() -> AsyncMock:
    """Device token repository double."""
    repository = AsyncMock()
    repository.find_tokens_for_user.return_value = ["vendor-token"]
    repository.find_tokens_by_role.return_value = ["csr-token-1", "csr-token-2"]
    return repository


@pytest.fixture
def push_client() -> MagicMock:
    """SNS push client double."""
    client = MagicMock(spec=SNSPushClient)
    client.send_push.return_value = {"message_id": "msg-1", "status": "sent"}
    return client


@pytest.fixture
def notification_service(token_repository, push_client) -> NotificationService:
    """Enabled notification service over the doubles."""
    return NotificationService(token_repository, push_client=push_client, enabled=True)


# ============================================================================
# Delivery
# ============================================================================


class TestNotify:
    """Tests for fan-out delivery."""

    @pytest.mark.asyncio
    async def test_each_token_attempted_independently(self, notification_service, push_client):
        """A failing token does not stop delivery to the others."""
        push_client.send_push.side_effect = [
            PushClientError("SNS error: endpoint disabled", error_code="EndpointDisabled"),
            {"message_id": "msg-2", "status": "sent"},
            RuntimeError("unexpected"),
        ]

        summary = await notification_service.notify(["a", "b", "c"], "Title", "Body")

        assert summary == {"sent": 1, "failed": 2}
        assert push_client.send_push.call_count == 3

    @pytest.mark.asyncio
    async def test_empty_tokens_skipped(self, notification_service, push_client):
        """Blank tokens are not sent."""
        summary = await notification_service.notify(["", None], "Title", "Body")

        assert summary == {"sent": 0, "failed": 0}
        push_client.send_push.assert_not_called()

    @pytest.mark.asyncio
    async def test_disabled_service_sends_nothing(self, token_repository, push_client):
        """With notifications off every send is skipped."""
        service = NotificationService(token_repository, push_client=push_client, enabled=False)

        summary = await service.notify(["a"], "Title", "Body")

        assert summary == {"sent": 0, "failed": 0}
        push_client.send_push.assert_not_called()


class TestAlerts:
    """Tests for the vendor and CSR alerts."""

    @pytest.mark.asyncio
    async def test_vendor_low_stock_alert(self, notification_service, push_client, token_repository):
        """The vendor's token receives the stock alert text."""
        summary = await notification_service.notify_vendor_low_stock("VEN00001", "Lamp", 4, 10)

        assert summary == {"sent": 1, "failed": 0}
        token_repository.find_tokens_for_user.assert_awaited_once_with("VEN00001")
        push_client.send_push.assert_called_once_with(
            "vendor-token",
            STOCK_ALERT_TITLE,
            "Stock for product Lamp has dropped below 10. Current stock: 4",
        )

    def test_stock_alert_body(self):
        """The alert names the product, threshold and remaining stock."""
        assert stock_alert_body("Desk", 0, 5) == (
            "Stock for product Desk has dropped below 5. Current stock: 0"
        )

    @pytest.mark.asyncio
    async def test_vendor_without_token(self, notification_service, push_client, token_repository):
        """A vendor without a registered device gets nothing."""
        token_repository.find_tokens_for_user.return_value = []

        summary = await notification_service.notify_vendor_low_stock("VEN00002", "Lamp", 4, 10)

        assert summary == {"sent": 0, "failed": 0}
        push_client.send_push.assert_not_called()

    @pytest.mark.asyncio
    async def test_token_lookup_failure_is_swallowed(self, notification_service, token_repository):
        """Storage errors while resolving recipients do not propagate."""
        token_repository.find_tokens_for_user.side_effect = RepositoryError("db down")

        summary = await notification_service.notify_vendor_low_stock("VEN00001", "Lamp", 4, 10)

        assert summary == {"sent": 0, "failed": 0}

    @pytest.mark.asyncio
    async def test_csr_new_customer(self, notification_service, push_client, token_repository):
        """Every CSR device hears about a new customer."""
        summary = await notification_service.notify_csr_new_customer("Ada Lovelace")

        assert summary == {"sent": 2, "failed": 0}
        token_repository.find_tokens_by_role.assert_awaited_once_with(UserRole.CSR)
        titles = {c.args[1] for c in push_client.send_push.call_args_list}
        assert titles == {NEW_CUSTOMER_TITLE}
        assert "Ada Lovelace" in push_client.send_push.call_args.args[2]


# ============================================================================
# Endpoints
# ============================================================================


class TestNotificationEndpoints:
    """Tests for the device token and notification endpoints."""

    def test_store_device_token(self, test_client):
        """Storing a token echoes the registration in camelCase."""
        stored_at = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
        repository = AsyncMock()
        repository.store.return_value = (
            SimpleNamespace(
                user_id="CSR00001",
                role=UserRole.CSR,
                token_created_at=stored_at,
            ),
            True,
        )
        test_client.app.dependency_overrides[get_device_token_repository] = lambda: repository

        response = test_client.post(
            "/api/fcm-token/store",
            json={
                "userId": "CSR00001",
                "fcmToken": "fcm-token-abc",
                "role": "Customer Service Representative",
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["userId"] == "CSR00001"
        assert data["role"] == "csr"
        assert data["created"] is True
        repository.store.assert_awaited_once_with("CSR00001", "fcm-token-abc", UserRole.CSR)

    def test_store_device_token_unknown_role(self, test_client):
        """Unknown roles fail request validation."""
        test_client.app.dependency_overrides[get_device_token_repository] = lambda: AsyncMock()

        response = test_client.post(
            "/api/fcm-token/store",
            json={"userId": "X1", "fcmToken": "t", "role": "wizard"},
        )

        assert response.status_code == 422

    def test_customer_registered(self, test_client, notification_service):
        """The registration event reports delivery counts with 202."""
        test_client.app.dependency_overrides[get_notification_service] = (
            lambda: notification_service
        )

        response = test_client.post(
            "/api/notifications/customer-registered",
            json={"fullName": "Ada Lovelace"},
        )

        assert response.status_code == 202
        assert response.json() == {"sent": 2, "failed": 0}
