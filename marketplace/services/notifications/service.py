"""
Notification service for best-effort push delivery.

This module provides the NotificationService class that resolves recipients
through the device token store and delivers push notifications through SNS.
Delivery is best effort: failures are logged and never propagate to the
caller, so an order or registration never fails because a push did.
"""

import asyncio
from typing import Any, Optional, Sequence

from botocore.exceptions import BotoCoreError

from marketplace.core.config import get_settings
from marketplace.core.logging import get_logger
from marketplace.services.notifications.aws_clients import (
    PushClientError,
    SNSPushClient,
    get_push_client,
)
from marketplace.services.notifications.repository import DeviceTokenRepository
from marketplace.services.orders.enums import UserRole
from marketplace.services.orders.exceptions import RepositoryError

logger = get_logger(__name__)

STOCK_ALERT_TITLE = "Stock Alert"
NEW_CUSTOMER_TITLE = "New Customer Registration"


class NotificationServiceError(Exception):
    """Base exception for notification service errors."""

    def __init__(self, message: str, **context: Any) -> None:
        """
        Initialize notification service error.

        Args:
            message: Error message
            **context: Additional error context
        """
        super().__init__(message)
        self.context = context


def stock_alert_body(product_name: str, quantity: int, threshold: int) -> str:
    """Render the low-stock alert text sent to vendors."""
    return (
        f"Stock for product {product_name} has dropped below {threshold}. "
        f"Current stock: {quantity}"
    )


def new_customer_body(full_name: str) -> str:
    """Render the registration alert text sent to CSR staff."""
    return f"A new customer, {full_name}, has registered in the system."


class NotificationService:
    """
    Push notification orchestration.

    Attributes:
        token_repository: Device token store used to resolve recipients
        enabled: When False every send is skipped and logged
    """

    def __init__(
        self,
        token_repository: DeviceTokenRepository,
        push_client: Optional[SNSPushClient] = None,
        enabled: Optional[bool] = None,
    ) -> None:
        """
        Initialize notification service.

        Args:
            token_repository: Device token repository
            push_client: SNS push client (created from settings on first use)
            enabled: Override for the notifications_enabled setting
        """
        self.token_repository = token_repository
        self._push_client = push_client
        self.enabled = get_settings().notifications_enabled if enabled is None else enabled

    @property
    def push_client(self) -> SNSPushClient:
        """SNS push client, built from settings on first access.

        Raises:
            NotificationServiceError: If the client cannot be configured
        """
        if self._push_client is None:
            try:
                self._push_client = get_push_client()
            except BotoCoreError as e:
                raise NotificationServiceError(
                    "Push client could not be configured",
                    error=str(e),
                ) from e
        return self._push_client

    async def notify(self, tokens: Sequence[str], title: str, body: str) -> dict[str, int]:
        """
        Send one notification to every token.

        Each token is attempted independently; a failing token does not stop
        the others.

        Args:
            tokens: Device tokens to deliver to
            title: Notification title
            body: Notification body

        Returns:
            Counts of sent and failed deliveries
        """
        summary = {"sent": 0, "failed": 0}
        recipients = [token for token in tokens if token]

        if not recipients:
            logger.debug("No push recipients", title=title)
            return summary

        if not self.enabled:
            logger.info(
                "Push notifications disabled, skipping",
                title=title,
                recipients=len(recipients),
            )
            return summary

        try:
            client = self.push_client
        except NotificationServiceError as e:
            logger.error("Push client unavailable", title=title, error=str(e))
            summary["failed"] = len(recipients)
            return summary

        for token in recipients:
            try:
                await asyncio.to_thread(client.send_push, token, title, body)
                summary["sent"] += 1
            except PushClientError as e:
                summary["failed"] += 1
                logger.warning(
                    "Push delivery failed",
                    title=title,
                    error=str(e),
                    **e.context,
                )
            except Exception as e:
                summary["failed"] += 1
                logger.error(
                    "Unexpected push delivery error",
                    title=title,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )

        logger.info("Push notification dispatched", title=title, **summary)
        return summary

    async def notify_vendor_low_stock(
        self,
        vendor_id: str,
        product_name: str,
        quantity: int,
        threshold: int,
    ) -> dict[str, int]:
        """
        Alert a vendor that one of its products is running low.

        Args:
            vendor_id: Vendor to alert
            product_name: Product display name
            quantity: Stock left after the deduction
            threshold: Low-stock threshold that was crossed

        Returns:
            Counts of sent and failed deliveries
        """
        try:
            tokens = await self.token_repository.find_tokens_for_user(vendor_id)
        except RepositoryError as e:
            logger.warning(
                "Could not resolve vendor device tokens",
                vendor_id=vendor_id,
                error=str(e),
            )
            return {"sent": 0, "failed": 0}

        logger.info(
            "Sending stock alert",
            vendor_id=vendor_id,
            product_name=product_name,
            quantity=quantity,
        )
        return await self.notify(
            tokens,
            STOCK_ALERT_TITLE,
            stock_alert_body(product_name, quantity, threshold),
        )

    async def notify_csr_new_customer(self, full_name: str) -> dict[str, int]:
        """
        Tell every CSR that a new customer registered.

        Args:
            full_name: Customer's full name

        Returns:
            Counts of sent and failed deliveries
        """
        try:
            tokens = await self.token_repository.find_tokens_by_role(UserRole.CSR)
        except RepositoryError as e:
            logger.warning("Could not resolve CSR device tokens", error=str(e))
            return {"sent": 0, "failed": 0}

        return await self.notify(tokens, NEW_CUSTOMER_TITLE, new_customer_body(full_name))
