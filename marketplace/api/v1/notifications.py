"""
Device token registration and notification trigger endpoints.
"""

from fastapi import APIRouter, status

from marketplace.api.deps import DeviceTokenRepositoryDep, NotificationServiceDep
from marketplace.api.errors import to_http_exception
from marketplace.core.logging import get_logger
from marketplace.schemas.notifications import (
    CustomerRegisteredRequest,
    DeviceTokenResponse,
    DeviceTokenStoreRequest,
    NotificationDispatchResponse,
)
from marketplace.services.orders.exceptions import OrderWorkflowError

logger = get_logger(__name__)

device_token_router = APIRouter(prefix="/fcm-token", tags=["device tokens"])
router = APIRouter(prefix="/notifications", tags=["notifications"])


@device_token_router.post(
    "/store",
    response_model=DeviceTokenResponse,
    status_code=status.HTTP_200_OK,
    summary="Register device token",
    description="Store or replace the push device token for a user",
)
async def store_device_token(
    payload: DeviceTokenStoreRequest,
    repository: DeviceTokenRepositoryDep,
) -> DeviceTokenResponse:
    """Insert or update a user's device token."""
    try:
        record, created = await repository.store(
            payload.user_id, payload.fcm_token, payload.role
        )
    except OrderWorkflowError as e:
        raise to_http_exception(e, "Device token registration") from e

    return DeviceTokenResponse(
        user_id=record.user_id,
        role=record.role,
        token_created_at=record.token_created_at,
        created=created,
    )


@router.post(
    "/customer-registered",
    response_model=NotificationDispatchResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Announce a new customer to CSR staff",
)
async def customer_registered(
    payload: CustomerRegisteredRequest,
    service: NotificationServiceDep,
) -> NotificationDispatchResponse:
    """
    Fan out a "New Customer Registration" push to every CSR device.

    Delivery is best effort; the response reports how many pushes went out.
    """
    logger.info("Customer registration announced", full_name=payload.full_name)
    summary = await service.notify_csr_new_customer(payload.full_name)
    return NotificationDispatchResponse(**summary)
