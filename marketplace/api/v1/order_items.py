"""
Order item API endpoints.
"""

from uuid import UUID

from fastapi import APIRouter, status

from marketplace.api.deps import OrderServiceDep
from marketplace.api.errors import to_http_exception
from marketplace.core.logging import get_logger
from marketplace.schemas.common import MessageResponse
from marketplace.schemas.orders import OrderItemResponse, OrderItemStatusUpdateRequest
from marketplace.services.orders.exceptions import OrderWorkflowError

logger = get_logger(__name__)

router = APIRouter(prefix="/orderItem", tags=["order items"])


@router.patch(
    "/updateStatus/{item_id}",
    response_model=OrderItemResponse,
    summary="Update order item status",
    description=(
        "Change an item's status; delivering the last undelivered item marks "
        "the order as Delivered"
    ),
)
async def update_order_item_status(
    item_id: UUID,
    payload: OrderItemStatusUpdateRequest,
    service: OrderServiceDep,
) -> OrderItemResponse:
    """
    Change an order item's status.

    Raises:
        HTTPException: 404 if the item or its order is missing, 400 if the
            order is dispatched or delivered or the status is invalid
    """
    try:
        item = await service.update_order_item_status(item_id, payload.new_status)
    except OrderWorkflowError as e:
        raise to_http_exception(e, "Order item status update") from e

    return OrderItemResponse.model_validate(item)


@router.get(
    "/getItemByOrderProductIds/{order_id}/{product_id}",
    response_model=OrderItemResponse,
    summary="Get order item by order and product",
)
async def get_item_by_order_and_product(
    order_id: str,
    product_id: str,
    service: OrderServiceDep,
) -> OrderItemResponse:
    """Get the item of an order for a given product."""
    try:
        item = await service.get_order_item_by_order_and_product(order_id, product_id)
    except OrderWorkflowError as e:
        raise to_http_exception(e, "Order item lookup") from e

    return OrderItemResponse.model_validate(item)


@router.get(
    "/{item_id}",
    response_model=OrderItemResponse,
    summary="Get order item",
)
async def get_order_item(item_id: UUID, service: OrderServiceDep) -> OrderItemResponse:
    """Get one order item."""
    try:
        item = await service.get_order_item(item_id)
    except OrderWorkflowError as e:
        raise to_http_exception(e, "Order item lookup") from e

    return OrderItemResponse.model_validate(item)


@router.delete(
    "/{item_id}",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Delete order item",
)
async def delete_order_item(item_id: UUID, service: OrderServiceDep) -> MessageResponse:
    """
    Remove an item from its order, returning its units to stock.

    Raises:
        HTTPException: 404 if the item is missing, 400 if the order is
            dispatched or delivered
    """
    try:
        await service.delete_order_item(item_id)
    except OrderWorkflowError as e:
        raise to_http_exception(e, "Order item deletion") from e

    return MessageResponse(message="Order item deleted successfully.")
