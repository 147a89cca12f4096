"""
Order API endpoints.

This module implements the FastAPI router for placing, updating and reading
orders, including the role-filtered order view used by the admin and vendor
dashboards.
"""

from fastapi import APIRouter, Request, status

from marketplace.api.deps import OptionalToken, OrderServiceDep, resolve_role
from marketplace.api.errors import to_http_exception
from marketplace.api.limiter import limiter, order_create_limit
from marketplace.core.logging import get_logger
from marketplace.schemas.orders import (
    OrderCreateRequest,
    OrderResponse,
    OrderStatusUpdateRequest,
    OrderUpdateRequest,
)
from marketplace.services.orders.exceptions import OrderWorkflowError

logger = get_logger(__name__)

router = APIRouter(prefix="/order", tags=["orders"])


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_200_OK,
    summary="Place order",
    description="Create an order, deducting stock for every requested product",
)
@limiter.limit(order_create_limit)
async def create_order(
    request: Request,
    payload: OrderCreateRequest,
    service: OrderServiceDep,
) -> OrderResponse:
    """
    Place an order for a customer.

    Args:
        request: Incoming request, used for rate limiting
        payload: Customer id and product list
        service: Order service

    Returns:
        OrderResponse: Created order with items

    Raises:
        HTTPException: 404 if a product is missing, 400 on stock or input
            errors, 503 if no order id could be allocated
    """
    logger.info(
        "Creating order",
        customer_id=payload.customer_id,
        line_count=len(payload.product_list),
    )

    try:
        order = await service.create_order(payload.customer_id, payload.lines())
    except OrderWorkflowError as e:
        raise to_http_exception(e, "Order creation") from e

    return OrderResponse.model_validate(order)


@router.get(
    "",
    response_model=list[OrderResponse],
    summary="List orders",
)
async def list_orders(service: OrderServiceDep) -> list[OrderResponse]:
    """Get every order with its items."""
    try:
        orders = await service.list_orders()
    except OrderWorkflowError as e:
        raise to_http_exception(e, "Order listing") from e

    return [OrderResponse.model_validate(order) for order in orders]


@router.get(
    "/getByCustomerId/{customer_id}",
    response_model=list[OrderResponse],
    summary="List a customer's orders",
)
async def get_orders_by_customer(
    customer_id: str,
    service: OrderServiceDep,
) -> list[OrderResponse]:
    """
    Get a customer's orders.

    Raises:
        HTTPException: 404 if the customer has no orders
    """
    try:
        orders = await service.get_orders_by_customer(customer_id)
    except OrderWorkflowError as e:
        raise to_http_exception(e, "Customer order lookup") from e

    return [OrderResponse.model_validate(order) for order in orders]


@router.get(
    "/getByRole/{user_id}",
    response_model=list[OrderResponse],
    summary="List orders visible to a user",
    description=(
        "Admins see all orders; vendors see only orders containing their "
        "products, limited to their own items"
    ),
)
async def get_orders_by_role(
    user_id: str,
    token: OptionalToken,
    service: OrderServiceDep,
) -> list[OrderResponse]:
    """
    Get the orders visible to an admin or vendor.

    The role comes from the bearer token when one is sent, otherwise from
    the user id prefix.

    Raises:
        HTTPException: 400 for other roles, 403 if a non-admin token names
            another user, 404 if nothing is visible
    """
    role = resolve_role(user_id, token)

    try:
        orders = await service.get_orders_for_role(user_id, role)
    except OrderWorkflowError as e:
        raise to_http_exception(e, "Role order lookup") from e

    return [OrderResponse.model_validate(order) for order in orders]


@router.patch(
    "/updateStatus/{order_id}",
    response_model=OrderResponse,
    summary="Update order status",
)
async def update_order_status(
    order_id: str,
    payload: OrderStatusUpdateRequest,
    service: OrderServiceDep,
) -> OrderResponse:
    """
    Change an order's status and/or note.

    Raises:
        HTTPException: 404 if the order is missing, 400 if it is dispatched
            or delivered or the status is invalid
    """
    try:
        order = await service.update_order_status(
            order_id,
            new_status=payload.new_status,
            note=payload.note,
        )
    except OrderWorkflowError as e:
        raise to_http_exception(e, "Order status update") from e

    return OrderResponse.model_validate(order)


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order",
)
async def get_order(order_id: str, service: OrderServiceDep) -> OrderResponse:
    """
    Get one order with its items.

    Raises:
        HTTPException: 404 if the order does not exist
    """
    try:
        order = await service.get_order(order_id)
    except OrderWorkflowError as e:
        raise to_http_exception(e, "Order lookup") from e

    return OrderResponse.model_validate(order)


@router.put(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Update order quantities",
    description="Replace quantities of existing order lines and reconcile stock",
)
async def update_order(
    order_id: str,
    payload: OrderUpdateRequest,
    service: OrderServiceDep,
) -> OrderResponse:
    """
    Replace line quantities of an order.

    Raises:
        HTTPException: 404 if the order, a product or an item is missing,
            400 if the order is dispatched or delivered or stock is short
    """
    logger.info(
        "Updating order",
        order_id=order_id,
        line_count=len(payload.product_list),
    )

    try:
        order = await service.update_order(order_id, payload.lines())
    except OrderWorkflowError as e:
        raise to_http_exception(e, "Order update") from e

    return OrderResponse.model_validate(order)
