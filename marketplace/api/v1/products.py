"""
Product stock API endpoints.

Covers product creation, stock reads and overrides, the low-stock listing
and vendor soft delete. Catalog browsing lives in a separate service.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Query, status

from marketplace.api.deps import CatalogServiceDep
from marketplace.api.errors import to_http_exception
from marketplace.core.logging import get_logger
from marketplace.schemas.common import MessageResponse
from marketplace.schemas.products import (
    ProductCreateRequest,
    ProductDeleteRequest,
    ProductResponse,
    StockResponse,
    StockUpdateRequest,
)
from marketplace.services.orders.exceptions import OrderWorkflowError

logger = get_logger(__name__)

router = APIRouter(prefix="/product", tags=["products"])


@router.post(
    "",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create product",
)
async def create_product(
    payload: ProductCreateRequest,
    service: CatalogServiceDep,
) -> ProductResponse:
    """
    Create a product with a generated product id.

    Raises:
        HTTPException: 400 on invalid input, 503 if no id could be allocated
    """
    try:
        product = await service.create_product(
            name=payload.name,
            price=payload.price,
            quantity=payload.quantity,
            category_id=payload.category_id,
            vendor_id=payload.vendor_id,
            description=payload.description,
            image_urls=payload.image_urls,
        )
    except OrderWorkflowError as e:
        raise to_http_exception(e, "Product creation") from e

    return ProductResponse.model_validate(product)


@router.get(
    "/lowStock",
    response_model=list[ProductResponse],
    summary="List low stock products",
)
async def list_low_stock(
    service: CatalogServiceDep,
    threshold: Annotated[
        Optional[int],
        Query(ge=0, description="Inclusive stock ceiling, defaults to the alert threshold"),
    ] = None,
) -> list[ProductResponse]:
    """Get active products with quantity at or below the threshold."""
    try:
        products = await service.list_low_stock(threshold)
    except OrderWorkflowError as e:
        raise to_http_exception(e, "Low stock lookup") from e

    return [ProductResponse.model_validate(product) for product in products]


@router.get(
    "/quantity/{product_id}",
    response_model=StockResponse,
    summary="Get product stock",
)
async def get_stock(product_id: str, service: CatalogServiceDep) -> StockResponse:
    """Get a product's current stock level."""
    try:
        stock = await service.get_stock(product_id)
    except OrderWorkflowError as e:
        raise to_http_exception(e, "Stock lookup") from e

    return StockResponse.model_validate(stock)


@router.patch(
    "/quantity/{product_id}",
    response_model=StockResponse,
    summary="Set product stock",
)
async def set_stock(
    product_id: str,
    payload: StockUpdateRequest,
    service: CatalogServiceDep,
) -> StockResponse:
    """
    Overwrite a product's stock level.

    Raises:
        HTTPException: 404 if the product is missing, 400 for a negative quantity
    """
    try:
        stock = await service.set_stock(product_id, payload.new_quantity)
    except OrderWorkflowError as e:
        raise to_http_exception(e, "Stock update") from e

    return StockResponse.model_validate(stock)


@router.delete(
    "/productDelete",
    response_model=MessageResponse,
    summary="Soft delete product",
)
async def delete_product(
    payload: ProductDeleteRequest,
    service: CatalogServiceDep,
) -> MessageResponse:
    """
    Soft delete or restore a vendor's product.

    Raises:
        HTTPException: 400 if order items reference the product, 404 if the
            product is missing or owned by another vendor
    """
    try:
        await service.set_deleted(payload.product_id, payload.vendor_id, payload.is_deleted)
    except OrderWorkflowError as e:
        raise to_http_exception(e, "Product deletion") from e

    message = (
        "Product deleted successfully." if payload.is_deleted
        else "Product restored successfully."
    )
    return MessageResponse(message=message)
