"""
Order workflow exceptions.

Every error carries a human-readable message plus keyword context that is
logged and, for client errors, echoed back in the HTTP error body.
"""

from typing import Any


class OrderWorkflowError(Exception):
    """Base exception for order and stock workflow errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class NotFoundError(OrderWorkflowError):
    """Base class for missing entities."""

    pass


class OrderNotFoundError(NotFoundError):
    """Raised when an order code does not exist."""

    pass


class ProductNotFoundError(NotFoundError):
    """Raised when a product code does not exist or is soft-deleted."""

    pass


class OrderItemNotFoundError(NotFoundError):
    """Raised when an order item does not exist."""

    pass


class InsufficientStockError(OrderWorkflowError):
    """Raised when a product cannot cover the requested quantity."""

    def __init__(self, product_id: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for product ID {product_id}. "
            f"Available: {available}, Requested: {requested}",
            product_id=product_id,
            available=available,
            requested=requested,
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class InvalidOrderStateError(OrderWorkflowError):
    """Raised when an order or item is not in a state that allows the change."""

    pass


class InvalidOrderInputError(OrderWorkflowError):
    """Raised when request data is missing or malformed."""

    pass


class IdGenerationError(OrderWorkflowError):
    """Raised when no unused custom code was found within the attempt cap."""

    pass


class RepositoryError(OrderWorkflowError):
    """Base class for database failures surfaced by the repositories."""

    pass


class ProductInUseError(InvalidOrderStateError):
    """Raised when deleting a product that order items still reference."""

    pass
