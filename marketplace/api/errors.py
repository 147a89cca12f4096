"""
Translation of workflow exceptions into HTTP errors.
"""

from fastapi import HTTPException, status

from marketplace.core.logging import get_logger
from marketplace.services.orders.exceptions import (
    IdGenerationError,
    InsufficientStockError,
    InvalidOrderInputError,
    InvalidOrderStateError,
    NotFoundError,
    OrderWorkflowError,
    RepositoryError,
)

logger = get_logger(__name__)

_STATUS_BY_ERROR = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InsufficientStockError, status.HTTP_400_BAD_REQUEST),
    (InvalidOrderStateError, status.HTTP_400_BAD_REQUEST),
    (InvalidOrderInputError, status.HTTP_400_BAD_REQUEST),
    (IdGenerationError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (RepositoryError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def status_code_for(error: OrderWorkflowError) -> int:
    """HTTP status code for a workflow error."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


def to_http_exception(error: OrderWorkflowError, action: str) -> HTTPException:
    """
    Log a workflow error and build the matching HTTPException.

    Server-side failures get a generic message so storage details do not
    leak to clients.

    Args:
        error: Workflow error raised by a service
        action: Short description of the attempted operation, for logs

    Returns:
        HTTPException to raise from the endpoint
    """
    status_code = status_code_for(error)

    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(
            f"{action} failed",
            error=str(error),
            error_type=type(error).__name__,
            context=error.context,
        )
        detail = (
            "Service temporarily unavailable, please retry"
            if status_code == status.HTTP_503_SERVICE_UNAVAILABLE
            else "Database operation failed"
        )
        return HTTPException(status_code=status_code, detail=detail)

    logger.warning(
        f"{action} rejected",
        error=str(error),
        error_type=type(error).__name__,
        status_code=status_code,
        context=error.context,
    )
    return HTTPException(status_code=status_code, detail=error.message)
