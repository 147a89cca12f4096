"""
Tests for mapping workflow errors to HTTP responses.
"""

import pytest

from marketplace.api.errors import status_code_for, to_http_exception
from marketplace.services.catalog.repository import ProductRepositoryError
from marketplace.services.orders.exceptions import (
    IdGenerationError,
    InsufficientStockError,
    InvalidOrderInputError,
    OrderItemNotFoundError,
    ProductInUseError,
)
from marketplace.services.orders.state_machine import StateTransitionError
from marketplace.services.orders.enums import OrderStatus


@pytest.mark.parametrize(
    "error,expected",
    [
        (OrderItemNotFoundError("missing"), 404),
        (InsufficientStockError("P00001", available=1, requested=2), 400),
        (ProductInUseError("in use"), 400),
        (
            StateTransitionError(
                "bad move",
                current_state=OrderStatus.PROCESSING,
                target_state=OrderStatus.PURCHASED,
            ),
            400,
        ),
        (InvalidOrderInputError("bad input"), 400),
        (IdGenerationError("exhausted"), 503),
        (ProductRepositoryError("Failed to update stock"), 500),
    ],
)
def test_status_code_for(error, expected):
    """Each error family maps to its HTTP status."""
    assert status_code_for(error) == expected


def test_client_errors_keep_their_message():
    """4xx responses carry the workflow message verbatim."""
    exc = to_http_exception(InvalidOrderInputError("Product list cannot be null or empty."), "Test")

    assert exc.status_code == 400
    assert exc.detail == "Product list cannot be null or empty."


def test_server_errors_hide_details():
    """5xx responses never expose storage errors."""
    exc = to_http_exception(
        ProductRepositoryError("Failed to update stock", error="deadlock detected"),
        "Test",
    )

    assert exc.status_code == 500
    assert "deadlock" not in exc.detail
