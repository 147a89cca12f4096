"""Order state machine implementation with transition validation.

This module implements the OrderStateMachine class enforcing the order and
order item lifecycle rules: the terminal-status freeze, the transition tables
from ``enums`` and the derived "all items delivered" order transition.
"""

from typing import Any, Iterable, Union

from marketplace.core.logging import get_logger
from marketplace.services.orders.enums import (
    OrderItemStatus,
    OrderStatus,
    get_allowed_order_item_transitions,
    get_allowed_order_transitions,
    validate_order_item_status_transition,
    validate_order_status_transition,
)
from marketplace.services.orders.exceptions import InvalidOrderStateError

logger = get_logger(__name__)

TERMINAL_UPDATE_MESSAGE = (
    "Cannot update the order as it has already been dispatched or delivered."
)
TERMINAL_STATUS_MESSAGE = (
    "Cannot update the order status as it has already been dispatched or delivered."
)
TERMINAL_ITEM_MESSAGE = (
    "Cannot update items of an order that has already been dispatched or delivered."
)


class StateTransitionError(InvalidOrderStateError):
    """Raised when an invalid state transition is attempted."""

    def __init__(
        self,
        message: str,
        current_state: Union[OrderStatus, OrderItemStatus],
        target_state: Union[OrderStatus, OrderItemStatus],
        **context: Any
    ):
        super().__init__(
            message,
            current_state=current_state.value,
            target_state=target_state.value,
            **context
        )
        self.current_state = current_state
        self.target_state = target_state


class OrderStateMachine:
    """State rules for orders and order items.

    Holds no storage handle; the order service persists whatever this class
    approves.
    """

    def ensure_editable(self, order: Any, message: str = TERMINAL_UPDATE_MESSAGE) -> None:
        """Refuse any change to an order in a terminal status.

        Args:
            order: Order instance
            message: Error message to raise with

        Raises:
            InvalidOrderStateError: If the order is dispatched or delivered
        """
        if order.status.is_terminal():
            logger.warning(
                "Change refused on terminal order",
                order_id=order.order_id,
                status=order.status.value,
            )
            raise InvalidOrderStateError(
                message,
                order_id=order.order_id,
                status=order.status.value,
            )

    def validate_transition(self, order: Any, target_status: OrderStatus) -> bool:
        """Validate if transition to target status is allowed.

        Args:
            order: Order instance to validate
            target_status: Desired target status

        Returns:
            True if transition is valid

        Raises:
            InvalidOrderStateError: If the order is already terminal
            StateTransitionError: If transition is invalid
        """
        self.ensure_editable(order, TERMINAL_STATUS_MESSAGE)
        current_status = order.status

        if not validate_order_status_transition(current_status, target_status):
            allowed = get_allowed_order_transitions(current_status)
            raise StateTransitionError(
                f"Invalid transition from {current_status.value} to "
                f"{target_status.value}",
                current_state=current_status,
                target_state=target_status,
                allowed_transitions=sorted(s.value for s in allowed),
            )

        logger.debug(
            "Order transition validated",
            order_id=order.order_id,
            transition=f"{current_status.value}->{target_status.value}",
        )
        return True

    def validate_item_transition(
        self,
        order: Any,
        item: Any,
        target_status: OrderItemStatus
    ) -> bool:
        """Validate an order item status change.

        Args:
            order: Parent order of the item
            item: Order item instance
            target_status: Desired item status

        Returns:
            True if transition is valid

        Raises:
            InvalidOrderStateError: If the parent order is terminal
            StateTransitionError: If transition is invalid
        """
        self.ensure_editable(order, TERMINAL_ITEM_MESSAGE)
        current_status = item.status

        if not validate_order_item_status_transition(current_status, target_status):
            allowed = get_allowed_order_item_transitions(current_status)
            raise StateTransitionError(
                f"Invalid item transition from {current_status.value} to "
                f"{target_status.value}",
                current_state=current_status,
                target_state=target_status,
                allowed_transitions=sorted(s.value for s in allowed),
            )
        return True

    def all_items_delivered(self, items: Iterable[Any]) -> bool:
        """Check if every item of an order is delivered.

        An order without items never counts as delivered.
        """
        statuses = [item.status for item in items]
        return bool(statuses) and all(
            status == OrderItemStatus.DELIVERED for status in statuses
        )
