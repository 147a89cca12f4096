"""Order, order item and user role enums with state transition rules.

Status values keep their historical wire spelling ("Purchased", "Dispatched",
...) because mobile and web clients display them verbatim. Parsing is
case-insensitive and rejects anything outside the enum.
"""

from enum import Enum
from typing import Dict, Optional, Set


class OrderStatus(str, Enum):
    """Order lifecycle status.

    Valid transitions:
    - PURCHASED -> PROCESSING, DISPATCHED, DELIVERED
    - PROCESSING -> DISPATCHED, DELIVERED
    - DISPATCHED -> (terminal state)
    - DELIVERED -> (terminal state)

    DELIVERED is also reached automatically once every item of the order is
    delivered.
    """

    PURCHASED = "Purchased"
    PROCESSING = "Processing"
    DISPATCHED = "Dispatched"
    DELIVERED = "Delivered"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """Convert string to OrderStatus enum.

        Args:
            value: String representation of status, any casing

        Returns:
            OrderStatus enum value

        Raises:
            ValueError: If value is not a valid status
        """
        normalized = value.strip().lower()
        for status in cls:
            if status.value.lower() == normalized:
                return status
        valid_values = ", ".join(s.value for s in cls)
        raise ValueError(
            f"Invalid order status: {value}. Valid values are: {valid_values}"
        )

    def is_terminal(self) -> bool:
        """Check if no further item, price or status edits are allowed."""
        return self in TERMINAL_ORDER_STATUSES


class OrderItemStatus(str, Enum):
    """Per-item fulfillment status, independent of the order status.

    Valid transitions:
    - PURCHASED -> SHIPPED, DELIVERED
    - SHIPPED -> DELIVERED
    - DELIVERED -> (terminal state)
    """

    PURCHASED = "Purchased"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"

    @classmethod
    def from_string(cls, value: str) -> "OrderItemStatus":
        """Convert string to OrderItemStatus enum.

        Raises:
            ValueError: If value is not a valid item status
        """
        normalized = value.strip().lower()
        for status in cls:
            if status.value.lower() == normalized:
                return status
        valid_values = ", ".join(s.value for s in cls)
        raise ValueError(
            f"Invalid order item status: {value}. Valid values are: {valid_values}"
        )


class UserRole(str, Enum):
    """Roles a caller can act under."""

    ADMIN = "admin"
    VENDOR = "vendor"
    CSR = "csr"
    CUSTOMER = "customer"

    @classmethod
    def from_string(cls, value: str) -> "UserRole":
        """Convert a role claim to UserRole.

        Accepts the long form "customer service representative" for CSR.

        Raises:
            ValueError: If value is not a known role
        """
        normalized = value.strip().lower()
        if normalized == "customer service representative":
            return cls.CSR
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Invalid user role: {value}")

    @classmethod
    def from_user_id(cls, user_id: str) -> Optional["UserRole"]:
        """Derive a role from the legacy three-letter user id prefix.

        Only used when the caller presents no bearer token.

        Returns:
            Role for a known prefix, None otherwise
        """
        return USER_ID_PREFIXES.get(user_id[:3].upper()) if user_id else None


TERMINAL_ORDER_STATUSES: Set[OrderStatus] = {
    OrderStatus.DISPATCHED,
    OrderStatus.DELIVERED,
}

ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PURCHASED: {
        OrderStatus.PROCESSING,
        OrderStatus.DISPATCHED,
        OrderStatus.DELIVERED,
    },
    OrderStatus.PROCESSING: {
        OrderStatus.DISPATCHED,
        OrderStatus.DELIVERED,
    },
    OrderStatus.DISPATCHED: set(),
    OrderStatus.DELIVERED: set(),
}

ORDER_ITEM_STATUS_TRANSITIONS: Dict[OrderItemStatus, Set[OrderItemStatus]] = {
    OrderItemStatus.PURCHASED: {
        OrderItemStatus.SHIPPED,
        OrderItemStatus.DELIVERED,
    },
    OrderItemStatus.SHIPPED: {
        OrderItemStatus.DELIVERED,
    },
    OrderItemStatus.DELIVERED: set(),
}

USER_ID_PREFIXES: Dict[str, UserRole] = {
    "ADM": UserRole.ADMIN,
    "VEN": UserRole.VENDOR,
    "CSR": UserRole.CSR,
    "CUS": UserRole.CUSTOMER,
}


def validate_order_status_transition(
    current: OrderStatus,
    new: OrderStatus
) -> bool:
    """Validate if order status transition is allowed.

    Re-applying the current status of a non-terminal order is accepted as a
    no-op so a note can be saved alongside an unchanged status.
    """
    if current == new:
        return not current.is_terminal()
    return new in ORDER_STATUS_TRANSITIONS.get(current, set())


def validate_order_item_status_transition(
    current: OrderItemStatus,
    new: OrderItemStatus
) -> bool:
    """Validate if order item status transition is allowed."""
    if current == new:
        return True
    return new in ORDER_ITEM_STATUS_TRANSITIONS.get(current, set())


def get_allowed_order_transitions(current: OrderStatus) -> Set[OrderStatus]:
    """Get set of allowed transitions from current order status."""
    return ORDER_STATUS_TRANSITIONS.get(current, set()).copy()


def get_allowed_order_item_transitions(
    current: OrderItemStatus
) -> Set[OrderItemStatus]:
    """Get set of allowed transitions from current order item status."""
    return ORDER_ITEM_STATUS_TRANSITIONS.get(current, set()).copy()
