"""
Device token and notification Pydantic schemas.
"""

from datetime import datetime

from pydantic import Field, field_validator

from marketplace.schemas.common import CamelModel
from marketplace.services.orders.enums import UserRole


class DeviceTokenStoreRequest(CamelModel):
    """Request schema for registering a device token."""

    user_id: str = Field(..., min_length=1, max_length=64)
    fcm_token: str = Field(..., min_length=1, max_length=4096)
    role: UserRole

    @field_validator("role", mode="before")
    @classmethod
    def parse_role(cls, v):
        """Accept role names in any casing."""
        if isinstance(v, str):
            return UserRole.from_string(v)
        return v


class DeviceTokenResponse(CamelModel):
    """Stored device token registration."""

    user_id: str
    role: UserRole
    token_created_at: datetime
    created: bool = Field(..., description="True if this was a new registration")


class CustomerRegisteredRequest(CamelModel):
    """Event body announcing a new customer registration."""

    full_name: str = Field(..., min_length=1, max_length=255)


class NotificationDispatchResponse(CamelModel):
    """Delivery counts for a notification fan-out."""

    sent: int
    failed: int
