"""
Push device token model.

One row per user: registering again replaces the stored token.
"""

from datetime import datetime

from sqlalchemy import DateTime, Index, String, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from marketplace.database.base import BaseModel, utcnow
from marketplace.services.orders.enums import UserRole


class DeviceToken(BaseModel):
    """
    Firebase device token registered by a user's app.

    Attributes:
        user_id: Owning user id, unique
        token: FCM registration token
        role: Role the user registered under, used to fan out CSR alerts
        token_created_at: When the current token was stored
    """

    __tablename__ = "device_tokens"

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        index=True,
        comment="Owning user id",
    )

    token: Mapped[str] = mapped_column(
        String(4096),
        nullable=False,
        comment="FCM registration token",
    )

    role: Mapped[UserRole] = mapped_column(
        SQLEnum(
            UserRole,
            name="user_role",
            create_constraint=True,
            values_callable=lambda enum_cls: [m.value for m in enum_cls],
        ),
        nullable=False,
        comment="Role of the token owner",
    )

    token_created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment="When the current token was stored",
    )

    __table_args__ = (
        Index("ix_device_tokens_role", "role"),
    )

    def __repr__(self) -> str:
        return f"<DeviceToken(user_id={self.user_id!r}, role={self.role.value})>"
