"""
Device token data access repository.

Maps users to their push device tokens so notifications can be addressed by
user id (a vendor) or by role (every CSR). The session is shared with the
order workflow, so failed reads roll back before raising.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.logging import get_logger
from marketplace.database.base import utcnow
from marketplace.database.models.device_token import DeviceToken
from marketplace.services.orders.enums import UserRole
from marketplace.services.orders.exceptions import RepositoryError

logger = get_logger(__name__)


class DeviceTokenRepositoryError(RepositoryError):
    """Raised when a device token query or write fails."""

    pass


class DeviceTokenRepository:
    """Repository for device token data access."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_user(self, user_id: str) -> Optional[DeviceToken]:
        """Get the token registered for ``user_id``."""
        try:
            result = await self.session.execute(
                select(DeviceToken).where(DeviceToken.user_id == user_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Failed to fetch device token", user_id=user_id, error=str(e))
            raise DeviceTokenRepositoryError(
                "Failed to fetch device token",
                user_id=user_id,
                error=str(e),
            ) from e

    async def find_tokens_for_user(self, user_id: str) -> list[str]:
        """Get the token values a user can be reached at."""
        record = await self.find_by_user(user_id)
        return [record.token] if record and record.token else []

    async def find_tokens_by_role(self, role: UserRole) -> list[str]:
        """Get every token value registered under ``role``."""
        try:
            result = await self.session.execute(
                select(DeviceToken.token).where(DeviceToken.role == role)
            )
            return [token for token in result.scalars().all() if token]
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Failed to fetch device tokens by role", role=role.value, error=str(e))
            raise DeviceTokenRepositoryError(
                "Failed to fetch device tokens by role",
                role=role.value,
                error=str(e),
            ) from e

    async def store(self, user_id: str, token: str, role: UserRole) -> tuple[DeviceToken, bool]:
        """
        Insert or replace the token registered for ``user_id``.

        Args:
            user_id: Token owner
            token: FCM registration token
            role: Role the owner acts under

        Returns:
            Tuple of the stored record and True if it was newly created

        Raises:
            DeviceTokenRepositoryError: If the write fails
        """
        record = await self.find_by_user(user_id)
        created = record is None

        if created:
            record = DeviceToken(user_id=user_id, token=token, role=role)
            self.session.add(record)
        else:
            record.token = token
            record.role = role
            record.token_created_at = utcnow()

        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Failed to store device token", user_id=user_id, error=str(e))
            raise DeviceTokenRepositoryError(
                "Failed to store device token",
                user_id=user_id,
                error=str(e),
            ) from e

        logger.info(
            "Device token stored",
            user_id=user_id,
            role=role.value,
            created=created,
        )
        return record, created
